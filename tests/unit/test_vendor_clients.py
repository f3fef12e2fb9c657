"""Tests for the aiohttp vendor clients against a local fake API server."""

import base64
import contextlib

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from voice2model.errors import (
    ImageGenerationError,
    ModelGenerationError,
    PromptOptimizationError,
    PublishError,
    TranscriptionServiceError,
)
from voice2model.generation.github_publisher import GitHubPublisher
from voice2model.generation.openai_optimizer import OpenAIPromptOptimizer
from voice2model.generation.stability import (
    GLB_MAGIC,
    PNG_SIGNATURE,
    StabilityImageGenerator,
    StabilityModelGenerator,
)
from voice2model.models.audio import NormalizedAudioArtifact
from voice2model.transcription.whisper_backend import WhisperBackend


@contextlib.asynccontextmanager
async def fake_api(method, path, handler):
    """Serve a single route and collect every request it receives."""
    requests = []

    async def recording_handler(request):
        body = None
        if request.content_type.startswith("multipart/"):
            body = await request.post()
        elif request.can_read_body:
            body = await request.json()
        requests.append({"request": request, "body": body, "query": dict(request.query)})
        return await handler(request)

    app = web.Application()
    app.router.add_route(method, path, recording_handler)
    server = TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("/")).rstrip("/"), requests
    finally:
        await server.close()


def respond(status=200, **kwargs):
    async def handler(request):
        if "json" in kwargs:
            return web.json_response(kwargs["json"], status=status)
        if "text" in kwargs:
            return web.Response(status=status, text=kwargs["text"])
        return web.Response(status=status, body=kwargs.get("body", b""))
    return handler


@pytest.mark.unit
class TestGitHubPublisher:

    CONTENTS = "/repos/octo/models/contents/docs/generated_model.glb"

    def _publisher(self, base_url):
        return GitHubPublisher(token="ghp_test", owner="octo", repo="models", base_url=base_url)

    @pytest.mark.asyncio
    async def test_get_version_missing_file(self):
        async with fake_api("GET", self.CONTENTS, respond(404, json={"message": "Not Found"})) as (url, requests):
            sha = await self._publisher(url).get_version("docs/generated_model.glb")

        assert sha is None
        assert requests[0]["query"] == {"ref": "main"}
        assert requests[0]["request"].headers["Authorization"] == "Bearer ghp_test"

    @pytest.mark.asyncio
    async def test_get_version_existing_file(self):
        async with fake_api("GET", self.CONTENTS, respond(json={"sha": "abc123"})) as (url, _):
            sha = await self._publisher(url).get_version("docs/generated_model.glb")

        assert sha == "abc123"

    @pytest.mark.asyncio
    async def test_get_version_server_error(self):
        async with fake_api("GET", self.CONTENTS, respond(500, json={"message": "Server Error"})) as (url, _):
            with pytest.raises(PublishError, match="Server Error") as exc_info:
                await self._publisher(url).get_version("docs/generated_model.glb")

        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_upload_new_file_omits_sha(self):
        async with fake_api("PUT", self.CONTENTS, respond(201, json={"content": {"sha": "new1"}})) as (url, requests):
            version = await self._publisher(url).upload("docs/generated_model.glb", GLB_MAGIC + b"x", None)

        body = requests[0]["body"]
        assert version == "new1"
        assert "sha" not in body
        assert body["message"] == "Update Model"
        assert body["branch"] == "main"
        assert base64.b64decode(body["content"]) == GLB_MAGIC + b"x"

    @pytest.mark.asyncio
    async def test_upload_existing_file_includes_sha(self):
        async with fake_api("PUT", self.CONTENTS, respond(200, json={"content": {"sha": "new2"}})) as (url, requests):
            version = await self._publisher(url).upload("docs/generated_model.glb", b"glTF", "abc123")

        assert version == "new2"
        assert requests[0]["body"]["sha"] == "abc123"

    @pytest.mark.asyncio
    async def test_upload_conflict(self):
        handler = respond(409, json={"message": "docs/generated_model.glb does not match abc123"})
        async with fake_api("PUT", self.CONTENTS, handler) as (url, _):
            with pytest.raises(PublishError, match="does not match") as exc_info:
                await self._publisher(url).upload("docs/generated_model.glb", b"glTF", "abc123")

        assert exc_info.value.status == 409

    def test_build_payload(self):
        publisher = GitHubPublisher(token="t", owner="o", repo="r", branch="gh-pages", commit_message="New model")

        assert publisher.build_payload(b"abc", None) == {
            "message": "New model",
            "content": "YWJj",
            "branch": "gh-pages",
        }
        assert publisher.build_payload(b"abc", "sha1")["sha"] == "sha1"

    def test_token_required(self):
        with pytest.raises(ValueError):
            GitHubPublisher(token="", owner="o", repo="r")


@pytest.mark.unit
class TestOpenAIPromptOptimizer:

    @pytest.mark.asyncio
    async def test_optimize(self):
        reply = {"choices": [{"message": {"role": "assistant", "content": "  A cute squirrel figurine  "}}]}
        async with fake_api("POST", "/v1/chat/completions", respond(json=reply)) as (url, requests):
            optimizer = OpenAIPromptOptimizer(api_key="sk-test", base_url=f"{url}/v1")
            refined = await optimizer.optimize("a friendly squirrel", "Be concise.")

        body = requests[0]["body"]
        assert refined == "A cute squirrel figurine"
        assert body["model"] == "gpt-4"
        assert body["max_tokens"] == 100
        assert body["temperature"] == 0.7
        assert body["messages"] == [
            {"role": "system", "content": "Be concise."},
            {"role": "user", "content": "a friendly squirrel"},
        ]

    @pytest.mark.asyncio
    async def test_vendor_message_passed_through(self):
        error = {"error": {"message": "Incorrect API key provided: sk-test.", "type": "invalid_request_error"}}
        async with fake_api("POST", "/v1/chat/completions", respond(401, json=error)) as (url, _):
            optimizer = OpenAIPromptOptimizer(api_key="sk-test", base_url=f"{url}/v1")
            with pytest.raises(PromptOptimizationError) as exc_info:
                await optimizer.optimize("a friendly squirrel", "Be concise.")

        assert str(exc_info.value) == "Incorrect API key provided: sk-test."
        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_malformed_reply(self):
        async with fake_api("POST", "/v1/chat/completions", respond(json={"choices": []})) as (url, _):
            optimizer = OpenAIPromptOptimizer(api_key="sk-test", base_url=f"{url}/v1")
            with pytest.raises(PromptOptimizationError, match="Malformed"):
                await optimizer.optimize("a friendly squirrel", "Be concise.")


@pytest.mark.unit
class TestWhisperBackend:

    @pytest.fixture
    def artifact(self, sample_audio_file):
        return NormalizedAudioArtifact(path=sample_audio_file, sample_rate=16000, channels=1,
                                       sample_width=2, frames=10240)

    @pytest.mark.asyncio
    async def test_transcribe(self, artifact):
        async with fake_api("POST", "/v1/audio/transcriptions", respond(text="a friendly squirrel\n")) as (url, requests):
            backend = WhisperBackend(api_key="sk-test", base_url=f"{url}/v1")
            text = await backend.transcribe(artifact)

        form = requests[0]["body"]
        assert text == "a friendly squirrel"
        assert form["model"] == "whisper-1"
        assert form["response_format"] == "text"
        assert form["language"] == "en"
        assert form["file"].filename == "test_audio.wav"

    @pytest.mark.asyncio
    async def test_service_error(self, artifact):
        error = {"error": {"message": "Audio file is too short"}}
        async with fake_api("POST", "/v1/audio/transcriptions", respond(400, json=error)) as (url, _):
            backend = WhisperBackend(api_key="sk-test", base_url=f"{url}/v1")
            with pytest.raises(TranscriptionServiceError, match="too short") as exc_info:
                await backend.transcribe(artifact)

        assert exc_info.value.status == 400

    def test_api_key_required(self):
        with pytest.raises(ValueError):
            WhisperBackend(api_key="")


@pytest.mark.unit
class TestStabilityClients:

    @pytest.mark.asyncio
    async def test_generate_image(self):
        png = PNG_SIGNATURE + b"pixels"
        async with fake_api("POST", StabilityImageGenerator.path, respond(body=png)) as (url, requests):
            generator = StabilityImageGenerator("sk-stab", base_url=url)
            payload = await generator.generate("A cute squirrel figurine")

        assert payload == png
        assert requests[0]["body"]["prompt"] == "A cute squirrel figurine"
        assert requests[0]["body"]["output_format"] == "png"
        assert requests[0]["request"].headers["Accept"] == "image/*"

    @pytest.mark.asyncio
    async def test_image_rejected(self):
        error = {"name": "bad_request", "errors": ["prompt: cannot be blank"]}
        async with fake_api("POST", StabilityImageGenerator.path, respond(400, json=error)) as (url, _):
            generator = StabilityImageGenerator("sk-stab", base_url=url)
            with pytest.raises(ImageGenerationError, match="cannot be blank"):
                await generator.generate("")

    @pytest.mark.asyncio
    async def test_image_payload_must_be_png(self):
        async with fake_api("POST", StabilityImageGenerator.path, respond(body=b"GIF89a")) as (url, _):
            generator = StabilityImageGenerator("sk-stab", base_url=url)
            with pytest.raises(ImageGenerationError, match="not a PNG"):
                await generator.generate("A cube")

    @pytest.mark.asyncio
    async def test_generate_model(self):
        glb = GLB_MAGIC + b"mesh"
        async with fake_api("POST", StabilityModelGenerator.path, respond(body=glb)) as (url, requests):
            generator = StabilityModelGenerator("sk-stab", base_url=url)
            payload = await generator.generate(PNG_SIGNATURE + b"pixels", "image_squirrel.png")

        form = requests[0]["body"]
        assert payload == glb
        assert form["texture_resolution"] == "512"
        assert form["foreground_ratio"] == "0.7"
        assert form["image"].filename == "image_squirrel.png"

    @pytest.mark.asyncio
    async def test_model_payload_must_be_glb(self):
        async with fake_api("POST", StabilityModelGenerator.path, respond(body=b"<html>")) as (url, _):
            generator = StabilityModelGenerator("sk-stab", base_url=url)
            with pytest.raises(ModelGenerationError, match="not a GLB"):
                await generator.generate(PNG_SIGNATURE, "image_x.png")
