"""OpenAI Whisper transcription backend."""

import time
import asyncio
import logging

import aiohttp

from .base import AbstractTranscriptionBackend
from .._http import read_error_message
from ..errors import TranscriptionServiceError
from ..models.audio import NormalizedAudioArtifact

logger = logging.getLogger(__name__)


class WhisperBackend(AbstractTranscriptionBackend):
    """Transcribes audio files through the OpenAI audio transcription endpoint."""

    service_name = "OpenAI Whisper"

    def __init__(self,
                 api_key: str,
                 model: str = "whisper-1",
                 language: str = "en-US",
                 base_url: str = "https://api.openai.com/v1",
                 timeout_seconds: float = 60.0):
        """Initialize Whisper backend.

        Args:
            api_key: OpenAI API key
            model: Transcription model name
            language: Language code; only the primary subtag is sent (e.g. 'en')
            base_url: API root, overridable for tests
            timeout_seconds: Total timeout for one request
        """
        super().__init__(language)
        if not api_key:
            raise ValueError("OpenAI API key is required for Whisper transcription")
        self.api_key = api_key
        self.model = model
        self.url = f"{base_url.rstrip('/')}/audio/transcriptions"
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def transcribe(self, artifact: NormalizedAudioArtifact) -> str:
        start_time = time.time()
        logger.debug(f"Sending {artifact.path} ({artifact.duration_seconds:.2f}s) to {self.service_name}")

        form = aiohttp.FormData()
        form.add_field("model", self.model)
        form.add_field("response_format", "text")
        form.add_field("language", self.language.split("-")[0])
        form.add_field("file", artifact.path.read_bytes(),
                       filename=artifact.path.name, content_type="audio/wav")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.url, headers=headers, data=form) as response:
                    if response.status != 200:
                        message = await read_error_message(response)
                        raise TranscriptionServiceError(
                            f"Whisper API error: {response.status} - {message}", status=response.status)
                    text = (await response.text()).strip()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TranscriptionServiceError(f"Whisper API request failed: {e}") from e

        logger.debug(f"Transcription received in {time.time() - start_time:.3f}s")
        return text
