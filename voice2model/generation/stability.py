"""Stability AI image and 3D-model generators."""

import asyncio
import logging

import aiohttp

from .base import ImageGenerator, ModelGenerator
from .._http import multipart_form, read_error_message
from ..errors import ImageGenerationError, ModelGenerationError

logger = logging.getLogger(__name__)

STABILITY_API_URL = "https://api.stability.ai"

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
GLB_MAGIC = b"glTF"


class _StabilityClient:
    """Shared request plumbing for the Stability AI v2beta endpoints."""

    def __init__(self, api_key: str, base_url: str = STABILITY_API_URL, timeout_seconds: float = 120.0):
        if not api_key:
            raise ValueError("Stability AI API key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def _post_form(self, path: str, form: aiohttp.MultipartWriter, accept: str, error_cls) -> bytes:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": accept,
        }
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(f"{self.base_url}{path}", headers=headers, data=form) as response:
                    if response.status != 200:
                        message = await read_error_message(response)
                        raise error_cls(f"{response.status} - {message}", status=response.status)
                    return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise error_cls(f"Stability AI request failed: {e}") from e


class StabilityImageGenerator(_StabilityClient, ImageGenerator):
    """Stable Image Core text-to-image."""

    path = "/v2beta/stable-image/generate/core"

    def __init__(self, api_key: str, output_format: str = "png", **kwargs):
        super().__init__(api_key, **kwargs)
        self.output_format = output_format

    async def generate(self, prompt: str) -> bytes:
        logger.debug(f"Generating image for prompt: {prompt}")
        form = multipart_form({"prompt": prompt, "output_format": self.output_format})

        payload = await self._post_form(self.path, form, "image/*", ImageGenerationError)
        if not payload:
            raise ImageGenerationError("Image generation returned an empty payload")
        if self.output_format == "png" and not payload.startswith(PNG_SIGNATURE):
            raise ImageGenerationError("Image generation returned a payload that is not a PNG image")
        return payload


class StabilityModelGenerator(_StabilityClient, ModelGenerator):
    """Stable Fast 3D image-to-model."""

    path = "/v2beta/3d/stable-fast-3d"

    def __init__(self, api_key: str, texture_resolution: int = 512, foreground_ratio: float = 0.7, **kwargs):
        super().__init__(api_key, **kwargs)
        self.texture_resolution = texture_resolution
        self.foreground_ratio = foreground_ratio

    async def generate(self, image: bytes, image_name: str) -> bytes:
        logger.debug(f"Generating 3D model from {image_name} ({len(image)} bytes)")
        form = multipart_form(
            {"texture_resolution": self.texture_resolution, "foreground_ratio": self.foreground_ratio},
            files={"image": (image, image_name, "image/png")},
        )

        payload = await self._post_form(self.path, form, "*/*", ModelGenerationError)
        if not payload:
            raise ModelGenerationError("3D model generation returned an empty payload")
        if not payload.startswith(GLB_MAGIC):
            raise ModelGenerationError("3D model generation returned a payload that is not a GLB file")
        return payload
