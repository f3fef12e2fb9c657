"""Capability interfaces for the remote services used by the generation pipeline."""

from abc import ABC, abstractmethod
from typing import Optional


class PromptOptimizer(ABC):
    """Refines free text with a system instruction."""

    @abstractmethod
    async def optimize(self, prompt: str, system_instruction: str) -> str:
        """Raises PromptOptimizationError."""


class ImageGenerator(ABC):
    """Turns a text prompt into raw image bytes."""

    @abstractmethod
    async def generate(self, prompt: str) -> bytes:
        """Raises ImageGenerationError."""


class ModelGenerator(ABC):
    """Turns an image into raw 3D-model bytes."""

    @abstractmethod
    async def generate(self, image: bytes, image_name: str) -> bytes:
        """Raises ModelGenerationError."""


class ArtifactPublisher(ABC):
    """Stores named binary blobs in a remote, versioned store."""

    @abstractmethod
    async def get_version(self, remote_path: str) -> Optional[str]:
        """Return the current version identifier at ``remote_path``, or None if absent."""

    @abstractmethod
    async def upload(self, remote_path: str, content: bytes,
                     previous_version: Optional[str] = None) -> Optional[str]:
        """Create or update ``remote_path``; returns the new version identifier if known."""
