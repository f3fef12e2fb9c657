"""Abstract base class for transcription backends."""

from abc import ABC, abstractmethod
import logging

from ..models.audio import NormalizedAudioArtifact

logger = logging.getLogger(__name__)


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for transcription backends.

    A backend makes exactly one remote call per ``transcribe`` and never
    retries; callers decide whether to try again.
    """

    service_name = "transcription"

    def __init__(self, language: str = "en-US"):
        """Initialize backend with language preference."""
        self.language = language

    @abstractmethod
    async def transcribe(self, artifact: NormalizedAudioArtifact) -> str:
        """Transcribe a normalized audio file and return plain text.

        Args:
            artifact: Mono 16-bit PCM WAV at 16 kHz

        Returns:
            Transcript text

        Raises:
            TranscriptionServiceError: The remote service rejected the request
        """
        pass

    def initialize(self) -> bool:
        """Initialize backend resources and verify configuration.

        Returns:
            True if initialization successful, False otherwise
        """
        return True

    def cleanup(self) -> None:
        """Clean up backend resources."""
        pass
