"""Google Speech-to-Text transcription backend."""

import time
import wave
import asyncio
import logging
from typing import Optional

from .base import AbstractTranscriptionBackend
from ..errors import TranscriptionServiceError
from ..models.audio import NormalizedAudioArtifact

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

logger = logging.getLogger(__name__)


class GoogleSpeechBackend(AbstractTranscriptionBackend):
    """Google Speech-to-Text API backend for transcription."""

    service_name = "Google Speech-to-Text"

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 language: str = "en-US",
                 use_enhanced: bool = True,
                 enable_automatic_punctuation: bool = True,
                 model: str = "latest_short",
                 request_timeout: float = 30.0):
        """Initialize Google Speech backend.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            language: Language code (e.g., 'en-US', 'es-ES')
            use_enhanced: Whether to use enhanced model (costs more but better quality)
            enable_automatic_punctuation: Enable automatic punctuation
            model: Recognition model name
            request_timeout: Per-request deadline in seconds
        """
        super().__init__(language)
        self.credentials_path = credentials_path
        if not self.credentials_path:
            raise ValueError("Google credentials path is required - cannot initialize without credentials")
        self.use_enhanced = use_enhanced
        self.enable_automatic_punctuation = enable_automatic_punctuation
        self.model = model
        self.request_timeout = request_timeout
        self.client = None
        self.project_id = None

    def initialize(self) -> bool:
        """Initialize Google Speech client and verify credentials."""
        logger.info(f"Loading Google credentials from: {self.credentials_path}")
        credentials = service_account.Credentials.from_service_account_file(self.credentials_path)

        self.client = speech.SpeechClient(credentials=credentials)
        self.project_id = credentials.project_id
        logger.info(f"Using Google Cloud project: {self.project_id}")
        return True

    def _recognition_config(self, artifact: NormalizedAudioArtifact) -> speech.RecognitionConfig:
        return speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=artifact.sample_rate,
            audio_channel_count=artifact.channels,
            language_code=self.language,
            use_enhanced=self.use_enhanced,
            enable_automatic_punctuation=self.enable_automatic_punctuation,
            model=self.model,
        )

    def _recognize(self, artifact: NormalizedAudioArtifact) -> speech.RecognizeResponse:
        with wave.open(str(artifact.path), 'rb') as wf:
            pcm = wf.readframes(wf.getnframes())
        audio = speech.RecognitionAudio(content=pcm)
        return self.client.recognize(config=self._recognition_config(artifact), audio=audio,
                                     timeout=self.request_timeout)

    async def transcribe(self, artifact: NormalizedAudioArtifact) -> str:
        """Transcribe a normalized file using Google Speech-to-Text."""
        if self.client is None:
            raise TranscriptionServiceError("Google Speech backend used before initialize()")

        start_time = time.time()
        try:
            response = await asyncio.to_thread(self._recognize, artifact)
        except gax_exceptions.DeadlineExceeded as e:
            logger.error(f"Google STT recognize deadline exceeded for {artifact.path}")
            raise TranscriptionServiceError(f"Google Speech recognize timeout: {e}") from e
        except gax_exceptions.GoogleAPICallError as e:
            logger.error(f"Google STT API call error for {artifact.path}: {e}")
            raise TranscriptionServiceError(f"Google Speech API error: {e.message}", status=e.code) from e

        transcript = " ".join(
            result.alternatives[0].transcript.strip()
            for result in response.results
            if result.alternatives
        ).strip()
        logger.debug(f"Transcript='{transcript}' ({time.time() - start_time:.3f}s)")
        return transcript

    def cleanup(self) -> None:
        """Clean up Google Speech client resources."""
        self.client = None
