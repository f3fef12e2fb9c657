"""Transcription module for voice2model."""

from .base import AbstractTranscriptionBackend
from .whisper_backend import WhisperBackend

__all__ = [
    "AbstractTranscriptionBackend",
    "WhisperBackend",
]
