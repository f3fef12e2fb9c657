"""Data models for the voice2model application."""

from .audio import AudioStats, NormalizedAudioArtifact
from .artifacts import ArtifactKind, GenerationArtifact, PublishedAsset
from .events import SessionEvent
from .session import CaptureStatus, RecordingSession, SessionState

__all__ = [
    "AudioStats",
    "NormalizedAudioArtifact",
    "ArtifactKind",
    "GenerationArtifact",
    "PublishedAsset",
    "SessionEvent",
    "CaptureStatus",
    "RecordingSession",
    "SessionState",
]
