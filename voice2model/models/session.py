"""Session-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional


class CaptureStatus(Enum):
    """Status of a single microphone capture attempt."""
    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"
    FLUSHED = "flushed"
    FAILED = "failed"


class SessionState(Enum):
    """States of the session controller."""
    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"
    FLUSHED = "flushed"
    NORMALIZING = "normalizing"
    TRANSCRIBING = "transcribing"
    GENERATING = "generating"
    PUBLISHING = "publishing"
    FAILED = "failed"


@dataclass
class RecordingSession:
    """One capture (or upload) attempt, owned by the session controller."""
    session_id: str
    raw_audio_path: Path
    normalized_audio_path: Path
    start_time: datetime = field(default_factory=datetime.now)
    status: CaptureStatus = CaptureStatus.IDLE
    source: str = "microphone"  # "microphone" | "upload"
    transcript: Optional[str] = None
    error: Optional[str] = None

    @property
    def elapsed_seconds(self) -> float:
        return (datetime.now() - self.start_time).total_seconds()
