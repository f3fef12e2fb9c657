"""Audio-related data models."""

from dataclasses import dataclass
from pathlib import Path


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    chunk_size: int
    total_chunks: int
    bytes_written: int
    peak_level: float


@dataclass
class NormalizedAudioArtifact:
    """Audio file re-encoded to mono, 16-bit linear PCM at 16 kHz."""
    path: Path
    sample_rate: int
    channels: int
    sample_width: int
    frames: int

    @property
    def duration_seconds(self) -> float:
        return self.frames / float(self.sample_rate)

    @property
    def size_bytes(self) -> int:
        return self.path.stat().st_size
