"""Generation artifact models."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class ArtifactKind(Enum):
    """Kind of artifact produced by a generation stage."""
    IMAGE = "image"
    MODEL = "model"

    @property
    def extension(self) -> str:
        return ".png" if self is ArtifactKind.IMAGE else ".glb"


@dataclass
class GenerationArtifact:
    """Output of one generation stage."""
    kind: ArtifactKind
    payload: bytes
    name: str  # sanitized file name, e.g. "model_afriendlysquirrel.glb"
    source_prompt: str
    path: Optional[Path] = None


@dataclass
class PublishedAsset:
    """Terminal artifact after it has been pushed to the remote store."""
    artifact: GenerationArtifact
    local_path: Path
    remote_path: str
    url: str  # relative URL under the static artifact prefix
    previous_version: Optional[str] = None
    version: Optional[str] = None

    @property
    def is_update(self) -> bool:
        return self.previous_version is not None
