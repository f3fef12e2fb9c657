"""Deterministic artifact file naming derived from prompts."""

import re

from ..models.artifacts import ArtifactKind

DEFAULT_MAX_LENGTH = 20
FALLBACK_STEM = "untitled"

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def sanitize_file_stem(prompt: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Keep only ASCII letters and digits, truncated to ``max_length``.

    Different prompts may map to the same stem; their files overwrite each other.
    """
    stem = _NON_ALNUM.sub("", prompt or "")[:max_length]
    return stem or FALLBACK_STEM[:max_length]


def artifact_file_name(kind: ArtifactKind, prompt: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """e.g. ``model_afriendlysquirrel.glb``"""
    return f"{kind.value}_{sanitize_file_stem(prompt, max_length)}{kind.extension}"
