"""Audio capture and normalization module."""

from .capture import AudioCapture
from .normalizer import FormatNormalizer

__all__ = [
    'AudioCapture',
    'FormatNormalizer'
]
