"""Local storage for recordings and generated artifacts."""

from .file_manager import FileManager

__all__ = ["FileManager"]
