"""File management module for recordings, uploads and generated artifacts."""

import time
import logging
import random
import string
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, List


logger = logging.getLogger(__name__)


class FileManager:
    """Manages the local data directory used by recording sessions and the pipeline."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize file manager with data directory.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.recordings_dir = self.data_dir / "recordings"
        self.uploads_dir = self.data_dir / "uploads"
        self.models_dir = self.data_dir / "models"
        self.logs_dir = self.data_dir / "logs"

        self._ensure_directories()

        logger.info(f"FileManager initialized with data_dir: {self.data_dir}")

    def _ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        for directory in [self.data_dir, self.recordings_dir, self.uploads_dir,
                          self.models_dir, self.logs_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")

    def create_session_id(self) -> str:
        """Create a new session id from the current timestamp and a random suffix.

        Returns:
            Session ID (YYYYMMDD_HHMMSS_xxxx)
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
        return f"{timestamp}_{random_suffix}"

    def raw_audio_path(self, session_id: str) -> Path:
        return self.recordings_dir / f"temp_{session_id}.wav"

    def normalized_audio_path(self, session_id: str) -> Path:
        return self.recordings_dir / f"temp_converted_{session_id}.wav"

    def upload_path(self, original_name: str) -> Path:
        """Get a unique destination path for an uploaded file.

        Args:
            original_name: File name supplied by the client

        Returns:
            Path inside the uploads directory
        """
        safe_name = Path(original_name or "upload").name
        unique_prefix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
        return self.uploads_dir / f"{unique_prefix}-{safe_name}"

    def converted_upload_path(self, upload_path: Path) -> Path:
        return upload_path.with_name(f"converted-{upload_path.stem}.wav")

    def artifact_path(self, file_name: str) -> Path:
        """Get the path of a generated artifact inside the served models directory."""
        return self.models_dir / file_name

    def save_artifact(self, payload: bytes, file_name: str) -> Path:
        """Write a generated artifact, overwriting any file with the same name.

        Args:
            payload: Raw artifact bytes
            file_name: Sanitized file name

        Returns:
            Full path to the saved file
        """
        artifact_path = self.artifact_path(file_name)
        try:
            artifact_path.write_bytes(payload)
        except OSError as e:
            logger.error(f"Error saving artifact {artifact_path}: {e}")
            raise

        logger.info(f"Artifact saved: {artifact_path} ({len(payload)} bytes)")
        return artifact_path

    def discard_files(self, *paths: Path) -> int:
        """Remove the given files if they exist.

        Returns:
            Number of files removed
        """
        removed = 0
        for path in paths:
            if path is None:
                continue
            try:
                path.unlink()
                removed += 1
                logger.debug(f"Removed file: {path}")
            except FileNotFoundError:
                continue
        return removed

    def list_artifacts(self) -> List[str]:
        """List generated artifact file names, newest first."""
        files = [p for p in self.models_dir.iterdir() if p.is_file()]
        files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        return [p.name for p in files]

    def cleanup_old_recordings(self, max_age_days: int = 30) -> int:
        """Clean up old recordings and uploads.

        Args:
            max_age_days: Maximum age in days before cleanup

        Returns:
            Number of files cleaned up
        """
        cutoff_time = datetime.now().timestamp() - (max_age_days * 24 * 60 * 60)
        cleaned_count = 0

        for directory in [self.recordings_dir, self.uploads_dir]:
            for file_path in directory.iterdir():
                if file_path.is_file() and file_path.stat().st_mtime < cutoff_time:
                    file_path.unlink()
                    cleaned_count += 1
                    logger.info(f"Cleaned up old file: {file_path}")

        logger.info(f"Cleaned up {cleaned_count} old recordings")
        return cleaned_count

    def get_storage_stats(self) -> Dict[str, Any]:
        """Get storage usage statistics.

        Returns:
            Dictionary with storage statistics
        """
        total_size = 0
        audio_files = 0
        artifact_files = 0

        for directory in [self.recordings_dir, self.uploads_dir, self.models_dir]:
            for file_path in directory.rglob("*"):
                if not file_path.is_file():
                    continue
                total_size += file_path.stat().st_size
                if directory == self.models_dir:
                    artifact_files += 1
                else:
                    audio_files += 1

        return {
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
            "audio_files": audio_files,
            "artifact_files": artifact_files,
            "data_directory": str(self.data_dir)
        }
