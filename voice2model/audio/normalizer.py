"""Format normalization through an external ffmpeg process."""

import asyncio
import logging
import shutil
import wave
from pathlib import Path
from typing import List, Union

from ..errors import ConversionFailed
from ..models.audio import NormalizedAudioArtifact

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = 16000
TARGET_CHANNELS = 1
TARGET_SAMPLE_WIDTH = 2  # bytes, signed 16-bit little endian


def resolve_ffmpeg_bin(ffmpeg_bin: str = "ffmpeg") -> str:
    ffmpeg_bin = (ffmpeg_bin or "ffmpeg").strip()

    if Path(ffmpeg_bin).exists():
        return ffmpeg_bin

    found = shutil.which(ffmpeg_bin)
    if found:
        return found

    logger.warning(f"ffmpeg binary {ffmpeg_bin!r} not found on PATH")
    return ffmpeg_bin


class FormatNormalizer:
    """Re-encodes arbitrary audio into mono 16-bit PCM WAV at 16 kHz."""

    def __init__(self, ffmpeg_bin: str = "ffmpeg", timeout_seconds: float = 60.0):
        self.ffmpeg_bin = resolve_ffmpeg_bin(ffmpeg_bin)
        self.timeout_seconds = timeout_seconds

    def build_command(self, input_path: Path, output_path: Path) -> List[str]:
        return [
            self.ffmpeg_bin,
            "-y",
            "-i",
            str(input_path),
            "-vn",
            "-acodec",
            "pcm_s16le",
            "-ac",
            str(TARGET_CHANNELS),
            "-ar",
            str(TARGET_SAMPLE_RATE),
            "-f",
            "wav",
            str(output_path),
        ]

    async def normalize(self, raw_path: Union[str, Path], output_path: Union[str, Path]) -> NormalizedAudioArtifact:
        """Convert ``raw_path`` into the canonical format at ``output_path``.

        Raises:
            ConversionFailed: Input missing/empty, converter missing or exited
                non-zero, or the output is missing, empty or not canonical
        """
        raw_path = Path(raw_path)
        output_path = Path(output_path)

        if not raw_path.exists() or raw_path.stat().st_size == 0:
            raise ConversionFailed(f"Raw audio file is missing or empty: {raw_path}")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        args = self.build_command(raw_path, output_path)
        logger.debug(f"Running converter: {' '.join(args)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ConversionFailed(
                f"ffmpeg binary not usable: {self.ffmpeg_bin}. "
                "Install ffmpeg and ensure it is in PATH (or set normalizer.ffmpeg_bin)."
            ) from e

        try:
            _stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ConversionFailed(f"ffmpeg timed out after {self.timeout_seconds}s converting {raw_path}")

        if process.returncode != 0:
            detail = stderr.decode(errors='ignore').strip()[-500:]
            raise ConversionFailed(f"ffmpeg failed (code={process.returncode}): {detail}")

        artifact = self._probe(output_path)
        logger.info(f"Converted WAV file: {output_path} ({artifact.duration_seconds:.2f}s)")
        return artifact

    def _probe(self, output_path: Path) -> NormalizedAudioArtifact:
        """Check that the converter really produced canonical, non-empty audio."""
        if not output_path.exists() or output_path.stat().st_size == 0:
            raise ConversionFailed(f"Converted audio file is missing or empty: {output_path}")

        try:
            with wave.open(str(output_path), 'rb') as wf:
                artifact = NormalizedAudioArtifact(
                    path=output_path,
                    sample_rate=wf.getframerate(),
                    channels=wf.getnchannels(),
                    sample_width=wf.getsampwidth(),
                    frames=wf.getnframes(),
                )
        except (wave.Error, EOFError) as e:
            raise ConversionFailed(f"Converted audio is not a readable WAV file: {e}") from e

        if (artifact.sample_rate, artifact.channels, artifact.sample_width) != (
                TARGET_SAMPLE_RATE, TARGET_CHANNELS, TARGET_SAMPLE_WIDTH):
            raise ConversionFailed(
                f"Converted audio has unexpected format: {artifact.sample_rate}Hz, "
                f"{artifact.channels}ch, {artifact.sample_width * 8}-bit"
            )
        if artifact.frames == 0:
            raise ConversionFailed(f"Converted audio contains no audio frames: {output_path}")

        return artifact
