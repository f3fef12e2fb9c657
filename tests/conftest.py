"""Pytest configuration and fixtures for voice2model tests."""

import os
import stat
import time
import uuid
import wave
import asyncio
import logging
import tempfile
from pathlib import Path
from unittest.mock import Mock, patch

import numpy as np
import pytest

from voice2model.errors import FlushTimeout, ImageGenerationError
from voice2model.generation.base import ArtifactPublisher, ImageGenerator, ModelGenerator, PromptOptimizer
from voice2model.generation.stability import GLB_MAGIC, PNG_SIGNATURE
from voice2model.storage.file_manager import FileManager
from voice2model.transcription.base import AbstractTranscriptionBackend


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_addoption(parser):
    parser.addoption("--hardware", action="store_true", default=False,
                     help="run tests that need a real microphone")


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external dependencies")
    config.addinivalue_line("markers", "integration: tests wiring several components together")
    config.addinivalue_line("markers", "hardware: tests that need a real microphone")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--hardware"):
        return
    skip_hardware = pytest.mark.skip(reason="needs --hardware")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def file_manager(temp_data_dir):
    return FileManager(temp_data_dir)


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # 1024 samples of a 440 Hz sine at 16 kHz
    sample_rate = 16000
    duration = 1024 / sample_rate
    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * 440 * t)
    return (wave_data * 32767).astype(np.int16).tobytes()


def write_wav(path, frames: bytes = b"", sample_rate: int = 16000, channels: int = 1) -> Path:
    path = Path(path)
    with wave.open(str(path), 'wb') as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(frames)
    return path


@pytest.fixture
def wav_writer():
    return write_wav


@pytest.fixture
def sample_audio_file(temp_data_dir, sample_audio_chunk):
    """Create a canonical WAV file (~0.64 s) for testing."""
    return write_wav(Path(temp_data_dir) / "test_audio.wav", sample_audio_chunk * 10)


@pytest.fixture
def empty_audio_file(temp_data_dir):
    """A WAV file with a valid header and zero frames."""
    return write_wav(Path(temp_data_dir) / "empty_audio.wav")


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        def read_silence(num_frames, exception_on_overflow=True):
            time.sleep(0.005)
            return b'\x00' * (num_frames * 2)

        mock_stream.read.side_effect = read_silence
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


def _write_script(path: Path, body: str) -> str:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def fake_ffmpeg(tmp_path):
    """A stand-in converter that copies its ``-i`` input to its last argument.

    Only usable with inputs that are already canonical WAV files.
    """
    return _write_script(tmp_path / "ffmpeg", (
        'in=""; prev=""; out=""\n'
        'for a in "$@"; do\n'
        '  if [ "$prev" = "-i" ]; then in="$a"; fi\n'
        '  prev="$a"; out="$a"\n'
        'done\n'
        'cp "$in" "$out"\n'
    ))


@pytest.fixture
def failing_ffmpeg(tmp_path):
    return _write_script(tmp_path / "ffmpeg-broken", 'echo "Invalid data found when processing input" >&2\nexit 1\n')


@pytest.fixture
def unique_topic():
    """Fresh pub/sub topic name so subscribers never leak between tests."""
    return f"test_{uuid.uuid4().hex}"


class FakeCapture:
    """Capture stand-in that writes a fixed WAV on start."""

    def __init__(self, frames: bytes = b'\x01\x00' * 1600, flush_timeout: bool = False):
        self.frames = frames
        self.flush_timeout = flush_timeout
        self.start_delay = 0.0
        self.is_recording = False
        self.start_calls = 0
        self.stop_calls = 0
        self.closed = False
        self.fail_start = None

    async def start(self, sink_path):
        self.start_calls += 1
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        if self.fail_start is not None:
            raise self.fail_start
        write_wav(sink_path, self.frames)
        self.is_recording = True

    async def stop(self):
        self.stop_calls += 1
        self.is_recording = False
        if self.flush_timeout:
            raise FlushTimeout(f"Sink not flushed; continuing with {len(self.frames)} bytes")

    def get_recording_stats(self):
        stats = Mock()
        stats.duration_seconds = 0.5 if self.is_recording else 0.0
        stats.peak_level = 0.1
        return stats

    def close(self):
        self.closed = True
        self.is_recording = False


class FakeTranscriber(AbstractTranscriptionBackend):
    def __init__(self, text: str = "a friendly squirrel!!!", error: Exception = None):
        super().__init__()
        self.text = text
        self.error = error
        self.calls = []

    async def transcribe(self, artifact):
        self.calls.append(artifact)
        if self.error is not None:
            raise self.error
        return self.text


class FakeOptimizer(PromptOptimizer):
    def __init__(self, error: Exception = None):
        self.error = error
        self.calls = []

    async def optimize(self, prompt, system_instruction):
        self.calls.append((prompt, system_instruction))
        if self.error is not None:
            raise self.error
        return f"A 3D render of {prompt}"


class FakeImageGenerator(ImageGenerator):
    def __init__(self, error: Exception = None):
        self.error = error
        self.calls = []

    async def generate(self, prompt):
        self.calls.append(prompt)
        if self.error is not None:
            raise self.error
        return PNG_SIGNATURE + b"fake-image"


class FakeModelGenerator(ModelGenerator):
    def __init__(self, error: Exception = None, delay: float = 0.0):
        self.error = error
        self.delay = delay
        self.calls = []

    async def generate(self, image, image_name):
        self.calls.append((image, image_name))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return GLB_MAGIC + b"fake-model"


class FakePublisher(ArtifactPublisher):
    def __init__(self, existing_version: str = None, error: Exception = None):
        self.existing_version = existing_version
        self.error = error
        self.uploads = []

    async def get_version(self, remote_path):
        return self.existing_version

    async def upload(self, remote_path, content, previous_version=None):
        if self.error is not None:
            raise self.error
        self.uploads.append((remote_path, content, previous_version))
        return f"sha{len(self.uploads)}"


class StageServices:
    """Bundle of fake generation services shared by a test."""

    def __init__(self):
        self.optimizer = FakeOptimizer()
        self.image_generator = FakeImageGenerator()
        self.model_generator = FakeModelGenerator()
        self.publisher = FakePublisher()


@pytest.fixture
def fake_capture():
    return FakeCapture()


@pytest.fixture
def fake_transcriber():
    return FakeTranscriber()


@pytest.fixture
def stage_services():
    return StageServices()


@pytest.fixture
def failing_image_services():
    services = StageServices()
    services.image_generator = FakeImageGenerator(error=ImageGenerationError("400 - prompt rejected", status=400))
    return services


@pytest.fixture
def pipeline_factory(file_manager):
    """Build a GenerationPipeline from a StageServices bundle."""
    from voice2model.generation.pipeline import GenerationPipeline

    def build(services: StageServices) -> GenerationPipeline:
        return GenerationPipeline(
            optimizer=services.optimizer,
            image_generator=services.image_generator,
            model_generator=services.model_generator,
            publisher=services.publisher,
            file_manager=file_manager,
            style_modifier="Render a single centered object.",
        )

    return build


@pytest.fixture
def clean_env():
    """Remove secret environment variables for the duration of a test."""
    names = ("OPENAI_API_KEY", "STABILITY_API_KEY", "GITHUB_TOKEN")
    saved = {name: os.environ.pop(name) for name in names if name in os.environ}
    yield
    os.environ.update(saved)


@pytest.fixture
def offloaded_calls():
    """Names of the functions handed to ``asyncio.to_thread`` during a test."""
    names = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        names.append(getattr(func, "__name__", repr(func)))
        return await real_to_thread(func, *args, **kwargs)

    with patch.object(asyncio, "to_thread", recording_to_thread):
        yield names
