"""Audio capture module: streams microphone input into a WAV sink file."""

import asyncio
import pyaudio
import wave
import logging
from pathlib import Path
from threading import Thread, Event
from typing import Optional
from datetime import datetime
import numpy as np

from ..errors import DeviceError, FlushTimeout
from ..models.audio import AudioStats


logger = logging.getLogger(__name__)


class AudioCapture:
    """Microphone capture into a raw-audio sink, one session at a time.

    The device is read on a background thread. The thread closes the sink
    when it exits and reports write completion back to the event loop, so
    ``stop()`` can wait for it without blocking the loop.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_size: int = 1024,
        channels: int = 1,
        format: int = pyaudio.paInt16,
        flush_grace_seconds: float = 1.0,
        release_timeout_seconds: float = 2.0,
    ):
        """Initialize audio capture with specified parameters.

        Args:
            sample_rate: Audio sample rate (16kHz matches the normalized format)
            chunk_size: Size of each audio chunk in samples
            channels: Number of audio channels (1 for mono)
            format: Audio format (16-bit signed int)
            flush_grace_seconds: How long stop() waits for the sink to close
            release_timeout_seconds: How long start() waits for a previous
                capture thread to exit before refusing to start
        """
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.format = format
        self.flush_grace_seconds = flush_grace_seconds
        self.release_timeout_seconds = release_timeout_seconds

        # Recording thread management; each session gets its own stop event
        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_recording = False

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_chunks = 0
        self.bytes_written = 0
        self.peak_level = 0.0

        self.sink_path: Optional[Path] = None

        # Resolved on the event loop once the thread has closed the sink
        self._flushed: Optional[asyncio.Future] = None
        self.error: Optional[BaseException] = None

    async def start(self, sink_path: Path) -> None:
        """Open the device and the sink, then start streaming in the background.

        Raises:
            DeviceError: If the device or the sink cannot be opened, or the
                previous session's thread still holds its handles
        """
        if self.is_recording:
            logger.warning("Recording already in progress")
            return

        await self._release_previous()

        loop = asyncio.get_running_loop()
        sink_path = Path(sink_path)
        instance, stream = self.__open_audio_stream()
        try:
            sink = self.__open_sink(sink_path)
        except (OSError, wave.Error) as e:
            logger.error(f"Failed to open sink {sink_path}: {e}")
            self._close_device(instance, stream)
            raise DeviceError(f"Could not start audio capture: {e}") from e

        stop_event = Event()
        flushed = loop.create_future()
        self.stop_event = stop_event
        self._flushed = flushed
        self.sink_path = sink_path
        self.error = None
        self.total_chunks = 0
        self.bytes_written = 0
        self.peak_level = 0.0

        logger.info(f"Starting audio recording into {sink_path}")
        self.start_time = datetime.now()
        self.recording_thread = Thread(
            target=self._record_continuously,
            args=(instance, stream, sink, stop_event, loop, flushed),
            name="AudioCaptureThread",
            daemon=True,
        )
        self.recording_thread.start()
        self.is_recording = True

    async def stop(self) -> None:
        """Halt capture and wait (bounded) for the sink to be fully written.

        No-op when not recording.

        Raises:
            FlushTimeout: The sink did not confirm completion within the grace period
            DeviceError: The capture thread failed while reading or writing
        """
        if not self.is_recording:
            logger.debug("No recording in progress")
            return

        logger.info("Stopping audio recording")
        self.stop_event.set()
        self.is_recording = False

        try:
            error = await asyncio.wait_for(asyncio.shield(self._flushed), timeout=self.flush_grace_seconds)
        except asyncio.TimeoutError:
            raise FlushTimeout(
                f"Sink {self.sink_path} not flushed after {self.flush_grace_seconds}s; "
                f"continuing with {self.bytes_written} bytes"
            )

        logger.info(f"Recording stopped. Total chunks: {self.total_chunks}")
        if error is not None:
            self.error = error
            raise DeviceError(f"Audio capture failed: {error}") from error

    def __open_audio_stream(self):
        instance = pyaudio.PyAudio()
        try:
            stream = instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.chunk_size,
                stream_callback=None
            )
        except OSError as e:
            logger.error(f"Failed to open audio device: {e}")
            instance.terminate()
            raise DeviceError(f"Could not start audio capture: {e}") from e
        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.chunk_size} samples/chunk")
        return instance, stream

    def __open_sink(self, sink_path: Path) -> wave.Wave_write:
        sink_path.parent.mkdir(parents=True, exist_ok=True)
        sink = wave.open(str(sink_path), 'wb')
        sink.setnchannels(self.channels)
        sink.setsampwidth(pyaudio.get_sample_size(self.format))
        sink.setframerate(self.sample_rate)
        return sink

    def __update_peak_level(self, audio_chunk: bytes) -> None:
        samples = np.frombuffer(audio_chunk, dtype=np.int16)
        if samples.size:
            level = float(np.max(np.abs(samples.astype(np.int32)))) / 32768.0
            self.peak_level = max(self.peak_level, level)

    def _record_continuously(self, instance, stream, sink: wave.Wave_write, stop_event: Event,
                             loop: asyncio.AbstractEventLoop, flushed: asyncio.Future) -> None:
        """Internal method: continuous recording loop in background thread.

        Only touches the handles it was given, never those of a later session.
        """
        error = None
        try:
            while not stop_event.is_set():
                audio_chunk = stream.read(self.chunk_size, exception_on_overflow=False)
                self.total_chunks += 1
                sink.writeframes(audio_chunk)
                self.bytes_written += len(audio_chunk)
                self.__update_peak_level(audio_chunk)
        except Exception as e:
            logger.error(f"Error in capture thread: {e}", exc_info=True)
            error = e
        finally:
            self._close_device(instance, stream)
            sink_error = self._close_sink(sink)
            self._signal_flushed(loop, flushed, error or sink_error)

    @staticmethod
    def _signal_flushed(loop: asyncio.AbstractEventLoop, flushed: asyncio.Future,
                        error: Optional[BaseException]) -> None:
        if loop.is_closed():
            return

        def _resolve() -> None:
            if not flushed.done():
                flushed.set_result(error)

        try:
            loop.call_soon_threadsafe(_resolve)
        except RuntimeError:
            logger.debug("Event loop closed before the sink flush was reported")

    @staticmethod
    def _close_device(instance, stream) -> None:
        try:
            stream.stop_stream()
            stream.close()
        except OSError as e:
            logger.warning(f"Error closing audio stream: {e}")
        instance.terminate()

    @staticmethod
    def _close_sink(sink: wave.Wave_write) -> Optional[BaseException]:
        try:
            sink.close()
        except (OSError, wave.Error) as e:
            logger.error(f"Error closing sink: {e}")
            return e
        return None

    async def _release_previous(self) -> None:
        """Wait off the loop for the previous session's thread to exit.

        The thread closes its own device and sink on the way out.
        """
        thread = self.recording_thread
        if thread is None:
            return
        if thread.is_alive():
            self.stop_event.set()
            await asyncio.to_thread(thread.join, self.release_timeout_seconds)
            if thread.is_alive():
                raise DeviceError(
                    f"Previous capture thread still holds the device after "
                    f"{self.release_timeout_seconds}s; not starting a new recording"
                )
        self.recording_thread = None

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
            bytes_written=self.bytes_written,
            peak_level=self.peak_level,
        )

    def close(self) -> None:
        """Signal the running capture thread to stop.

        The thread closes its device and sink when it exits.
        """
        self.stop_event.set()
        self.is_recording = False
