"""Session controller: the single owner of recording and pipeline state."""

import uuid
import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Awaitable, Dict, Optional

from ..errors import AlreadyRecording, FlushTimeout, TranscriptionServiceError, Voice2ModelError
from ..generation.pipeline import GenerationPipeline, PipelineStage
from ..models.artifacts import PublishedAsset
from ..models.events import SessionEvent
from ..models.session import CaptureStatus, RecordingSession, SessionState
from ..storage.file_manager import FileManager
from .events import SessionEventPublisher
from .notifier import MODEL_READY_EVENT, ClientNotifier

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    SessionState.IDLE: {SessionState.RECORDING, SessionState.NORMALIZING, SessionState.FAILED},
    SessionState.RECORDING: {SessionState.STOPPING, SessionState.FAILED},
    SessionState.STOPPING: {SessionState.FLUSHED, SessionState.FAILED},
    SessionState.FLUSHED: {SessionState.NORMALIZING, SessionState.FAILED},
    SessionState.NORMALIZING: {SessionState.TRANSCRIBING, SessionState.FAILED},
    SessionState.TRANSCRIBING: {SessionState.GENERATING, SessionState.FAILED},
    SessionState.GENERATING: {SessionState.PUBLISHING, SessionState.FAILED},
    SessionState.PUBLISHING: {SessionState.IDLE, SessionState.FAILED},
    SessionState.FAILED: {SessionState.IDLE},
}


class SessionController:
    """Drives one session at a time from start to published model.

    Every state change goes through ``_transition``, which rejects anything
    not in ``ALLOWED_TRANSITIONS``. All mutation happens on the event loop
    thread. A session is claimed before the first ``await`` of a command, so
    a second command arriving meanwhile sees ``is_busy`` and is rejected.
    """

    def __init__(self,
                 capture,
                 normalizer,
                 transcriber,
                 pipeline: GenerationPipeline,
                 notifier: ClientNotifier,
                 file_manager: FileManager,
                 max_recording_seconds: float = 10.0,
                 event_publisher: Optional[SessionEventPublisher] = None,
                 keep_audio: bool = False):
        """Initialize session controller.

        Args:
            capture: Audio capture session (AudioCapture)
            normalizer: Format normalizer (FormatNormalizer)
            transcriber: Transcription backend
            pipeline: Generation pipeline
            notifier: Client notifier for modelReady events
            file_manager: Local storage layout
            max_recording_seconds: Hard limit after which a recording is force-stopped
            event_publisher: Optional publisher for lifecycle events
            keep_audio: Keep raw/normalized audio after a successful run
        """
        self.capture = capture
        self.normalizer = normalizer
        self.transcriber = transcriber
        self.pipeline = pipeline
        self.notifier = notifier
        self.file_manager = file_manager
        self.max_recording_seconds = max_recording_seconds
        self.event_publisher = event_publisher
        self.keep_audio = keep_audio

        self.state = SessionState.IDLE
        self.session: Optional[RecordingSession] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._run_task: Optional[asyncio.Task] = None

    @property
    def is_busy(self) -> bool:
        # A session is claimed before its capture finishes starting
        return self.state is not SessionState.IDLE or self.session is not None

    async def start(self) -> RecordingSession:
        """Start a new microphone session.

        Raises:
            AlreadyRecording: A session is already active
            DeviceError: The microphone or sink could not be opened
        """
        if self.is_busy:
            raise AlreadyRecording(f"Already recording (state={self.state.value})")

        session_id = self.file_manager.create_session_id()
        session = RecordingSession(
            session_id=session_id,
            raw_audio_path=self.file_manager.raw_audio_path(session_id),
            normalized_audio_path=self.file_manager.normalized_audio_path(session_id),
        )
        self.session = session

        try:
            await self.capture.start(session.raw_audio_path)
        except Exception as e:
            logger.error(f"Error starting recording: {e}")
            self._fail(session, e)
            raise

        session.status = CaptureStatus.RECORDING
        self._transition(SessionState.RECORDING)
        loop = asyncio.get_running_loop()
        self._timeout_handle = loop.call_later(self.max_recording_seconds, self._on_timeout)
        return session

    async def stop(self) -> Optional[PublishedAsset]:
        """Stop the microphone session and wait for its pipeline run.

        A stop while nothing is recording is a no-op and returns None. A stop
        that arrives after the timeout already stopped the session waits for
        that same run.
        """
        if self.state is SessionState.RECORDING:
            self._begin_stop(reason="manual")

        task = self._run_task
        session = self.session
        if task is None or session is None or session.source != "microphone":
            logger.info("Stop requested with no active recording; nothing to do")
            return None
        return await asyncio.shield(task)

    async def process_upload(self, upload_path: Path) -> PublishedAsset:
        """Run a pre-recorded file through normalization, transcription and generation.

        Raises:
            AlreadyRecording: Another session is active
        """
        if self.is_busy:
            raise AlreadyRecording(f"Cannot process upload while busy (state={self.state.value})")

        upload_path = Path(upload_path)
        session = RecordingSession(
            session_id=self.file_manager.create_session_id(),
            raw_audio_path=upload_path,
            normalized_audio_path=self.file_manager.converted_upload_path(upload_path),
            status=CaptureStatus.FLUSHED,
            source="upload",
        )
        self.session = session
        self._transition(SessionState.NORMALIZING)
        task = self._spawn(session, lambda: self._process_audio(session))
        return await asyncio.shield(task)

    def _begin_stop(self, reason: str) -> None:
        self._cancel_timeout()
        session = self.session
        session.status = CaptureStatus.STOPPING
        self._transition(SessionState.STOPPING, reason=reason)
        self._spawn(session, lambda: self._process_recording(session))

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        if self.state is not SessionState.RECORDING:
            return
        logger.warning(f"Recording timeout after {self.max_recording_seconds}s; stopping session")
        self._begin_stop(reason="timeout")

    def _cancel_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def _spawn(self, session: RecordingSession,
               work: Callable[[], Awaitable[PublishedAsset]]) -> asyncio.Task:
        task = asyncio.ensure_future(self._run_guarded(session, work))
        task.add_done_callback(self._on_run_done)
        self._run_task = task
        return task

    @staticmethod
    def _on_run_done(task: asyncio.Task) -> None:
        # Failures are logged in _run_guarded; this only marks them retrieved
        if not task.cancelled():
            task.exception()

    async def _run_guarded(self, session: RecordingSession,
                           work: Callable[[], Awaitable[PublishedAsset]]) -> PublishedAsset:
        try:
            asset = await work()
        except asyncio.CancelledError:
            logger.warning(f"Session {session.session_id} cancelled in state {self.state.value}")
            self._fail(session, "cancelled")
            raise
        except Exception as e:
            logger.error(f"Session {session.session_id} failed in state {self.state.value}: {e}",
                         exc_info=not isinstance(e, Voice2ModelError))
            self._fail(session, e)
            raise

        self._complete(session)
        return asset

    async def _process_recording(self, session: RecordingSession) -> PublishedAsset:
        try:
            await self.capture.stop()
        except FlushTimeout as e:
            logger.warning(f"{e}")

        session.status = CaptureStatus.FLUSHED
        self._transition(SessionState.FLUSHED)
        self._transition(SessionState.NORMALIZING)
        return await self._process_audio(session)

    async def _process_audio(self, session: RecordingSession) -> PublishedAsset:
        artifact = await self.normalizer.normalize(session.raw_audio_path, session.normalized_audio_path)

        self._transition(SessionState.TRANSCRIBING)
        text = (await self.transcriber.transcribe(artifact)).strip()
        if not text:
            raise TranscriptionServiceError("No speech detected in recording")
        session.transcript = text
        logger.info(f"Transcription: {text}")

        self._transition(SessionState.GENERATING)
        asset = await self.pipeline.run(text, on_stage=self._on_pipeline_stage)

        self.notifier.notify(MODEL_READY_EVENT, {"url": asset.url})
        return asset

    def _on_pipeline_stage(self, stage: PipelineStage) -> None:
        if stage is PipelineStage.PUBLISH:
            self._transition(SessionState.PUBLISHING)

    def _complete(self, session: RecordingSession) -> None:
        if not self.keep_audio:
            if session.source == "microphone":
                self.file_manager.discard_files(session.raw_audio_path, session.normalized_audio_path)
            else:
                self.file_manager.discard_files(session.normalized_audio_path)
        self._reset(session)

    def _fail(self, session: RecordingSession, error: Any) -> None:
        if session.status in (CaptureStatus.IDLE, CaptureStatus.RECORDING, CaptureStatus.STOPPING):
            session.status = CaptureStatus.FAILED
        session.error = str(error)
        self._transition(SessionState.FAILED, error=str(error))
        self._reset(session)

    def _reset(self, session: RecordingSession) -> None:
        self._cancel_timeout()
        if self.session is session:
            self.session = None
        self._run_task = None
        self._transition(SessionState.IDLE)

    def _transition(self, new_state: SessionState, **metadata: Any) -> None:
        old_state = self.state
        if new_state not in ALLOWED_TRANSITIONS[old_state]:
            raise RuntimeError(f"Illegal session transition {old_state.value} -> {new_state.value}")

        self.state = new_state
        session_id = self.session.session_id if self.session else None
        logger.info(f"Session {session_id}: {old_state.value} -> {new_state.value}")

        if self.event_publisher is not None:
            self.event_publisher.publish(SessionEvent(
                event_id=uuid.uuid4().hex,
                event_type=new_state.value,
                session_id=session_id,
                previous_state=old_state.value,
                metadata=metadata,
            ))

    def get_status(self) -> Dict[str, Any]:
        """Get a snapshot of the controller and capture state."""
        stats = self.capture.get_recording_stats()
        return {
            "state": self.state.value,
            "session_id": self.session.session_id if self.session else None,
            "is_recording": self.state is SessionState.RECORDING,
            "duration_seconds": round(stats.duration_seconds, 2) if self.state is SessionState.RECORDING else 0.0,
            "peak_level": round(stats.peak_level, 3),
        }

    async def shutdown(self) -> None:
        """Cancel timers, stop capture and abandon any in-flight run."""
        self._cancel_timeout()
        session = self.session
        task = self._run_task

        if self.state is SessionState.RECORDING and session is not None:
            self.capture.close()
            self._fail(session, "server shutdown")
        elif task is not None and not task.done():
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception) as e:
                logger.debug(f"In-flight run ended during shutdown: {e!r}")
        self.capture.close()
        logger.info("SessionController shut down")
