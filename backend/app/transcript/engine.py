import logging
import time
from typing import Callable, Optional

from core.logger import log_event
from core.state import TranscriptionStatus
from app.interview.errors import DeviceUnavailable, InterviewCoreError, PermissionDenied
from app.system_metrics import increment_metric

from .models import (
    ActivityCallback,
    ActivityChange,
    FatalErrorCallback,
    RecognitionBackend,
    SegmentCallback,
    TranscriptHandle,
    TranscriptSegment,
)
from .state import TranscriptState
from . import rules

logger = logging.getLogger("transcript_engine")


class _BoundListener:
    """
    Receives events for one backend run. Every event is checked against the
    generation it was created for, so a stopped handle never calls back.
    """

    def __init__(self, adapter: "TranscriptStreamAdapter", generation: int, run: int):
        self._adapter = adapter
        self.generation = generation
        self.run = run

    def on_result(self, index: int, text: str, is_final: bool) -> None:
        self._adapter._handle_result(self.generation, self.run, index, text, is_final)

    def on_audio_start(self) -> None:
        self._adapter._handle_activity(self.generation, True)

    def on_audio_end(self) -> None:
        self._adapter._handle_activity(self.generation, False)

    def on_end(self) -> None:
        self._adapter._handle_end(self.generation, self.run)

    def on_error(self, code: str, message: str = "") -> None:
        self._adapter._handle_error(self.generation, code, message)


class TranscriptStreamAdapter:
    """
    Restartable, at-least-once delivery of speech-to-text segments.
    At most one live handle; `start` unconditionally invalidates the previous one.
    """

    def __init__(
        self,
        backend: RecognitionBackend,
        session_id: str = "",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backend = backend
        self.session_id = session_id
        self.clock = clock
        self.state = TranscriptState()

    # -------------------------
    # PUBLIC API
    # -------------------------

    def start(
        self,
        on_segment: SegmentCallback,
        on_activity_change: ActivityCallback,
        on_fatal_error: Optional[FatalErrorCallback] = None,
    ) -> TranscriptHandle:
        if self.state.handle is not None:
            self.stop(self.state.handle)

        self.state.generation += 1
        handle = TranscriptHandle(generation=self.state.generation, started_ts=self.clock())
        self.state.bind(handle, on_segment, on_activity_change, on_fatal_error)

        try:
            self._start_backend_run()
        except InterviewCoreError as exc:
            self.state.release(TranscriptionStatus.FAILED)
            handle.last_error = exc.message
            log_event("transcript", "start_failed", self.session_id, error_kind=exc.kind)
            raise
        except Exception as exc:
            self.state.release(TranscriptionStatus.FAILED)
            handle.last_error = str(exc)
            log_event("transcript", "start_failed", self.session_id, error=str(exc))
            raise DeviceUnavailable(f"Speech recognition could not start: {exc}") from exc

        increment_metric("transcript_streams_started")
        log_event("transcript", "started", self.session_id, generation=handle.generation)
        return handle

    def stop(self, handle: Optional[TranscriptHandle]) -> None:
        if handle is None or not handle.active:
            return
        if self.state.handle is not handle:
            handle.status = TranscriptionStatus.STOPPED
            return

        self.state.release(TranscriptionStatus.STOPPED)
        self._stop_backend()
        log_event("transcript", "stopped", self.session_id, generation=handle.generation)

    @property
    def handle(self) -> Optional[TranscriptHandle]:
        return self.state.handle

    @property
    def cumulative_text(self) -> str:
        return self.state.cumulative_text

    def send_audio(self, audio_bytes: bytes) -> None:
        if self.state.handle is None or not self.state.handle.active:
            return
        self.backend.send_audio(audio_bytes)

    # -------------------------
    # BACKEND RUNS
    # -------------------------

    def _start_backend_run(self) -> None:
        run = self.state.next_run()
        listener = _BoundListener(self, self.state.generation, run)
        self.backend.start(listener)

    def _stop_backend(self) -> None:
        try:
            self.backend.stop()
        except Exception as exc:
            logger.warning("Recognition backend stop() ignored during cleanup: %s", exc)

    def _restart(self) -> None:
        handle = self.state.handle
        if handle is None:
            return

        self.state.consecutive_restarts += 1
        if self.state.consecutive_restarts > rules.MAX_CONSECUTIVE_RESTARTS:
            self._fail(DeviceUnavailable("Speech recognition keeps terminating; restart budget exhausted"))
            return

        handle.status = TranscriptionStatus.RESTARTING
        handle.restarts += 1
        increment_metric("transcript_restarts")
        logger.info("Restarting recognition | generation=%s attempt=%s", handle.generation, handle.restarts)
        try:
            self._start_backend_run()
        except InterviewCoreError as exc:
            self._fail(exc)
            return
        except Exception as exc:
            self._fail(DeviceUnavailable(f"Speech recognition restart failed: {exc}"))
            return
        if self.state.handle is handle:
            handle.status = TranscriptionStatus.LISTENING

    def _fail(self, error: InterviewCoreError) -> None:
        callback = self.state.on_fatal_error
        handle = self.state.release(TranscriptionStatus.FAILED)
        if handle is not None:
            handle.last_error = error.message
        self._stop_backend()
        increment_metric("transcript_fatal_errors")
        log_event("transcript", "fatal_error", self.session_id, error_kind=error.kind)
        if callback is not None:
            try:
                callback(error)
            except Exception:
                logger.exception("Fatal-error callback raised")

    # -------------------------
    # EVENT HANDLERS
    # -------------------------

    def _handle_result(self, generation: int, run: int, index: int, text: str, is_final: bool) -> None:
        if not self.state.is_current(generation):
            logger.debug("Late result ignored | generation=%s", generation)
            return

        self.state.consecutive_restarts = 0
        now = self.clock()
        text = (text or "").strip()

        if is_final:
            if not self.state.register_final(run, index, text, now):
                logger.debug("Duplicate final result ignored | run=%s index=%s", run, index)
                return
            segment = TranscriptSegment(
                interim_text=self.state.interim_text,
                final_text=text,
                cumulative_text=self.state.cumulative_text,
                generation=generation,
                received_ts=now,
            )
        else:
            if run != self.state.run:
                return
            self.state.register_interim(index, text)
            segment = TranscriptSegment(
                interim_text=self.state.interim_text,
                final_text="",
                cumulative_text=self.state.cumulative_text,
                generation=generation,
                received_ts=now,
            )

        self._emit(self.state.on_segment, segment)

    def _handle_activity(self, generation: int, active: bool) -> None:
        if not self.state.is_current(generation):
            return
        self._emit(self.state.on_activity_change, ActivityChange(active=active, timestamp=self.clock()))

    def _handle_end(self, generation: int, run: int) -> None:
        if not self.state.is_current(generation):
            return
        if run != self.state.run:
            return
        self._restart()

    def _handle_error(self, generation: int, code: str, message: str) -> None:
        if not self.state.is_current(generation):
            return

        normalized = str(code or "").strip().lower()
        if normalized in rules.PERMISSION_ERROR_CODES:
            self._fail(PermissionDenied(message or "Microphone or recognition access was refused"))
        elif normalized in rules.DEVICE_ERROR_CODES:
            self._fail(DeviceUnavailable(message or "No usable audio input or recognition capability"))
        elif normalized in rules.TRANSIENT_ERROR_CODES:
            logger.debug("Transient recognition error: %s", normalized)
        else:
            logger.warning("Speech recognition error: %s %s", normalized, message)

    def _emit(self, callback, payload) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception:
            logger.exception("Transcript consumer callback raised")
