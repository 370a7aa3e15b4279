from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from core.config import ANALYSIS_DEBOUNCE_SEC, EVALUATION_TIMEOUT_SEC
from core.logger import log_event
from app.analysis.engine import CommunicationAnalysisEngine
from app.analysis.models import AnalysisSnapshot
from app.interview.errors import (
    DeviceUnavailable,
    EvaluationFailed,
    EvaluationTimeout,
    InterviewCoreError,
    InvalidTransition,
    OperationResult,
    SessionBusy,
    SessionNotLoaded,
)
from app.interview.gateway import InterviewGateway
from app.interview.models import (
    Answer,
    AnswerDraft,
    InterviewConfig,
    InterviewSession,
    MediaRefs,
    Question,
    SessionProgress,
    SessionState,
    SessionStatus,
)
from app.session.event_bus import (
    TOPIC_ANALYSIS,
    TOPIC_STATE,
    TOPIC_TRANSCRIPT,
    TOPIC_WARNING,
    SessionEventBus,
)
from app.system_metrics import (
    decrement_metric,
    increment_metric,
    observe_evaluation_latency_ms,
)
from app.transcript.engine import TranscriptStreamAdapter
from app.transcript.models import TranscriptHandle, TranscriptSegment

logger = logging.getLogger("session_controller")

_STATUS_TO_STATE = {
    SessionStatus.SCHEDULED: SessionState.IDLE,
    SessionStatus.ACTIVE: SessionState.ACTIVE,
    SessionStatus.PAUSED: SessionState.PAUSED,
    SessionStatus.COMPLETED: SessionState.COMPLETED,
}


class InterviewSessionController:
    """
    Authoritative lifecycle of one interview attempt.

    idle -> active <-> paused -> completed, with a transient `loading` state
    around every external call. Every public operation returns an
    OperationResult; events that make no sense for the current state are
    no-ops, so duplicate UI actions never crash the session.
    """

    def __init__(
        self,
        gateway: InterviewGateway,
        adapter: Optional[TranscriptStreamAdapter] = None,
        clock: Callable[[], float] = time.monotonic,
        evaluation_timeout_sec: float = EVALUATION_TIMEOUT_SEC,
        analysis_debounce_sec: float = ANALYSIS_DEBOUNCE_SEC,
    ):
        self.gateway = gateway
        self.adapter = adapter
        self.clock = clock
        self.evaluation_timeout_sec = max(0.001, float(evaluation_timeout_sec))

        self.session: Optional[InterviewSession] = None
        self.events = SessionEventBus()
        self.analysis = CommunicationAnalysisEngine(
            on_analysis=self._on_analysis,
            clock=clock,
            debounce_sec=analysis_debounce_sec,
        )

        self.drafts: dict[str, AnswerDraft] = {}
        self.warnings: list[dict] = []
        self.last_error: Optional[str] = None

        self._state = SessionState.IDLE
        self._handle: Optional[TranscriptHandle] = None
        self._recording_question_id: Optional[str] = None
        self._elapsed_base = 0.0
        self._timer_started_at: Optional[float] = None
        self._tasks: set[asyncio.Task] = set()
        self._in_progress = False

    # -------------------------
    # VIEWS
    # -------------------------

    @property
    def session_id(self) -> str:
        return self.session.session_id if self.session else ""

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def cursor(self) -> int:
        return self.session.current_question if self.session else 0

    @property
    def current_question(self) -> Optional[Question]:
        if self.session is None or self._state in (SessionState.IDLE, SessionState.COMPLETED):
            return None
        if 0 <= self.cursor < len(self.session.questions):
            return self.session.questions[self.cursor]
        return None

    @property
    def answers(self) -> tuple[Answer, ...]:
        return tuple(self.session.answers) if self.session else ()

    @property
    def elapsed_sec(self) -> float:
        running = 0.0
        if self._timer_started_at is not None:
            running = max(0.0, self.clock() - self._timer_started_at)
        return self._elapsed_base + running

    @property
    def progress(self) -> SessionProgress:
        total = len(self.session.questions) if self.session else 0
        return SessionProgress(
            current_question_index=self.cursor,
            total_questions=total,
            completed_questions=len(self.answers),
            time_elapsed_sec=self.elapsed_sec,
        )

    @property
    def is_recording(self) -> bool:
        return self._handle is not None and self._handle.active

    def current_draft(self) -> Optional[AnswerDraft]:
        question = self.current_question
        if question is None:
            return None
        return self._draft_for(question.question_id)

    def subscribe(self, topic: str, handler: Callable[[str, Any], None]) -> Callable[[], None]:
        return self.events.subscribe(topic, handler)

    def snapshot_view(self) -> dict:
        question = self.current_question
        draft = self.drafts.get(question.question_id) if question else None
        return {
            "session_id": self.session_id,
            "state": self._state.value,
            "current_question": question.to_dict() if question else None,
            "progress": self.progress.to_dict(),
            "answers": [a.to_dict() for a in self.answers],
            "performance": self.session.performance.to_dict() if self.session and self.session.performance else None,
            "recording": self.is_recording,
            "draft": {
                "text": draft.text,
                "transcript": draft.transcript,
                "analysis": draft.analysis.to_dict() if draft.analysis else None,
            } if draft else None,
            "warnings": list(self.warnings),
        }

    # -------------------------
    # LIFECYCLE EVENTS
    # -------------------------

    async def create(self, config: InterviewConfig) -> OperationResult:
        if self._state == SessionState.LOADING:
            return self._busy("create")
        if self._state != SessionState.IDLE or (self.session and self.session.status != SessionStatus.SCHEDULED):
            return self._noop("create", "create is only valid before the interview starts")

        self._enter_loading()
        try:
            session = await self._call(self.gateway.create_interview(config))
        except InterviewCoreError as exc:
            return self._revert("create", SessionState.IDLE, exc)

        self.session = session
        self._bind_session_id()
        self._elapsed_base = 0.0
        self._transition(SessionState.IDLE)
        log_event("session", "created", self.session_id, questions=len(session.questions))
        return OperationResult.ok(session_id=session.session_id)

    async def load(self, session_id: str) -> OperationResult:
        if self._state == SessionState.LOADING:
            return self._busy("load")
        if self._state != SessionState.IDLE:
            return self._noop("load", f"load while {self._state.value}")

        self._enter_loading()
        try:
            session = await self._call(self.gateway.load_interview(session_id))
        except InterviewCoreError as exc:
            return self._revert("load", SessionState.IDLE, exc)

        status = SessionStatus.parse(session.status)
        session.status = status
        if not session.current_question:
            session.current_question = len(session.answers)

        target = _STATUS_TO_STATE[status]
        if target in (SessionState.ACTIVE, SessionState.PAUSED) and session.questions:
            session.current_question = max(0, min(session.current_question, len(session.questions) - 1))

        self.session = session
        self._bind_session_id()
        self._elapsed_base = max(0.0, float(session.elapsed_sec or 0.0))
        self.drafts.clear()
        if target in (SessionState.ACTIVE, SessionState.PAUSED):
            self._open_draft()
            self._mark_in_progress()
        if target == SessionState.ACTIVE:
            self._start_timer()
        self._transition(target)
        log_event("session", "loaded", self.session_id, state=target, cursor=session.current_question)
        return OperationResult.ok(session_id=session.session_id, state=target.value)

    async def start(self) -> OperationResult:
        if self._state == SessionState.LOADING:
            return self._busy("start")
        if self._state != SessionState.IDLE:
            return self._noop("start", f"start while {self._state.value}")
        if self.session is None:
            return self._not_loaded("start")

        self._enter_loading()
        try:
            started = await self._call(self.gateway.start_interview(self.session_id))
        except InterviewCoreError as exc:
            return self._revert("start", SessionState.IDLE, exc)

        self.session.questions = list(started.questions or self.session.questions)
        self.session.status = SessionStatus.ACTIVE
        self.session.current_question = 0
        if not self.session.questions:
            # Nothing to answer; the cursor invariant cannot hold while active.
            self._transition(SessionState.IDLE)
            return OperationResult.failed(InvalidTransition("Interview has no questions"))

        self._open_draft()
        self._start_timer()
        increment_metric("sessions_started")
        self._mark_in_progress()
        self._transition(SessionState.ACTIVE)
        log_event("session", "started", self.session_id, questions=len(self.session.questions))
        return OperationResult.ok(current_question=self.current_question.to_dict())

    def pause(self) -> OperationResult:
        if self._state != SessionState.ACTIVE:
            return self._noop("pause", f"pause while {self._state.value}")

        self.stop_recording()
        self._stop_timer()
        self.session.status = SessionStatus.PAUSED
        self._transition(SessionState.PAUSED)
        self._acknowledge("pause", self.gateway.pause_interview(self.session_id))
        log_event("session", "paused", self.session_id, cursor=self.cursor)
        return OperationResult.ok()

    def resume(self) -> OperationResult:
        if self._state != SessionState.PAUSED:
            return self._noop("resume", f"resume while {self._state.value}")

        self._start_timer()
        self.session.status = SessionStatus.ACTIVE
        self._transition(SessionState.ACTIVE)
        self._acknowledge("resume", self.gateway.resume_interview(self.session_id))
        log_event("session", "resumed", self.session_id, cursor=self.cursor)
        return OperationResult.ok()

    async def end(self) -> OperationResult:
        if self._state == SessionState.LOADING:
            return self._busy("end")
        if self._state not in (SessionState.ACTIVE, SessionState.PAUSED):
            return self._noop("end", f"end while {self._state.value}")

        prior = self._state
        self.stop_recording()
        self._enter_loading()
        try:
            result = await self._call(self.gateway.end_interview(self.session_id))
        except InterviewCoreError as exc:
            return self._revert("end", prior, exc)

        self._complete(result.performance)
        return OperationResult.ok(performance=result.performance.to_dict())

    # -------------------------
    # ANSWER SUBMISSION
    # -------------------------

    async def submit_answer(
        self,
        question_id: str,
        text: str = "",
        snapshot: Optional[AnalysisSnapshot] = None,
        media: Optional[MediaRefs] = None,
    ) -> OperationResult:
        if self._state == SessionState.LOADING:
            return self._busy("submit_answer")
        if self._state not in (SessionState.ACTIVE, SessionState.PAUSED):
            return self._noop("submit_answer", f"submit while {self._state.value}")

        index = next(
            (i for i, q in enumerate(self.session.questions) if q.question_id == question_id),
            None,
        )
        if index is None:
            return self._invalid("submit_answer", f"Unknown question {question_id}")

        existing = next(
            (i for i, a in enumerate(self.session.answers) if a.question_id == question_id),
            None,
        )
        if existing is None and index != self.cursor:
            return self._invalid("submit_answer", f"Question {question_id} is not the current question")

        # Snapshot synchronously; speech arriving after this point is excluded.
        draft = self._draft_for(question_id)
        if self._recording_question_id == question_id:
            self.stop_recording()
        captured = snapshot if snapshot is not None else draft.analysis
        draft.analysis = captured
        answer_text = str(text or "").strip() or draft.text.strip() or draft.transcript.strip()
        if text:
            draft.text = str(text)
        if not answer_text:
            return self._invalid("submit_answer", "Answer text is empty")

        prior = self._state
        answered = {a.question_id for a in self.session.answers}
        answered.add(question_id)
        # completes once every question has an answer, in-place updates included
        completes = all(q.question_id in answered for q in self.session.questions)
        time_spent = max(0.0, self.clock() - draft.started_at) if draft.started_at else 0.0

        self._enter_loading()
        started = time.perf_counter()
        try:
            evaluation = await self._call(
                self.gateway.evaluate_answer(
                    self.session_id,
                    question_id,
                    answer_text,
                    media,
                    time_spent_sec=time_spent,
                )
            )
            observe_evaluation_latency_ms((time.perf_counter() - started) * 1000.0)
            performance = None
            if completes:
                performance = (await self._call(self.gateway.end_interview(self.session_id))).performance
        except InterviewCoreError as exc:
            return self._revert("submit_answer", prior, exc)

        answer = Answer(
            question_id=question_id,
            text=answer_text,
            evaluation=evaluation,
            media=media or MediaRefs(),
            analysis=captured,
            time_spent_sec=time_spent,
        )

        updated = existing is not None
        self.drafts.pop(question_id, None)
        if updated:
            self.session.answers[existing] = answer
            increment_metric("answers_updated")
            log_event("session", "answer_updated", self.session_id, question_id=question_id)
        else:
            self.session.answers.append(answer)
            increment_metric("answers_submitted")
            log_event(
                "session",
                "answer_submitted",
                self.session_id,
                question_id=question_id,
                score=evaluation.score,
                word_count=captured.word_count if captured else 0,
            )

        if completes:
            self.session.current_question = len(self.session.questions)
            self._complete(performance)
            return OperationResult.ok(evaluation=evaluation.to_dict(), completed=True, updated=updated)

        if not updated:
            self.session.current_question = index + 1
            self._open_draft()
        self._resume_after_submit(prior)
        return OperationResult.ok(evaluation=evaluation.to_dict(), completed=False, updated=updated)

    def update_draft(self, text: str) -> OperationResult:
        draft = self.current_draft()
        if draft is None or self._state == SessionState.LOADING:
            return self._noop("update_draft", f"draft while {self._state.value}")
        draft.text = str(text or "")
        return OperationResult.ok()

    # -------------------------
    # RECORDING (TRANSCRIPT ADAPTER BINDING)
    # -------------------------

    def begin_recording(self) -> OperationResult:
        if self._state != SessionState.ACTIVE:
            return self._noop("begin_recording", f"record while {self._state.value}")
        question = self.current_question
        if question is None:
            return self._noop("begin_recording", "no current question")
        if self.adapter is None:
            return self._warn(DeviceUnavailable("No speech recognition backend configured"))

        self.stop_recording()
        self.analysis.reset(self.clock())
        try:
            handle = self.adapter.start(
                on_segment=self._on_segment,
                on_activity_change=self.analysis.on_activity_change,
                on_fatal_error=self._on_fatal_error,
            )
        except InterviewCoreError as exc:
            return self._warn(exc)

        self._handle = handle
        self._recording_question_id = question.question_id
        self._publish_state()
        log_event("session", "recording_started", self.session_id, question_id=question.question_id)
        return OperationResult.ok(generation=handle.generation)

    def stop_recording(self) -> Optional[AnalysisSnapshot]:
        """
        Synchronous: no transcript or analysis callback fires after this returns.
        """
        handle = self._handle
        if handle is None:
            return None

        question_id = self._recording_question_id
        self.analysis.flush()
        snapshot = self.analysis.snapshot()
        if self.adapter is not None:
            self.adapter.stop(handle)
        self._handle = None
        self._recording_question_id = None

        if question_id is not None:
            draft = self._draft_for(question_id)
            draft.analysis = snapshot
        self._publish_state()
        return snapshot

    async def close(self) -> None:
        self.stop_recording()
        self._stop_timer()
        self._clear_in_progress()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self.events.clear()

    # -------------------------
    # ADAPTER / ENGINE CALLBACKS
    # -------------------------

    def _on_segment(self, segment: TranscriptSegment) -> None:
        if self._handle is None or segment.generation != self._handle.generation:
            return
        draft = self._draft_for(self._recording_question_id) if self._recording_question_id else None
        if draft is not None:
            draft.transcript = segment.cumulative_text
        self.analysis.on_segment(segment)
        self.events.publish(TOPIC_TRANSCRIPT, {
            "interim_text": segment.interim_text,
            "final_text": segment.final_text,
            "cumulative_text": segment.cumulative_text,
        })

    def _on_analysis(self, snapshot: AnalysisSnapshot) -> None:
        if self._recording_question_id is None:
            return
        self._draft_for(self._recording_question_id).analysis = snapshot
        self.events.publish(TOPIC_ANALYSIS, snapshot.to_dict())

    def _on_fatal_error(self, error: Exception) -> None:
        snapshot = self.analysis.snapshot()
        if self._recording_question_id is not None:
            self._draft_for(self._recording_question_id).analysis = snapshot
        self._handle = None
        self._recording_question_id = None
        if isinstance(error, InterviewCoreError):
            self._warn(error)
        else:
            self._warn(DeviceUnavailable(str(error)))
        self._publish_state()

    # -------------------------
    # INTERNALS
    # -------------------------

    async def _call(self, awaitable: Awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.evaluation_timeout_sec)
        except asyncio.TimeoutError as exc:
            increment_metric("evaluation_timeouts")
            raise EvaluationTimeout(
                f"External call timed out after {self.evaluation_timeout_sec:.1f}s"
            ) from exc
        except InterviewCoreError:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            increment_metric("evaluation_failures")
            raise EvaluationFailed(str(exc) or exc.__class__.__name__) from exc

    def _bind_session_id(self) -> None:
        self.events.session_id = self.session_id
        if self.adapter is not None:
            self.adapter.session_id = self.session_id

    def _enter_loading(self) -> None:
        self._transition(SessionState.LOADING)

    def _transition(self, state: SessionState) -> None:
        previous = self._state
        self._state = state
        if previous != state:
            logger.info("[SESSION %s] %s -> %s", self.session_id or "-", previous.value, state.value)
        self._publish_state()

    def _publish_state(self) -> None:
        self.events.publish(TOPIC_STATE, self.snapshot_view())

    def _revert(self, event: str, prior: SessionState, error: InterviewCoreError) -> OperationResult:
        self._state = prior
        self.last_error = error.message
        log_event("session", f"{event}_failed", self.session_id, level=logging.WARNING, error_kind=error.kind)
        self._publish_state()
        return OperationResult.failed(error)

    def _resume_after_submit(self, prior: SessionState) -> None:
        if prior == SessionState.PAUSED:
            self._start_timer()
            self.session.status = SessionStatus.ACTIVE
            self._acknowledge("resume", self.gateway.resume_interview(self.session_id))
        self._transition(SessionState.ACTIVE)

    def _complete(self, performance) -> None:
        self.stop_recording()
        self._stop_timer()
        self.session.status = SessionStatus.COMPLETED
        self.session.performance = performance
        self.session.elapsed_sec = self._elapsed_base
        self.drafts.clear()
        increment_metric("sessions_completed")
        self._clear_in_progress()
        self._transition(SessionState.COMPLETED)
        log_event(
            "session",
            "completed",
            self.session_id,
            answers=len(self.session.answers),
            overall_score=performance.overall_score if performance else None,
        )

    def _mark_in_progress(self) -> None:
        # sessions_active counts sessions that are active or paused
        if not self._in_progress:
            self._in_progress = True
            increment_metric("sessions_active")

    def _clear_in_progress(self) -> None:
        if self._in_progress:
            self._in_progress = False
            decrement_metric("sessions_active")

    def _open_draft(self) -> None:
        question = self._question_at_cursor()
        if question is None:
            return
        draft = self._draft_for(question.question_id)
        if not draft.started_at:
            draft.started_at = self.clock()

    def _question_at_cursor(self) -> Optional[Question]:
        if self.session is None:
            return None
        if 0 <= self.cursor < len(self.session.questions):
            return self.session.questions[self.cursor]
        return None

    def _draft_for(self, question_id: str) -> AnswerDraft:
        draft = self.drafts.get(question_id)
        if draft is None:
            draft = AnswerDraft(question_id=question_id)
            self.drafts[question_id] = draft
        return draft

    def _start_timer(self) -> None:
        if self._timer_started_at is None:
            self._timer_started_at = self.clock()

    def _stop_timer(self) -> None:
        if self._timer_started_at is not None:
            self._elapsed_base += max(0.0, self.clock() - self._timer_started_at)
            self._timer_started_at = None

    def _acknowledge(self, label: str, coro: Awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running loop; %s acknowledgement skipped", label)
            return

        task = loop.create_task(coro)
        self._tasks.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                log_event("session", f"{label}_ack_failed", self.session_id, level=logging.WARNING, error=str(exc))

        task.add_done_callback(_done)

    def _warn(self, error: InterviewCoreError) -> OperationResult:
        warning = {"kind": error.kind.value, "message": error.message, "ts": time.time()}
        self.warnings.append(warning)
        self.events.publish(TOPIC_WARNING, warning)
        log_event("session", "transcript_warning", self.session_id, level=logging.WARNING, error_kind=error.kind)
        return OperationResult.failed(error)

    def _busy(self, event: str) -> OperationResult:
        increment_metric("session_busy_rejections")
        log_event("session", "busy", self.session_id, level=logging.WARNING, rejected=event)
        return OperationResult.failed(SessionBusy(f"{event} rejected: another operation is in flight"))

    def _noop(self, event: str, reason: str) -> OperationResult:
        increment_metric("noop_events")
        logger.debug("[SESSION %s] no-op %s: %s", self.session_id or "-", event, reason)
        return OperationResult.ignored(reason)

    def _invalid(self, event: str, reason: str) -> OperationResult:
        log_event("session", "invalid_transition", self.session_id, level=logging.WARNING, rejected=event, reason=reason)
        return OperationResult.failed(InvalidTransition(reason))

    def _not_loaded(self, event: str) -> OperationResult:
        return OperationResult.failed(SessionNotLoaded(f"{event} before create or load"))
