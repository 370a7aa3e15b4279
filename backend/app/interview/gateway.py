from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from app.interview.errors import InvalidTransition, SessionNotFound
from app.interview.evaluator import AnswerEvaluator
from app.interview.models import (
    Answer,
    Evaluation,
    InterviewConfig,
    InterviewSession,
    MediaRefs,
    PerformanceSummary,
    SessionStatus,
)
from app.interview.questions import generate_questions
from app.interview.scorer import build_performance_summary

logger = logging.getLogger("interview_gateway")


@dataclass
class EndResult:
    final_session: InterviewSession
    performance: PerformanceSummary


class InterviewGateway(Protocol):
    """
    Interview store and scoring services, consumed as opaque async calls.
    """

    async def create_interview(self, config: InterviewConfig) -> InterviewSession:
        ...

    async def start_interview(self, session_id: str) -> InterviewSession:
        ...

    async def load_interview(self, session_id: str) -> InterviewSession:
        ...

    async def evaluate_answer(
        self,
        session_id: str,
        question_id: str,
        answer_text: str,
        media: Optional[MediaRefs] = None,
        time_spent_sec: float = 0.0,
    ) -> Evaluation:
        ...

    async def end_interview(self, session_id: str) -> EndResult:
        ...

    async def pause_interview(self, session_id: str) -> None:
        ...

    async def resume_interview(self, session_id: str) -> None:
        ...


class InMemoryInterviewGateway:
    """
    Process-local interview store. Scoring is delegated to an AnswerEvaluator.
    """

    def __init__(self, evaluator: AnswerEvaluator):
        self.evaluator = evaluator
        self.sessions: dict[str, InterviewSession] = {}
        self._started_at: dict[str, float] = {}

    def _get(self, session_id: str) -> InterviewSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"Interview {session_id} not found")
        return session

    async def create_interview(self, config: InterviewConfig) -> InterviewSession:
        session = InterviewSession(questions=generate_questions(config), config=config)
        self.sessions[session.session_id] = session
        logger.info("Interview created | id=%s questions=%s", session.session_id, len(session.questions))
        return session.copy()

    async def start_interview(self, session_id: str) -> InterviewSession:
        session = self._get(session_id)
        if session.status == SessionStatus.COMPLETED:
            raise InvalidTransition("Interview already completed")
        session.status = SessionStatus.ACTIVE
        session.current_question = 0
        self._started_at[session_id] = time.time()
        return session.copy()

    async def load_interview(self, session_id: str) -> InterviewSession:
        return self._get(session_id).copy()

    async def evaluate_answer(
        self,
        session_id: str,
        question_id: str,
        answer_text: str,
        media: Optional[MediaRefs] = None,
        time_spent_sec: float = 0.0,
    ) -> Evaluation:
        session = self._get(session_id)
        if session.status == SessionStatus.COMPLETED:
            raise InvalidTransition("Interview already completed")

        question = next((q for q in session.questions if q.question_id == question_id), None)
        if question is None:
            raise InvalidTransition(f"Unknown question {question_id}")

        evaluation = await self.evaluator.evaluate(question, answer_text)
        answer = Answer(
            question_id=question_id,
            text=answer_text,
            evaluation=evaluation,
            media=media or MediaRefs(),
            time_spent_sec=max(0.0, float(time_spent_sec or 0.0)),
        )

        existing = next((i for i, a in enumerate(session.answers) if a.question_id == question_id), None)
        if existing is None:
            session.answers.append(answer)
            session.current_question = min(session.current_question + 1, len(session.questions))
        else:
            session.answers[existing] = answer
        return evaluation

    async def end_interview(self, session_id: str) -> EndResult:
        session = self._get(session_id)
        if session.status != SessionStatus.COMPLETED:
            session.status = SessionStatus.COMPLETED
            started = self._started_at.pop(session_id, None)
            if started is not None:
                session.elapsed_sec = time.time() - started
            session.performance = build_performance_summary(session.questions, session.answers)
        return EndResult(final_session=session.copy(), performance=session.performance or PerformanceSummary())

    async def pause_interview(self, session_id: str) -> None:
        session = self._get(session_id)
        if session.status == SessionStatus.ACTIVE:
            session.status = SessionStatus.PAUSED

    async def resume_interview(self, session_id: str) -> None:
        session = self._get(session_id)
        if session.status == SessionStatus.PAUSED:
            session.status = SessionStatus.ACTIVE

