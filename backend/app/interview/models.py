from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional
import time
import uuid

from app.analysis.models import AnalysisSnapshot


class SessionState(str, Enum):
    """
    Controller lifecycle. `loading` is transient and wraps every external call.
    """
    IDLE = "idle"
    LOADING = "loading"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class SessionStatus(str, Enum):
    """
    Persisted status as reported by the interview store.
    """
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value: Any) -> "SessionStatus":
        normalized = str(getattr(value, "value", value) or "").strip().lower()
        if normalized in {"in-progress", "in_progress"}:
            return cls.ACTIVE
        try:
            return cls(normalized)
        except ValueError:
            return cls.SCHEDULED


@dataclass(frozen=True)
class Question:
    question_id: str
    prompt: str
    category: str = "general"
    difficulty: str = "medium"
    time_limit_sec: int = 120
    expected_keywords: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "prompt": self.prompt,
            "category": self.category,
            "difficulty": self.difficulty,
            "time_limit_sec": self.time_limit_sec,
            "expected_keywords": list(self.expected_keywords),
        }


@dataclass(frozen=True)
class Evaluation:
    score: int
    feedback: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"score": self.score, "feedback": dict(self.feedback)}


@dataclass(frozen=True)
class MediaRefs:
    audio_url: Optional[str] = None
    video_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {"audio_url": self.audio_url, "video_url": self.video_url}


@dataclass(frozen=True)
class Answer:
    """
    Created at submission with its evaluation already set; never mutated.
    """
    question_id: str
    text: str
    evaluation: Evaluation
    media: MediaRefs = field(default_factory=MediaRefs)
    analysis: Optional[AnalysisSnapshot] = None
    time_spent_sec: float = 0.0
    submitted_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "text": self.text,
            "media": self.media.to_dict(),
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "evaluation": self.evaluation.to_dict(),
            "time_spent_sec": round(self.time_spent_sec, 2),
            "submitted_at": self.submitted_at,
        }


@dataclass
class PerformanceSummary:
    overall_score: int = 0
    category_scores: Dict[str, int] = field(default_factory=dict)
    answered_questions: int = 0
    total_questions: int = 0
    average_time_per_question: int = 0
    total_time: int = 0
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "overall_score": self.overall_score,
            "category_scores": dict(self.category_scores),
            "answered_questions": self.answered_questions,
            "total_questions": self.total_questions,
            "average_time_per_question": self.average_time_per_question,
            "total_time": self.total_time,
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "recommendations": list(self.recommendations),
        }


@dataclass
class InterviewConfig:
    title: str = "Practice interview"
    interview_type: str = "technical"
    difficulty: str = "intermediate"
    question_count: int = 5
    job_role: str = ""
    duration_min: int = 30


@dataclass
class InterviewSession:
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    questions: List[Question] = field(default_factory=list)
    answers: List[Answer] = field(default_factory=list)
    status: SessionStatus = SessionStatus.SCHEDULED
    current_question: int = 0
    elapsed_sec: float = 0.0
    performance: Optional[PerformanceSummary] = None
    config: InterviewConfig = field(default_factory=InterviewConfig)

    def copy(self) -> "InterviewSession":
        return replace(
            self,
            questions=list(self.questions),
            answers=list(self.answers),
        )

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "current_question": self.current_question,
            "elapsed_sec": round(self.elapsed_sec, 2),
            "questions": [q.to_dict() for q in self.questions],
            "answers": [a.to_dict() for a in self.answers],
            "performance": self.performance.to_dict() if self.performance else None,
        }


@dataclass
class AnswerDraft:
    """
    In-progress answer for the current question. Survives pause and failed submits.
    """
    question_id: str
    text: str = ""
    transcript: str = ""
    analysis: Optional[AnalysisSnapshot] = None
    started_at: float = 0.0


@dataclass(frozen=True)
class SessionProgress:
    current_question_index: int
    total_questions: int
    completed_questions: int
    time_elapsed_sec: float

    def to_dict(self) -> dict:
        return {
            "current_question_index": self.current_question_index,
            "total_questions": self.total_questions,
            "completed_questions": self.completed_questions,
            "time_elapsed_sec": round(self.time_elapsed_sec, 2),
        }
