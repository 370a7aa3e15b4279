from typing import Any, Literal

from pydantic import BaseModel, Field


class CreateInterviewRequest(BaseModel):
    title: str = "Practice interview"
    interview_type: Literal["technical", "behavioral", "system-design", "general", "mixed"] = "technical"
    difficulty: Literal["beginner", "intermediate", "advanced"] = "intermediate"
    question_count: int = Field(default=5, ge=1, le=20)
    job_role: str = ""
    duration_min: int = Field(default=30, ge=1, le=240)


class MediaRefsModel(BaseModel):
    audio_url: str | None = None
    video_url: str | None = None


class AnalysisSnapshotModel(BaseModel):
    word_count: int = 0
    speaking_time_sec: float = 0.0
    silence_time_sec: float = 0.0
    pause_count: int = 0
    speech_rate: int = 0
    filler_words: list[str] = []
    keywords: list[str] = []
    all_keywords: list[str] = []
    confidence: int = 0
    clarity: int = 0


class SubmitAnswerRequest(BaseModel):
    question_id: str
    text: str = ""
    media: MediaRefsModel | None = None
    analysis: AnalysisSnapshotModel | None = None


class DraftRequest(BaseModel):
    text: str = ""


class OperationResponse(BaseModel):
    success: bool
    error: str | None = None
    error_kind: str | None = None
    noop: bool = False
    data: dict[str, Any] = {}
    session: dict[str, Any] | None = None
