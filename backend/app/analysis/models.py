from dataclasses import asdict, dataclass, field
from typing import List


@dataclass(frozen=True)
class AnalysisSnapshot:
    """
    Point-in-time communication metrics over the cumulative transcript.
    Always a full recomputation, never a patch of a previous snapshot.
    Defaults are the zeroed metrics reported for an empty transcript.
    """
    word_count: int = 0
    speaking_time_sec: float = 0.0
    silence_time_sec: float = 0.0
    pause_count: int = 0
    speech_rate: int = 0

    filler_words: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    all_keywords: List[str] = field(default_factory=list)

    confidence: int = 0
    clarity: int = 0
    captured_at: float = 0.0

    @property
    def filler_count(self) -> int:
        return len(self.filler_words)

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["filler_count"] = self.filler_count
        return payload

    @classmethod
    def from_dict(cls, data: dict | None) -> "AnalysisSnapshot | None":
        if not data:
            return None
        known = set(cls.__dataclass_fields__)
        return cls(**{key: value for key, value in data.items() if key in known})


@dataclass
class ActivityTracker:
    """
    Debounced silence accounting for one recording.
    """
    session_start: float = 0.0
    is_active: bool = True
    pause_started_at: float | None = None
    total_pause_time: float = 0.0
    pause_count: int = 0
