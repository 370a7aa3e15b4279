import logging
import re
import time
from typing import Callable, List, Optional

from app.transcript.models import ActivityChange, TranscriptSegment

from .models import ActivityTracker, AnalysisSnapshot
from . import rules

logger = logging.getLogger("analysis_engine")

AnalysisCallback = Callable[[AnalysisSnapshot], None]

_FILLER_PATTERN = re.compile(
    r"\b(?:"
    + "|".join(
        r"\s+".join(re.escape(part) for part in phrase.split())
        for phrase in sorted(rules.FILLER_WORDS, key=len, reverse=True)
    )
    + r")\b",
    re.IGNORECASE,
)
_PUNCTUATION = re.compile(r"[^\w\s]")
_HESITATION_MARKER = re.compile(r"\.\.\.|…")


def _clamp(value: float, low: int = 0, high: int = 100) -> int:
    return int(max(low, min(high, value)))


def tokenize(text: str) -> List[str]:
    return [token for token in str(text or "").split() if token]


def find_filler_words(text: str) -> List[str]:
    """
    Every filler match with its surface form, in transcript order. Not deduplicated.
    """
    return [match.group(0) for match in _FILLER_PATTERN.finditer(text or "")]


def extract_keywords(text: str) -> List[str]:
    words = _PUNCTUATION.sub("", str(text or "").lower()).split()
    seen = set()
    keywords = []
    for word in words:
        if len(word) <= rules.KEYWORD_MIN_EXCLUSIVE_LENGTH or word in rules.STOP_WORDS:
            continue
        if word in seen:
            continue
        seen.add(word)
        keywords.append(word)
    return keywords


def count_hesitation_markers(text: str) -> int:
    return len(_HESITATION_MARKER.findall(text or ""))


class CommunicationAnalysisEngine:
    """
    Converts the cumulative transcript and activity events into an
    AnalysisSnapshot. Recomputed from scratch on every update.
    Deterministic. Never raises from an update.
    """

    def __init__(
        self,
        on_analysis: Optional[AnalysisCallback] = None,
        clock: Callable[[], float] = time.monotonic,
        debounce_sec: float = rules.DEBOUNCE_SEC,
    ):
        self.on_analysis = on_analysis
        self.clock = clock
        self.debounce_sec = max(0.0, float(debounce_sec))

        self.cumulative_text: str = ""
        self.activity = ActivityTracker(session_start=clock())
        self.latest: AnalysisSnapshot = AnalysisSnapshot()
        self._last_emit_ts: Optional[float] = None
        self._dirty = False

    # -------------------------
    # LIFECYCLE
    # -------------------------

    def reset(self, now: Optional[float] = None) -> None:
        start = self.clock() if now is None else now
        self.cumulative_text = ""
        self.activity = ActivityTracker(session_start=start)
        self.latest = AnalysisSnapshot(captured_at=start)
        self._last_emit_ts = None
        self._dirty = False

    # -------------------------
    # INPUT (FROM ADAPTER)
    # -------------------------

    def on_segment(self, segment: TranscriptSegment) -> None:
        try:
            text = segment.cumulative_text if isinstance(segment.cumulative_text, str) else ""
        except AttributeError:
            text = ""
        self.cumulative_text = text
        self._dirty = True

        now = self.clock()
        is_final = bool(getattr(segment, "final_text", ""))
        if not is_final and self._within_debounce(now):
            return
        self._emit(now)

    def on_activity_change(self, change: ActivityChange) -> None:
        try:
            self._apply_activity(bool(change.active), float(change.timestamp))
        except Exception:
            logger.exception("Activity change ignored")

    def flush(self) -> Optional[AnalysisSnapshot]:
        if not self._dirty:
            return None
        return self._emit(self.clock())

    # -------------------------
    # OUTPUT
    # -------------------------

    def snapshot(self) -> AnalysisSnapshot:
        """
        Synchronous recomputation for submission; does not notify subscribers.
        """
        return self._compute(self.clock())

    def _within_debounce(self, now: float) -> bool:
        if self.debounce_sec <= 0 or self._last_emit_ts is None:
            return False
        return (now - self._last_emit_ts) < self.debounce_sec

    def _emit(self, now: float) -> AnalysisSnapshot:
        snapshot = self._compute(now)
        self.latest = snapshot
        self._last_emit_ts = now
        self._dirty = False
        if self.on_analysis is not None:
            try:
                self.on_analysis(snapshot)
            except Exception:
                logger.exception("Analysis subscriber raised")
        return snapshot

    # -------------------------
    # METRICS
    # -------------------------

    def _apply_activity(self, active: bool, ts: float) -> None:
        tracker = self.activity
        if active == tracker.is_active:
            return

        if not active:
            tracker.is_active = False
            tracker.pause_started_at = ts
            return

        tracker.is_active = True
        started = tracker.pause_started_at
        tracker.pause_started_at = None
        if started is None:
            return
        duration = ts - started
        if duration >= rules.MIN_PAUSE_SEC:
            tracker.total_pause_time += duration
            tracker.pause_count += 1

    def _compute(self, now: float) -> AnalysisSnapshot:
        try:
            return self._compute_unchecked(now)
        except Exception:
            logger.exception("Analysis recomputation failed; reporting zeroed metrics")
            return AnalysisSnapshot(captured_at=now)

    def _compute_unchecked(self, now: float) -> AnalysisSnapshot:
        text = self.cumulative_text
        words = tokenize(text)
        if not words:
            return AnalysisSnapshot(captured_at=now)

        word_count = len(words)
        fillers = find_filler_words(text)
        keywords = extract_keywords(text)

        tracker = self.activity
        speaking = now - tracker.session_start - tracker.total_pause_time
        speaking = max(rules.MIN_SPEAKING_SECONDS, speaking)
        speech_rate = int(round(word_count / (speaking / 60.0)))

        confidence = _clamp(100 - rules.FILLER_PENALTY * len(fillers))
        clarity = _clamp(100 - rules.HESITATION_PENALTY * count_hesitation_markers(text))

        return AnalysisSnapshot(
            word_count=word_count,
            speaking_time_sec=round(speaking, 2),
            silence_time_sec=round(tracker.total_pause_time, 2),
            pause_count=tracker.pause_count,
            speech_rate=speech_rate,
            filler_words=fillers,
            keywords=keywords[: rules.KEYWORD_DISPLAY_LIMIT],
            all_keywords=keywords,
            confidence=confidence,
            clarity=clarity,
            captured_at=now,
        )
