from typing import Dict, List, Optional, Tuple

from core.state import TranscriptionStatus
from .models import (
    ActivityCallback,
    FatalErrorCallback,
    FinalResult,
    SegmentCallback,
    TranscriptHandle,
)


class TranscriptState:
    """
    Holds all transcript-related state for the ONE live handle of an adapter.

    `generation` increases on every start and stop. Backend events are bound to
    the generation that was current when the backend run began and are dropped
    once it moves on.
    """

    def __init__(self):
        self.generation: int = 0
        self.run: int = 0
        self.handle: Optional[TranscriptHandle] = None

        self.on_segment: Optional[SegmentCallback] = None
        self.on_activity_change: Optional[ActivityCallback] = None
        self.on_fatal_error: Optional[FatalErrorCallback] = None

        # FINAL results keyed by (run, index); never revised
        self.finals: Dict[Tuple[int, int], FinalResult] = {}
        self.final_order: List[Tuple[int, int]] = []

        # Interim (non-final) text per index of the current run
        self.interim: Dict[int, str] = {}

        self.consecutive_restarts: int = 0

    # -------------------------
    # HANDLE LIFECYCLE
    # -------------------------

    def bind(self, handle: TranscriptHandle, on_segment, on_activity_change, on_fatal_error) -> None:
        self.handle = handle
        self.on_segment = on_segment
        self.on_activity_change = on_activity_change
        self.on_fatal_error = on_fatal_error
        self.finals.clear()
        self.final_order.clear()
        self.interim.clear()
        self.run = 0
        self.consecutive_restarts = 0

    def release(self, status: TranscriptionStatus) -> Optional[TranscriptHandle]:
        handle = self.handle
        if handle is not None:
            handle.status = status
        self.generation += 1
        self.handle = None
        self.on_segment = None
        self.on_activity_change = None
        self.on_fatal_error = None
        self.interim.clear()
        return handle

    def is_current(self, generation: int) -> bool:
        return (
            self.handle is not None
            and self.handle.active
            and generation == self.generation
        )

    def next_run(self) -> int:
        self.run += 1
        self.interim.clear()
        return self.run

    # -------------------------
    # RESULT HANDLING
    # -------------------------

    def register_interim(self, index: int, text: str) -> None:
        self.interim[index] = text.strip()

    def register_final(self, run: int, index: int, text: str, ts: float) -> bool:
        """
        Commit a final result. Returns False for a re-delivered result.
        """
        key = (run, index)
        if key in self.finals:
            return False

        self.finals[key] = FinalResult(run=run, index=index, text=text.strip(), received_ts=ts)
        self.final_order.append(key)
        if run == self.run:
            self.interim.pop(index, None)
        return True

    @property
    def interim_text(self) -> str:
        return " ".join(text for _, text in sorted(self.interim.items()) if text)

    @property
    def cumulative_text(self) -> str:
        return " ".join(self.finals[key].text for key in self.final_order if self.finals[key].text)

    def snapshot(self) -> dict:
        return {
            "generation": self.generation,
            "run": self.run,
            "status": self.handle.status.value if self.handle else TranscriptionStatus.IDLE.value,
            "final_results": len(self.final_order),
            "interim_text": self.interim_text,
            "consecutive_restarts": self.consecutive_restarts,
        }
