from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from core.state import TranscriptionStatus


@dataclass(frozen=True)
class TranscriptSegment:
    """
    One recognition update as seen by consumers.
    `final_text` is never revised; `interim_text` may be superseded.
    """
    interim_text: str = ""
    final_text: str = ""
    cumulative_text: str = ""
    generation: int = 0
    received_ts: float = 0.0

    @property
    def is_final(self) -> bool:
        return bool(self.final_text)


@dataclass(frozen=True)
class ActivityChange:
    active: bool
    timestamp: float


@dataclass
class TranscriptHandle:
    """
    Caller-owned token for one `start`. Becomes unusable after `stop` or a fatal error.
    """
    generation: int
    status: TranscriptionStatus = TranscriptionStatus.LISTENING
    started_ts: float = 0.0
    restarts: int = 0
    last_error: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.status in (TranscriptionStatus.LISTENING, TranscriptionStatus.RESTARTING)


SegmentCallback = Callable[[TranscriptSegment], None]
ActivityCallback = Callable[[ActivityChange], None]
FatalErrorCallback = Callable[[Exception], None]


class RecognitionListener(Protocol):
    def on_result(self, index: int, text: str, is_final: bool) -> None:
        ...

    def on_audio_start(self) -> None:
        ...

    def on_audio_end(self) -> None:
        ...

    def on_end(self) -> None:
        ...

    def on_error(self, code: str, message: str = "") -> None:
        ...


class RecognitionBackend(Protocol):
    """
    A continuous speech-to-text source. `start` may be called again after the
    backend ended on its own; result indices restart from zero on each run.
    """

    def start(self, listener: RecognitionListener) -> None:
        ...

    def stop(self) -> None:
        ...

    def send_audio(self, audio_bytes: bytes) -> None:
        ...


@dataclass
class FinalResult:
    run: int
    index: int
    text: str
    received_ts: float = 0.0
