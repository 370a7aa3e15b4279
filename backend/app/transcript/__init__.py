from app.transcript.engine import TranscriptStreamAdapter
from app.transcript.models import ActivityChange, RecognitionBackend, TranscriptHandle, TranscriptSegment

__all__ = ["ActivityChange", "RecognitionBackend", "TranscriptHandle", "TranscriptSegment", "TranscriptStreamAdapter"]
