"""
Lexicons and scoring weights for communication analysis.
Changing these changes every derived metric.
"""

from core.config import ANALYSIS_DEBOUNCE_SEC

FILLER_WORDS = (
    "um",
    "uh",
    "er",
    "ah",
    "like",
    "you know",
    "so",
    "well",
    "actually",
    "basically",
    "literally",
    "totally",
    "obviously",
    "seriously",
    "definitely",
)

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "is", "are", "was", "were", "be", "been", "have", "has", "had",
    "do", "does", "did", "will", "would", "could", "should", "may", "might",
    "must", "can", "this", "that", "these", "those", "i", "you", "he", "she",
    "it", "we", "they", "what", "where", "when", "why", "how", "who", "whom",
    "whose", "which", "if", "then", "than", "as", "not", "no", "yes", "ok",
    "okay",
})

# Keywords shorter than or equal to this are dropped
KEYWORD_MIN_EXCLUSIVE_LENGTH = 3
KEYWORD_DISPLAY_LIMIT = 20

# Score penalties (points out of 100)
FILLER_PENALTY = 3
HESITATION_PENALTY = 5

# Speaking time floor: 0.01 minutes
MIN_SPEAKING_SECONDS = 0.6

# Silence shorter than this is treated as speech
MIN_PAUSE_SEC = 0.3

# Recomputation throttle for interim updates
DEBOUNCE_SEC = ANALYSIS_DEBOUNCE_SEC
