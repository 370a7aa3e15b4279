"""
Recognition error vocabulary and restart limits.
Changing these changes system behavior.
"""

from core.config import TRANSCRIPT_MAX_RESTARTS

# Access refused by the user or the platform
PERMISSION_ERROR_CODES = frozenset({"not-allowed", "service-not-allowed"})

# No usable input device or recognition capability
DEVICE_ERROR_CODES = frozenset({"audio-capture", "unsupported"})

# Expected during normal use; the backend ends and is restarted
TRANSIENT_ERROR_CODES = frozenset({"no-speech", "network", "aborted", "timeout"})

# Consecutive restarts without any recognition result before giving up
MAX_CONSECUTIVE_RESTARTS = TRANSCRIPT_MAX_RESTARTS
