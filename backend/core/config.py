import os
from pathlib import Path
from dotenv import load_dotenv

_BACKEND_ROOT = Path(__file__).resolve().parents[1]
_BACKEND_ENV_PATH = _BACKEND_ROOT / ".env"
load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=False)

OPENAI_API_KEY = str(os.getenv("OPENAI_API_KEY") or "").strip()
MODEL_NAME = str(os.getenv("MODEL_NAME") or "gpt-4.1-mini").strip()
QA_MODE = os.getenv("QA_MODE", "false").lower() == "true"

DEEPGRAM_API_KEY = str(os.getenv("DEEPGRAM_API_KEY") or "").strip()
DEEPGRAM_ENDPOINTING_MS = max(300, int(os.getenv("DEEPGRAM_ENDPOINTING_MS", "700")))
DEEPGRAM_UTTERANCE_END_MS = max(1000, int(os.getenv("DEEPGRAM_UTTERANCE_END_MS", "1000")))
DEEPGRAM_STALL_TIMEOUT_SEC = max(5.0, float(os.getenv("DEEPGRAM_STALL_TIMEOUT_SEC", "10")))

# Evaluation calls are bounded; a timeout is treated as a failed call.
EVALUATION_TIMEOUT_SEC = max(1.0, float(os.getenv("EVALUATION_TIMEOUT_SEC", "30")))

ANALYSIS_DEBOUNCE_SEC = max(0.0, float(os.getenv("ANALYSIS_DEBOUNCE_SEC", "0.25")))
TRANSCRIPT_MAX_RESTARTS = max(1, int(os.getenv("TRANSCRIPT_MAX_RESTARTS", "5")))

SESSION_CLEANUP_TTL_SEC = max(60, int(os.getenv("SESSION_CLEANUP_TTL_SEC", "1800")))
SESSION_CLEANUP_INTERVAL_SEC = max(30, int(os.getenv("SESSION_CLEANUP_INTERVAL_SEC", "120")))
# Sessions still flagged active are reclaimed after this much idle time.
SESSION_IDLE_TTL_SEC = max(300, int(os.getenv("SESSION_IDLE_TTL_SEC", "7200")))
