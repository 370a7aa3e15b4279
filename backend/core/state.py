# backend/core/state.py

from enum import Enum


class TranscriptionStatus(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    RESTARTING = "restarting"
    STOPPED = "stopped"
    FAILED = "failed"
