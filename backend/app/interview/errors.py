from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    DEVICE_UNAVAILABLE = "device_unavailable"
    PERMISSION_DENIED = "permission_denied"
    SESSION_BUSY = "session_busy"
    EVALUATION_FAILED = "evaluation_failed"
    TIMEOUT = "timeout"
    INVALID_TRANSITION = "invalid_transition"
    NOT_FOUND = "not_found"
    SESSION_NOT_LOADED = "session_not_loaded"


class InterviewCoreError(Exception):
    kind: ErrorKind = ErrorKind.INVALID_TRANSITION

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


class DeviceUnavailable(InterviewCoreError):
    kind = ErrorKind.DEVICE_UNAVAILABLE


class PermissionDenied(InterviewCoreError):
    kind = ErrorKind.PERMISSION_DENIED


class SessionBusy(InterviewCoreError):
    kind = ErrorKind.SESSION_BUSY


class EvaluationFailed(InterviewCoreError):
    kind = ErrorKind.EVALUATION_FAILED


class EvaluationTimeout(InterviewCoreError):
    kind = ErrorKind.TIMEOUT


class InvalidTransition(InterviewCoreError):
    kind = ErrorKind.INVALID_TRANSITION


class SessionNotFound(InterviewCoreError):
    kind = ErrorKind.NOT_FOUND


class SessionNotLoaded(InterviewCoreError):
    kind = ErrorKind.SESSION_NOT_LOADED


@dataclass
class OperationResult:
    """
    Outcome of one controller operation.

    `noop` marks events that were valid input but meaningless for the current
    state (pause while paused, submit after completion). They are not errors.
    """
    success: bool
    error: str | None = None
    error_kind: ErrorKind | None = None
    noop: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **data) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, error: InterviewCoreError) -> "OperationResult":
        return cls(success=False, error=error.message, error_kind=error.kind)

    @classmethod
    def ignored(cls, reason: str) -> "OperationResult":
        return cls(success=False, error=reason, noop=True)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"success": self.success}
        if self.error:
            payload["error"] = self.error
        if self.error_kind is not None:
            payload["error_kind"] = self.error_kind.value
        if self.noop:
            payload["noop"] = True
        return payload


def error_for(kind: ErrorKind | None, message: str = "") -> InterviewCoreError:
    for error_type in (
        DeviceUnavailable,
        PermissionDenied,
        SessionBusy,
        EvaluationFailed,
        EvaluationTimeout,
        InvalidTransition,
        SessionNotFound,
        SessionNotLoaded,
    ):
        if error_type.kind == kind:
            return error_type(message)
    return InterviewCoreError(message)
