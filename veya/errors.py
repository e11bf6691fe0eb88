"""Domain exceptions for pipeline, provider, and CLI diagnostics.

Responsibilities:
- Define the closed set of failure kinds with fixed retryability.
- Carry a short, redacted, user-renderable detail with each failure.
- Keep stage-scoped CLI errors separate from provider/pipeline failures.

Key types:
- `ErrorKind`: closed failure classification shared by every component.
- `VeyaError`: exception raised by adapters, pipelines, and the media cache.
- `PipelineStageError`: CLI-facing stage error with an optional hint.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed failure classification with a fixed retry disposition."""

    INVALID_CREDENTIAL = "invalid_credential"
    INSUFFICIENT_QUOTA = "insufficient_quota"
    NETWORK_TIMEOUT = "network_timeout"
    SERVICE_UNAVAILABLE = "service_unavailable"
    RECOGNITION_FAILED = "recognition_failed"
    SYNTHESIS_FAILED = "synthesis_failed"
    STORAGE_FAILURE = "storage_failure"
    PERMISSION_DENIED = "permission_denied"

    @property
    def retryable(self) -> bool:
        """Return whether failures of this kind may be retried."""

        return self in _RETRYABLE_KINDS


_RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.NETWORK_TIMEOUT,
        ErrorKind.SERVICE_UNAVAILABLE,
        ErrorKind.SYNTHESIS_FAILED,
    }
)

ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_CREDENTIAL: "The API key was rejected. Check the key in settings.",
    ErrorKind.INSUFFICIENT_QUOTA: "The provider account has insufficient balance or quota.",
    ErrorKind.NETWORK_TIMEOUT: "The network request timed out. Check your connection.",
    ErrorKind.SERVICE_UNAVAILABLE: "The model service is temporarily unavailable.",
    ErrorKind.RECOGNITION_FAILED: "No text could be recognized from the input.",
    ErrorKind.SYNTHESIS_FAILED: "Speech synthesis failed.",
    ErrorKind.STORAGE_FAILURE: "Reading or writing local storage failed.",
    ErrorKind.PERMISSION_DENIED: "A required system permission was denied.",
}


def user_message(kind: ErrorKind) -> str:
    """Return the user-facing message for a failure kind."""

    return ERROR_MESSAGES[kind]


class VeyaError(Exception):
    """Raised when a provider call, pipeline stage, or storage operation fails."""

    def __init__(self, kind: ErrorKind, detail: str = "") -> None:
        """Initialize an error with its kind and an optional short detail."""

        super().__init__(detail or user_message(kind))
        self.kind = kind
        self.detail = detail or user_message(kind)

    @property
    def is_retryable(self) -> bool:
        """Return the retry disposition fixed by the error kind."""

        return self.kind.retryable

    def __repr__(self) -> str:
        return f"VeyaError(kind={self.kind.value!r}, detail={self.detail!r})"


class PipelineStageError(RuntimeError):
    """Raised when a specific CLI command stage fails."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped command error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint
