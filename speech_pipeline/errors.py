from __future__ import annotations

from enum import Enum
from typing import Optional

__all__ = [
    "ErrorKind",
    "SpeechPipelineError",
    "InvalidArgumentError",
    "SynthesisError",
    "OutputDirectoryError",
    "AudioMergeError",
    "classify_status",
]


class ErrorKind(str, Enum):
    INVALID_ARGUMENT = "invalid_argument"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    RATE_LIMITED = "rate_limited"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_TIMEOUT = "request_timeout"
    UPSTREAM_ERROR = "upstream_error"
    NO_RESPONSE = "no_response"
    REQUEST_SETUP_ERROR = "request_setup_error"
    UNEXPECTED = "unexpected"


# Caller-facing (status, code) for each kind. ``None`` status means "use the
# remote status code when there is one".
_CALLER_MAPPING = {
    ErrorKind.INVALID_ARGUMENT: (400, "INVALID_ARGUMENT"),
    ErrorKind.UPSTREAM_TIMEOUT: (504, "OPENAI_TIMEOUT"),
    ErrorKind.RATE_LIMITED: (429, "RATE_LIMIT_EXCEEDED"),
    ErrorKind.REQUEST_REJECTED: (None, "API_ERROR"),
    ErrorKind.REQUEST_TIMEOUT: (504, "REQUEST_TIMEOUT"),
    ErrorKind.UPSTREAM_ERROR: (None, "API_ERROR"),
    ErrorKind.NO_RESPONSE: (500, "NO_RESPONSE"),
    ErrorKind.REQUEST_SETUP_ERROR: (500, "REQUEST_SETUP_ERROR"),
    ErrorKind.UNEXPECTED: (500, "UNEXPECTED_ERROR"),
}

_RETRYABLE_KINDS = {ErrorKind.UPSTREAM_ERROR, ErrorKind.NO_RESPONSE}


class SpeechPipelineError(RuntimeError):
    """Base class for every error raised by the package."""


class InvalidArgumentError(SpeechPipelineError, ValueError):
    kind = ErrorKind.INVALID_ARGUMENT


class SynthesisError(SpeechPipelineError):
    """
    A classified failure of one synthesis attempt.

    The kind is decided once, by the engine that talked to the remote service.
    ``retryable`` tells the client whether another attempt may succeed and
    ``status_code``/``error_code`` are what a request-handling layer should hand
    back to its own caller.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        retryable: Optional[bool] = None,
        remote_status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = ErrorKind(kind)
        self.message = message
        self.retryable = self.kind in _RETRYABLE_KINDS if retryable is None else retryable
        self.remote_status = remote_status
        self.attempts = 1
        status, code = _CALLER_MAPPING[self.kind]
        self.status_code = status if status is not None else (remote_status or 500)
        self.error_code = code

    def __repr__(self) -> str:
        return (
            f"SynthesisError(kind={self.kind.value!r}, status={self.status_code}, "
            f"retryable={self.retryable}, message={self.message!r})"
        )


class OutputDirectoryError(SpeechPipelineError):
    pass


class AudioMergeError(SpeechPipelineError):
    pass


def classify_status(status: int, body: str = "") -> SynthesisError:
    """
    Map a non-2xx status code from the remote service to a ``SynthesisError``.
    """
    detail = body.strip() or "Unknown error"
    if status == 504:
        return SynthesisError(
            ErrorKind.UPSTREAM_TIMEOUT,
            "Speech service timed out. This usually happens when processing large "
            "text. Try with a smaller chunk of text.",
            remote_status=status,
        )
    if status == 429:
        return SynthesisError(
            ErrorKind.RATE_LIMITED,
            "Speech service rate limit exceeded. Please try again after some time.",
            remote_status=status,
        )
    if 500 <= status < 600:
        return SynthesisError(
            ErrorKind.UPSTREAM_ERROR,
            f"Speech service error ({status}): {detail}",
            remote_status=status,
        )
    return SynthesisError(
        ErrorKind.REQUEST_REJECTED,
        f"Speech service rejected the request ({status}): {detail}",
        remote_status=status,
    )
