"""Centralized exception hierarchy for the audio-insight package.

All domain-specific exceptions inherit from ``AudioInsightError`` so
callers can catch the entire family with a single ``except`` clause.
Every error carries an ``ErrorKind`` that the CLI (or any embedding
application) uses to pick the user-facing message.
"""

from __future__ import annotations

from enum import StrEnum

RATE_LIMIT_RETRY_SECONDS = 30


class ErrorKind(StrEnum):
    """Classification of a pipeline failure."""

    MISSING_INPUT = "MISSING_INPUT"
    UNSUPPORTED_TYPE = "UNSUPPORTED_TYPE"
    TOO_LARGE = "TOO_LARGE"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"


class AudioInsightError(Exception):
    """Base exception for all audio-insight errors.

    Attributes:
        kind: The error classification.
        status_code: HTTP status of the failing response, if any.
        retry_after_seconds: Suggested wait before a manual retry. A UI
            hint only; nothing in the package schedules retries.
    """

    default_kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        kind: ErrorKind | None = None,
        *,
        status_code: int | None = None,
        retry_after_seconds: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.status_code = status_code
        self.retry_after_seconds = retry_after_seconds

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value}, message={self.message!r})"


# ---------------------------------------------------------------------------
# Upload errors
# ---------------------------------------------------------------------------


class UploadRejectedError(AudioInsightError):
    """Raised when a file fails local validation before any network call."""

    default_kind = ErrorKind.MISSING_INPUT


class UploadError(AudioInsightError):
    """Raised when moving file bytes to the transcription backend fails."""

    default_kind = ErrorKind.NETWORK_ERROR


# ---------------------------------------------------------------------------
# Transcription errors
# ---------------------------------------------------------------------------


class TranscriptionError(AudioInsightError):
    """Raised when a transcription run terminates without a transcript."""


# ---------------------------------------------------------------------------
# Analysis errors
# ---------------------------------------------------------------------------


class AnalysisError(AudioInsightError):
    """Raised when an analysis request or a single analysis kind fails."""


class AnalysisCancelledError(AnalysisError):
    """Raised by a superseded analysis run after ``cancel()``."""

    default_kind = ErrorKind.CANCELLED


class RateLimitError(AnalysisError):
    """Raised when the text-generation provider answers 429."""

    default_kind = ErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = 429,
        retry_after_seconds: int = RATE_LIMIT_RETRY_SECONDS,
    ) -> None:
        super().__init__(
            message,
            ErrorKind.RATE_LIMIT,
            status_code=status_code,
            retry_after_seconds=retry_after_seconds,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def classify_http_status(status_code: int) -> ErrorKind:
    """Map a non-2xx HTTP status to an error kind.

    Args:
        status_code: The HTTP status of the failing response.

    Returns:
        ``TOO_LARGE`` for 413, ``RATE_LIMIT`` for 429, ``TIMEOUT`` for
        408/504 and ``PROVIDER_ERROR`` for everything else.
    """
    if status_code == 413:
        return ErrorKind.TOO_LARGE
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code in (408, 504):
        return ErrorKind.TIMEOUT
    return ErrorKind.PROVIDER_ERROR


_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.MISSING_INPUT: "Nothing to process. Select a file or provide some text.",
    ErrorKind.UNSUPPORTED_TYPE: "This file type is not supported.",
    ErrorKind.TOO_LARGE: "The file is too large for upload. Please use a smaller audio file.",
    ErrorKind.NETWORK_ERROR: "A network error occurred. Please check your internet connection.",
    ErrorKind.TIMEOUT: "The request timed out. Try a shorter audio file or try again later.",
    ErrorKind.RATE_LIMIT: (
        "The API rate limit was reached. "
        f"Please wait about {RATE_LIMIT_RETRY_SECONDS} seconds and try again."
    ),
    ErrorKind.PROVIDER_ERROR: "The provider could not process the request.",
    ErrorKind.PARSE_ERROR: "The provider response could not be understood.",
    ErrorKind.CANCELLED: "The operation was cancelled.",
    ErrorKind.UNKNOWN: "An unexpected error occurred.",
}


def user_message(error: AudioInsightError) -> str:
    """Return the text shown to the user for an error.

    Rate-limit errors always get the fixed wait hint so they are
    distinguishable from other failures; other kinds prefer the error's
    own message and fall back to a generic one.
    """
    if error.kind is ErrorKind.RATE_LIMIT:
        wait = error.retry_after_seconds or RATE_LIMIT_RETRY_SECONDS
        return (
            "The API rate limit was reached. "
            f"Please wait about {wait} seconds and try again."
        )
    return error.message or _USER_MESSAGES[error.kind]


def extract_error_message(payload: object, fallback: str) -> str:
    """Pull ``error.message`` (or a bare ``error`` string) out of a relay reply."""
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return fallback
