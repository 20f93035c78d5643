"""Pre-flight validation of a selected audio file.

Runs before any network activity: a rejected file never reaches the
upload transport.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

from audio_insight.exceptions import ErrorKind, UploadRejectedError

if TYPE_CHECKING:
    from audio_insight.config import TransportSettings
    from audio_insight.models import UploadCandidate

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


class RejectionReason(StrEnum):
    """Why a file was refused."""

    MISSING_INPUT = "MISSING_INPUT"
    UNSUPPORTED_TYPE = "UNSUPPORTED_TYPE"
    TOO_LARGE = "TOO_LARGE"


class ValidationOutcome(BaseModel):
    """Tagged result of ``validate_upload``: accepted, or rejected with a reason."""

    accepted: bool
    reason: RejectionReason | None = None
    message: str = ""

    def raise_for_rejection(self) -> None:
        """Raise ``UploadRejectedError`` if the file was rejected."""
        if self.accepted or self.reason is None:
            return
        raise UploadRejectedError(self.message, ErrorKind(self.reason.value))


def _format_megabytes(size_bytes: int) -> str:
    return f"{size_bytes / 1024 / 1024:.1f}MB"


def validate_upload(
    candidate: UploadCandidate | None,
    *,
    accepted_types: Iterable[str],
    max_bytes: int,
) -> ValidationOutcome:
    """Check a file's declared type and size against the configured limits.

    Pure function: no I/O, no logging side effects the caller depends on.

    Args:
        candidate: The selected file, or ``None`` if nothing was selected.
        accepted_types: Media types the backend accepts.
        max_bytes: Size ceiling of the active transport strategy.

    Returns:
        A ``ValidationOutcome``. Size is checked before type, matching the
        order users see the limits in.
    """
    if candidate is None or candidate.size_bytes <= 0:
        return ValidationOutcome(
            accepted=False,
            reason=RejectionReason.MISSING_INPUT,
            message="No audio file provided.",
        )

    if candidate.size_bytes > max_bytes:
        return ValidationOutcome(
            accepted=False,
            reason=RejectionReason.TOO_LARGE,
            message=(
                f"File too large. Maximum size is {_format_megabytes(max_bytes)}, "
                f"got {_format_megabytes(candidate.size_bytes)}. "
                "Please use a smaller audio file."
            ),
        )

    allowed = set(accepted_types)
    if candidate.media_type not in allowed:
        return ValidationOutcome(
            accepted=False,
            reason=RejectionReason.UNSUPPORTED_TYPE,
            message=(
                f"Unsupported file type: {candidate.media_type}. "
                f"Supported types: {', '.join(sorted(allowed))}"
            ),
        )

    return ValidationOutcome(accepted=True)


class FileValidator:
    """``validate_upload`` bound to the active transport's limits."""

    def __init__(self, settings: TransportSettings) -> None:
        self.accepted_types = tuple(settings.accepted_types)
        self.max_bytes = settings.max_bytes

    def validate(self, candidate: UploadCandidate | None) -> ValidationOutcome:
        outcome = validate_upload(
            candidate,
            accepted_types=self.accepted_types,
            max_bytes=self.max_bytes,
        )
        if not outcome.accepted:
            logger.info(
                "upload_rejected",
                reason=outcome.reason,
                media_type=getattr(candidate, "media_type", None),
                size_bytes=getattr(candidate, "size_bytes", 0),
            )
        return outcome
