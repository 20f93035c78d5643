"""Unit tests for audio_insight.validator."""

from __future__ import annotations

import pytest

from audio_insight.config import TransportSettings
from audio_insight.exceptions import ErrorKind, UploadRejectedError
from audio_insight.models import UploadCandidate
from audio_insight.validator import (
    FileValidator,
    RejectionReason,
    validate_upload,
)

_MB = 1024 * 1024
_TYPES = ("audio/mpeg", "audio/wav")


def _candidate(size: int, media_type: str = "audio/mpeg") -> UploadCandidate:
    return UploadCandidate(
        content=b"",
        media_type=media_type,
        size_bytes=size,
        display_name="clip",
    )


class TestValidateUpload:
    def test_accepts_supported_file_within_limit(self) -> None:
        outcome = validate_upload(_candidate(5 * _MB), accepted_types=_TYPES, max_bytes=15 * _MB)
        assert outcome.accepted
        assert outcome.reason is None

    def test_exactly_at_limit_is_accepted(self) -> None:
        outcome = validate_upload(_candidate(15 * _MB), accepted_types=_TYPES, max_bytes=15 * _MB)
        assert outcome.accepted

    def test_one_byte_over_limit_is_rejected(self) -> None:
        outcome = validate_upload(
            _candidate(15 * _MB + 1), accepted_types=_TYPES, max_bytes=15 * _MB
        )
        assert not outcome.accepted
        assert outcome.reason is RejectionReason.TOO_LARGE
        assert "15.0MB" in outcome.message

    def test_unsupported_type(self) -> None:
        outcome = validate_upload(
            _candidate(1000, "video/mp4"), accepted_types=_TYPES, max_bytes=15 * _MB
        )
        assert outcome.reason is RejectionReason.UNSUPPORTED_TYPE
        assert "video/mp4" in outcome.message

    def test_size_checked_before_type(self) -> None:
        outcome = validate_upload(
            _candidate(20 * _MB, "video/mp4"), accepted_types=_TYPES, max_bytes=15 * _MB
        )
        assert outcome.reason is RejectionReason.TOO_LARGE

    @pytest.mark.parametrize("candidate", [None, _candidate(0)])
    def test_missing_input(self, candidate: UploadCandidate | None) -> None:
        outcome = validate_upload(candidate, accepted_types=_TYPES, max_bytes=_MB)
        assert outcome.reason is RejectionReason.MISSING_INPUT


class TestRaiseForRejection:
    def test_accepted_does_not_raise(self) -> None:
        validate_upload(_candidate(10), accepted_types=_TYPES, max_bytes=_MB).raise_for_rejection()

    def test_rejection_maps_to_error_kind(self) -> None:
        outcome = validate_upload(
            _candidate(10, "text/plain"), accepted_types=_TYPES, max_bytes=_MB
        )
        with pytest.raises(UploadRejectedError) as excinfo:
            outcome.raise_for_rejection()
        assert excinfo.value.kind is ErrorKind.UNSUPPORTED_TYPE


class TestFileValidator:
    def test_direct_strategy_ceiling(self) -> None:
        validator = FileValidator(TransportSettings(strategy="direct"))
        assert not validator.validate(_candidate(20 * _MB)).accepted

    def test_staged_strategy_ceiling(self) -> None:
        validator = FileValidator(TransportSettings(strategy="staged"))
        assert validator.validate(_candidate(20 * _MB)).accepted
        assert not validator.validate(_candidate(501 * _MB)).accepted

    def test_default_accepted_types(self) -> None:
        validator = FileValidator(TransportSettings())
        for media_type in ("audio/mpeg", "audio/mp3", "audio/wav", "audio/m4a",
                           "audio/mp4", "audio/webm", "audio/ogg"):
            assert validator.validate(_candidate(10, media_type)).accepted
        assert not validator.validate(_candidate(10, "audio/flac")).accepted
