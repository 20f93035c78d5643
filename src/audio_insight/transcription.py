"""Transcription orchestrator: file selection to finished transcript.

State machine::

    idle -> estimating -> uploading -> transcribing -> succeeded
                              |             |
                              +--> failed <-+
    failed --retry--> estimating       any --reset--> idle

Progress is exposed as a polled ``ProgressChannel`` (and as queue
subscriptions): upload progress fills 0-50, the provider response is
reported coarsely at 75 and then 100.
"""

from __future__ import annotations

import asyncio
import io
import math
import wave
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from audio_insight.exceptions import (
    RATE_LIMIT_RETRY_SECONDS,
    ErrorKind,
    TranscriptionError,
    UploadError,
    classify_http_status,
    extract_error_message,
)
from audio_insight.logging import generate_run_id, stage_logging_context
from audio_insight.models import (
    Segment,
    TranscriptionOptions,
    TranscriptionResult,
    UploadCandidate,
)
from audio_insight.progress import ProgressChannel, scale_into_band

if TYPE_CHECKING:
    from audio_insight.config import TranscriptionSettings
    from audio_insight.transport import TransportHandle, UploadTransport
    from audio_insight.validator import FileValidator

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

UPLOAD_BAND = (0.0, 50.0)
TRANSCRIBING_PERCENT = 75.0

_WAV_TYPES = frozenset({"audio/wav", "audio/x-wav", "audio/wave"})

SUPPORTED_LANGUAGES: dict[str, str] = {
    "ko": "Korean (한국어)",
    "en": "English",
    "ja": "Japanese (日本語)",
    "zh": "Chinese (中文)",
    "es": "Spanish (Español)",
    "fr": "French (Français)",
    "de": "German (Deutsch)",
    "ru": "Russian (Русский)",
    "auto": "Auto-detect",
}

RESPONSE_FORMATS: dict[str, str] = {
    "plain": "Plain JSON (text only)",
    "segmented": "Verbose JSON (with timestamps)",
}


class TranscriptionState(StrEnum):
    IDLE = "idle"
    ESTIMATING = "estimating"
    UPLOADING = "uploading"
    TRANSCRIBING = "transcribing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def estimate_processing_seconds(duration_seconds: float) -> int:
    """Rough wall-clock estimate shown to the user; never used as a timeout."""
    return math.ceil(duration_seconds * 0.1) + 10


def probe_duration(candidate: UploadCandidate, fallback: float = 60.0) -> float:
    """Return the audio length in seconds, or ``fallback`` when unknown.

    Uses the declared duration when present, otherwise reads WAV headers.
    Other containers are not decoded.
    """
    if candidate.duration_seconds and candidate.duration_seconds > 0:
        return float(candidate.duration_seconds)

    if candidate.media_type in _WAV_TYPES:
        try:
            with wave.open(io.BytesIO(candidate.content)) as wav:
                frames = wav.getnframes()
                rate = wav.getframerate()
        except (wave.Error, EOFError) as exc:
            logger.debug("wav_probe_failed", file_name=candidate.display_name, error=str(exc))
        else:
            if frames > 0 and rate > 0:
                return frames / rate

    return fallback


def parse_transcription_payload(payload: Any) -> TranscriptionResult:
    """Turn a provider reply (verbose or plain JSON) into a ``TranscriptionResult``.

    Raises:
        TranscriptionError: ``PARSE_ERROR`` when no transcript text is present.
    """
    if isinstance(payload, str):
        return TranscriptionResult(full_text=payload.strip())

    if not isinstance(payload, dict) or not isinstance(payload.get("text"), str):
        raise TranscriptionError(
            "Failed to parse API response: no transcript text",
            ErrorKind.PARSE_ERROR,
        )

    segments: list[Segment] = []
    for raw in payload.get("segments") or []:
        if not isinstance(raw, dict):
            continue
        confidence = raw.get("confidence", raw.get("avg_logprob"))
        segments.append(
            Segment(
                start_seconds=float(raw.get("start", 0.0) or 0.0),
                end_seconds=float(raw.get("end", 0.0) or 0.0),
                text=str(raw.get("text", "")).strip(),
                confidence_score=float(confidence) if confidence is not None else None,
            )
        )

    duration = payload.get("duration")
    return TranscriptionResult(
        full_text=payload["text"].strip(),
        segments=tuple(segments),
        language=payload.get("language") or None,
        duration_seconds=float(duration) if duration is not None else None,
    )


def _error_from_handle(handle: TransportHandle) -> TranscriptionError:
    kind = classify_http_status(handle.status_code)
    message = extract_error_message(handle.payload, f"HTTP {handle.status_code}")
    if kind is ErrorKind.TOO_LARGE:
        message = "File too large for upload. Please use a smaller audio file."
    return TranscriptionError(
        message,
        kind,
        status_code=handle.status_code,
        retry_after_seconds=(
            RATE_LIMIT_RETRY_SECONDS if kind is ErrorKind.RATE_LIMIT else None
        ),
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class TranscriptionOrchestrator:
    """Drives one file through validation, upload and transcription.

    Attributes:
        state: Current ``TranscriptionState``.
        progress: Monotonic 0-100 progress for the current run.
        estimated_seconds: User-facing processing estimate for the file.
        result: The last successful transcript, until reset or reselect.
        error: The last failure, until reset or reselect.
    """

    def __init__(
        self,
        transport: UploadTransport,
        validator: FileValidator,
        settings: TranscriptionSettings,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._validator = validator
        self._settings = settings
        self._sleep = sleep

        self.state = TranscriptionState.IDLE
        self.progress = ProgressChannel("transcription")
        self.estimated_seconds = 0
        self.result: TranscriptionResult | None = None
        self.error: TranscriptionError | None = None
        self.candidate: UploadCandidate | None = None

        self._generation = 0
        self._task: asyncio.Task[TranscriptionResult] | None = None

    @property
    def is_transcribing(self) -> bool:
        return self.state in (TranscriptionState.UPLOADING, TranscriptionState.TRANSCRIBING)

    # -- transitions --------------------------------------------------------

    def select(self, candidate: UploadCandidate) -> int:
        """Validate a file and compute its processing estimate.

        Selecting a new file discards whatever the previous run produced.

        Returns:
            The estimated processing time in seconds.

        Raises:
            UploadRejectedError: If the file fails validation. No network
                call is made and the orchestrator stays idle.
        """
        self.reset()
        outcome = self._validator.validate(candidate)
        outcome.raise_for_rejection()

        self.candidate = candidate
        self.state = TranscriptionState.ESTIMATING
        duration = probe_duration(candidate, self._settings.fallback_duration_seconds)
        self.estimated_seconds = estimate_processing_seconds(duration)
        logger.info(
            "transcription_estimated",
            file_name=candidate.display_name,
            duration_seconds=round(duration, 2),
            estimated_seconds=self.estimated_seconds,
        )
        return self.estimated_seconds

    async def begin(
        self, options: TranscriptionOptions | None = None
    ) -> TranscriptionResult:
        """Upload the selected file and wait for its transcript.

        Raises:
            RuntimeError: If no file has been selected.
            TranscriptionError: On any transport or provider failure, or
                with kind ``CANCELLED`` if ``reset()`` superseded this run.
        """
        if self.state is not TranscriptionState.ESTIMATING or self.candidate is None:
            raise RuntimeError("begin() requires a selected file; call select() first")

        merged = (options or TranscriptionOptions()).merged_with_defaults(self._settings)
        generation = self._generation
        self._task = asyncio.create_task(self._run(generation, self.candidate, merged))
        try:
            return await self._task
        except asyncio.CancelledError:
            if generation != self._generation:
                raise TranscriptionError(
                    "Transcription was reset before it finished",
                    ErrorKind.CANCELLED,
                ) from None
            raise
        finally:
            if generation == self._generation:
                self._task = None

    async def transcribe(
        self,
        candidate: UploadCandidate,
        options: TranscriptionOptions | None = None,
    ) -> TranscriptionResult:
        """``select`` followed by ``begin``."""
        self.select(candidate)
        return await self.begin(options)

    async def retry(
        self,
        candidate: UploadCandidate,
        options: TranscriptionOptions | None = None,
    ) -> TranscriptionResult:
        """Re-run the whole pipeline from scratch; uploads are never resumed."""
        logger.info("transcription_retry", previous_state=self.state.value)
        return await self.transcribe(candidate, options)

    def reset(self) -> None:
        """Return to idle, abandoning any in-flight run and its late results."""
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info("transcription_in_flight_cancelled")
        self._task = None
        self.state = TranscriptionState.IDLE
        self.progress.restart()
        self.estimated_seconds = 0
        self.result = None
        self.error = None
        self.candidate = None

    # -- internals ----------------------------------------------------------

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _run(
        self,
        generation: int,
        candidate: UploadCandidate,
        options: TranscriptionOptions,
    ) -> TranscriptionResult:
        def on_upload_progress(percent: float) -> None:
            if self._is_current(generation):
                self.progress.advance(scale_into_band(percent, *UPLOAD_BAND))

        with stage_logging_context(
            "transcribe", run_id=generate_run_id(), file_name=candidate.display_name
        ) as log:
            self.state = TranscriptionState.UPLOADING
            self.progress.advance(0.0, stage=self.state.value)
            try:
                handle = await self._transport.upload(candidate, options, on_upload_progress)
                if not self._is_current(generation):
                    raise asyncio.CancelledError

                self.state = TranscriptionState.TRANSCRIBING
                self.progress.advance(TRANSCRIBING_PERCENT, stage=self.state.value)
                if not handle.ok:
                    raise _error_from_handle(handle)
                if handle.payload is None:
                    raise TranscriptionError(
                        "Failed to parse API response", ErrorKind.PARSE_ERROR,
                        status_code=handle.status_code,
                    )
                result = parse_transcription_payload(handle.payload)
                await self._sleep(self._settings.settle_delay_seconds)
            except TranscriptionError as exc:
                self._fail(generation, exc)
                raise
            except UploadError as exc:
                error = TranscriptionError(
                    exc.message,
                    exc.kind,
                    status_code=exc.status_code,
                    retry_after_seconds=(
                        RATE_LIMIT_RETRY_SECONDS
                        if exc.kind is ErrorKind.RATE_LIMIT
                        else exc.retry_after_seconds
                    ),
                )
                self._fail(generation, error)
                raise error from exc
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                log.exception("transcription_unexpected_error")
                error = TranscriptionError(f"Unexpected error: {exc}", ErrorKind.UNKNOWN)
                self._fail(generation, error)
                raise error from exc

            if not self._is_current(generation):
                raise asyncio.CancelledError

            self.result = result
            self.state = TranscriptionState.SUCCEEDED
            self.progress.advance(100.0, stage=self.state.value)
            log.info(
                "transcription_succeeded",
                text_length=len(result.full_text),
                segments=len(result.segments),
            )
            return result

    def _fail(self, generation: int, error: TranscriptionError) -> None:
        if not self._is_current(generation):
            return
        self.error = error
        self.state = TranscriptionState.FAILED
        self.progress.advance(self.progress.percent, stage=self.state.value)
        logger.warning(
            "transcription_failed",
            kind=error.kind.value,
            status_code=error.status_code,
            error=error.message,
        )


def supported_languages() -> dict[str, str]:
    return dict(SUPPORTED_LANGUAGES)


def response_formats() -> dict[str, str]:
    return dict(RESPONSE_FORMATS)
