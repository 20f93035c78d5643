"""Data model shared by the transcription and analysis pipelines.

Everything here lives for one process/session only; nothing is persisted.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from audio_insight.config import TranscriptionSettings

# Extensions the stdlib ``mimetypes`` table does not know on every platform.
_EXTRA_MEDIA_TYPES: dict[str, str] = {
    ".m4a": "audio/m4a",
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
}

_WIRE_RESPONSE_FORMAT: dict[str, str] = {
    "segmented": "verbose_json",
    "plain": "json",
}


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UploadCandidate:
    """A selected audio file. Immutable once selected."""

    content: bytes
    media_type: str
    size_bytes: int
    display_name: str
    duration_seconds: float | None = None

    @classmethod
    def from_bytes(
        cls,
        content: bytes,
        *,
        media_type: str,
        display_name: str = "audio",
        duration_seconds: float | None = None,
    ) -> UploadCandidate:
        return cls(
            content=content,
            media_type=media_type,
            size_bytes=len(content),
            display_name=display_name,
            duration_seconds=duration_seconds,
        )

    @classmethod
    def from_path(
        cls,
        path: Path | str,
        *,
        media_type: str | None = None,
        duration_seconds: float | None = None,
    ) -> UploadCandidate:
        """Read a file from disk, guessing its media type from the suffix."""
        path = Path(path)
        content = path.read_bytes()
        return cls.from_bytes(
            content,
            media_type=media_type or guess_media_type(path),
            display_name=path.name,
            duration_seconds=duration_seconds,
        )


def guess_media_type(path: Path | str) -> str:
    """Best-effort media type for an audio file name."""
    suffix = Path(path).suffix.lower()
    if suffix in _EXTRA_MEDIA_TYPES:
        return _EXTRA_MEDIA_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or "application/octet-stream"


# ---------------------------------------------------------------------------
# Transcription
# ---------------------------------------------------------------------------


class TranscriptionOptions(BaseModel):
    """Caller-supplied transcription options; ``None`` means "use default"."""

    model_config = ConfigDict(frozen=True)

    language_hint: str | None = None
    prompt_hint: str | None = None
    response_format: Literal["plain", "segmented"] | None = None
    sampling_temperature: float | None = Field(default=None, ge=0.0, le=1.0)
    model_name: str | None = None

    def merged_with_defaults(
        self, defaults: TranscriptionSettings
    ) -> TranscriptionOptions:
        """Return a copy where every absent option takes the configured default."""
        return TranscriptionOptions(
            language_hint=self.language_hint or defaults.language,
            prompt_hint=self.prompt_hint,
            response_format=self.response_format or defaults.response_format,
            sampling_temperature=(
                self.sampling_temperature
                if self.sampling_temperature is not None
                else defaults.temperature
            ),
            model_name=self.model_name or defaults.model,
        )

    def to_provider_fields(self) -> dict[str, str]:
        """Render the options as the provider's form/JSON fields."""
        fields: dict[str, str] = {
            "model": self.model_name or "whisper-large-v3",
            "response_format": _WIRE_RESPONSE_FORMAT[
                self.response_format or "segmented"
            ],
        }
        if self.language_hint and self.language_hint != "auto":
            fields["language"] = self.language_hint
        if self.prompt_hint:
            fields["prompt"] = self.prompt_hint
        if self.sampling_temperature is not None:
            fields["temperature"] = str(self.sampling_temperature)
        return fields


class Segment(BaseModel):
    """A timestamped slice of a transcript.

    ``confidence_score`` is the provider's average log-probability for the
    segment (closer to zero is better), when reported.
    """

    model_config = ConfigDict(frozen=True)

    start_seconds: float
    end_seconds: float
    text: str
    confidence_score: float | None = None


class TranscriptionResult(BaseModel):
    """The outcome of one successful transcription."""

    model_config = ConfigDict(frozen=True)

    full_text: str
    segments: tuple[Segment, ...] = ()
    language: str | None = None
    duration_seconds: float | None = None


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


class AnalysisKind(StrEnum):
    """The three independent analyses run over a transcript."""

    SUMMARY = "summary"
    KEYWORDS = "keywords"
    QUESTIONS = "questions"


class ParseQuality(StrEnum):
    """How a structured provider reply was obtained."""

    STRICT = "strict"
    FALLBACK = "fallback"
    FAILED = "failed"


class AnalysisOptions(BaseModel):
    """Which analyses to run and how."""

    model_config = ConfigDict(frozen=True)

    include_summary: bool = True
    include_keywords: bool = True
    include_questions: bool = True
    summary_style: Literal["brief", "comprehensive", "bulleted"] = "comprehensive"
    max_keywords: int = Field(default=10, ge=5, le=20)
    max_questions: int = Field(default=8, ge=3, le=15)
    language: Literal["ko", "en"] = "ko"

    @property
    def requested_kinds(self) -> list[AnalysisKind]:
        kinds: list[AnalysisKind] = []
        if self.include_summary:
            kinds.append(AnalysisKind.SUMMARY)
        if self.include_keywords:
            kinds.append(AnalysisKind.KEYWORDS)
        if self.include_questions:
            kinds.append(AnalysisKind.QUESTIONS)
        return kinds


class SummaryResult(BaseModel):
    """A generated summary and its size statistics."""

    style: Literal["brief", "comprehensive", "bulleted"]
    text: str
    original_length: int = Field(ge=0)
    summary_length: int = Field(ge=0)
    compression_ratio_percent: int


class KeywordItem(BaseModel):
    """One extracted keyword."""

    word: str
    importance_score: int = Field(default=5, ge=1, le=10)
    category: str = "other"
    context_note: str = ""


class KeywordsResult(BaseModel):
    """Keyword extraction outcome."""

    items: list[KeywordItem] = Field(default_factory=list)
    total_found: int = 0
    parse_quality: ParseQuality = ParseQuality.STRICT


class QuestionItem(BaseModel):
    """One anticipated question."""

    question: str
    type: str = ""
    difficulty: str = ""
    context_note: str = ""


class QuestionsResult(BaseModel):
    """Question generation outcome."""

    items: list[QuestionItem] = Field(default_factory=list)
    total_generated: int = 0
    parse_quality: ParseQuality = ParseQuality.STRICT


class SourceTextInfo(BaseModel):
    """Statistics about the text that was handed to analysis."""

    length: int
    word_count: int
    preview: str
    chunk_count: int = 1
    analyzed_length: int


class AnalysisResult(BaseModel):
    """Aggregated outcome of an analysis run, possibly partial.

    Successful kinds and ``per_kind_errors`` are disjoint; both may be
    non-empty at once.
    """

    summary: SummaryResult | None = None
    keywords: KeywordsResult | None = None
    questions: QuestionsResult | None = None
    per_kind_errors: dict[AnalysisKind, str] = Field(default_factory=dict)
    source: SourceTextInfo | None = None
    produced_at: datetime = Field(default_factory=_utcnow)

    @property
    def succeeded(self) -> bool:
        """True when at least one analysis kind produced a result."""
        return any(
            part is not None for part in (self.summary, self.keywords, self.questions)
        )
