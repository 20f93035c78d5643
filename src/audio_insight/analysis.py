"""Analysis orchestrator: summary, keywords and questions over a transcript.

Fans the enabled analysis kinds out concurrently, tolerates per-kind
failure, caches the aggregate and supports best-effort cancellation.

Progress for ``analyze_all`` is coarse: 10 when started, 30 once requests
are issued, then evenly up to 90 as kinds settle, and 100 at the end.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel

from audio_insight import prompts
from audio_insight.analysis_cache import ALL_KINDS_KEY, build_cache_key
from audio_insight.chunking import split_into_chunks
from audio_insight.exceptions import (
    AnalysisCancelledError,
    AnalysisError,
    AudioInsightError,
    ErrorKind,
)
from audio_insight.logging import generate_run_id, stage_logging_context
from audio_insight.models import (
    AnalysisKind,
    AnalysisOptions,
    AnalysisResult,
    KeywordsResult,
    QuestionsResult,
    SourceTextInfo,
    SummaryResult,
)
from audio_insight.normalizer import normalize_keywords, normalize_questions
from audio_insight.progress import ProgressChannel

if TYPE_CHECKING:
    from audio_insight.analysis_cache import AnalysisCache
    from audio_insight.config import AnalysisSettings, CacheSettings
    from audio_insight.generation import TextGenerator

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

STARTED_PERCENT = 10.0
ISSUED_PERCENT = 30.0
SETTLED_PERCENT = 90.0
PREVIEW_LENGTH = 200

_KIND_MESSAGES: dict[str, str] = {
    AnalysisKind.SUMMARY: "Summarizing text...",
    AnalysisKind.KEYWORDS: "Extracting keywords...",
    AnalysisKind.QUESTIONS: "Generating anticipated questions...",
}


class ProgressInfo(BaseModel):
    """Snapshot for a progress display."""

    percent: float
    message: str
    kind: str | None = None


def _compression_ratio(original_length: int, summary_length: int) -> int:
    if original_length <= 0:
        return 0
    return math.floor((1 - summary_length / original_length) * 100 + 0.5)


def check_requested_kinds(options: AnalysisOptions) -> None:
    """Fail fast when no analysis kind is enabled.

    Raises:
        AnalysisError: ``MISSING_INPUT`` if every include flag is off.
    """
    if not options.requested_kinds:
        raise AnalysisError(
            "Select at least one analysis: summary, keywords or questions",
            ErrorKind.MISSING_INPUT,
        )


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, AudioInsightError):
        return exc.message
    return f"Unexpected error: {exc}"


class AnalysisOrchestrator:
    """Runs analyses for one session against an injected cache.

    Attributes:
        is_analyzing: True while a run is in flight.
        progress: Coarse 0-100 progress of the current run.
        active_kind: ``"all"``, a single kind, or ``None`` when idle.
        result: Last aggregate from ``analyze_all``.
        error: Last request-level failure.
    """

    def __init__(
        self,
        generator: TextGenerator,
        cache: AnalysisCache,
        settings: AnalysisSettings,
        cache_settings: CacheSettings | None = None,
    ) -> None:
        self._generator = generator
        self._cache = cache
        self._settings = settings
        self._key_prefix_length = cache_settings.key_prefix_length if cache_settings else 100

        self.is_analyzing = False
        self.progress = ProgressChannel("analysis")
        self.active_kind: str | None = None
        self.result: AnalysisResult | None = None
        self.error: AnalysisError | None = None

        self._generation = 0
        self._tasks: set[asyncio.Task[Any]] = set()

    # -- per-kind operations (no cache, no visible state) ---------------------

    async def summarize(self, text: str, options: AnalysisOptions) -> SummaryResult:
        """Generate a summary in the requested style and language.

        Raises:
            AnalysisError: On provider failure.
        """
        reply = await self._generator.generate(prompts.summary_request(text, options))
        return SummaryResult(
            style=options.summary_style,
            text=reply.text,
            original_length=len(text),
            summary_length=len(reply.text),
            compression_ratio_percent=_compression_ratio(len(text), len(reply.text)),
        )

    async def extract_keywords(
        self, text: str, options: AnalysisOptions
    ) -> KeywordsResult:
        """Extract up to ``options.max_keywords`` scored keywords.

        Raises:
            AnalysisError: On provider failure, or ``PARSE_ERROR`` when
                nothing usable could be read from the reply.
        """
        reply = await self._generator.generate(prompts.keywords_request(text, options))
        outcome = normalize_keywords(reply.text, options.max_keywords)
        if outcome.value is None:
            raise AnalysisError(
                outcome.error or "Failed to parse keywords", ErrorKind.PARSE_ERROR
            )
        return outcome.value

    async def generate_questions(
        self, text: str, options: AnalysisOptions
    ) -> QuestionsResult:
        """Generate up to ``options.max_questions`` anticipated questions.

        Raises:
            AnalysisError: On provider failure or an unparseable reply.
        """
        reply = await self._generator.generate(prompts.questions_request(text, options))
        outcome = normalize_questions(reply.text, options.max_questions)
        if outcome.value is None:
            raise AnalysisError(
                outcome.error or "Failed to parse questions", ErrorKind.PARSE_ERROR
            )
        return outcome.value

    def _operation(
        self, kind: AnalysisKind
    ) -> Callable[[str, AnalysisOptions], Awaitable[BaseModel]]:
        return {
            AnalysisKind.SUMMARY: self.summarize,
            AnalysisKind.KEYWORDS: self.extract_keywords,
            AnalysisKind.QUESTIONS: self.generate_questions,
        }[kind]

    # -- orchestrated operations ----------------------------------------------

    async def analyze_all(
        self, text: str, options: AnalysisOptions | None = None
    ) -> AnalysisResult:
        """Run every enabled kind concurrently and aggregate the outcomes.

        A kind that fails is recorded in ``per_kind_errors``; the others
        still complete. The aggregate is cached under the ``all`` key.

        Raises:
            AnalysisError: ``MISSING_INPUT`` for blank text or when no kind
                is enabled (no provider call is made).
            AnalysisCancelledError: If ``cancel()`` superseded this run.
        """
        options = options or AnalysisOptions()
        self._preflight(text, options)

        key = self._key(text, options, ALL_KINDS_KEY)
        cached = self._cache.get(key)
        if cached is not None:
            logger.info("analysis_cache_used", kind=ALL_KINDS_KEY)
            self.result = cached
            return cached

        generation = self._start(ALL_KINDS_KEY)
        self.result = None

        with stage_logging_context("analyze", run_id=generate_run_id()) as log:
            self.progress.advance(STARTED_PERCENT)
            analysed_text, chunk_count = self._select_text(text)
            kinds = options.requested_kinds

            tasks = {
                kind: asyncio.create_task(self._operation(kind)(analysed_text, options))
                for kind in kinds
            }
            self._tasks.update(tasks.values())
            self.progress.advance(ISSUED_PERCENT)

            settled = 0

            def on_settled(_task: asyncio.Task[Any]) -> None:
                nonlocal settled
                settled += 1
                if generation == self._generation:
                    span = SETTLED_PERCENT - ISSUED_PERCENT
                    self.progress.advance(ISSUED_PERCENT + span * settled / len(kinds))

            for task in tasks.values():
                task.add_done_callback(on_settled)

            try:
                outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)
            finally:
                self._tasks.difference_update(tasks.values())

            if generation != self._generation:
                log.info("analysis_discarded", reason="cancelled")
                raise AnalysisCancelledError("Analysis was cancelled")

            result = AnalysisResult(
                source=SourceTextInfo(
                    length=len(text),
                    word_count=len(text.split()),
                    preview=text[:PREVIEW_LENGTH]
                    + ("..." if len(text) > PREVIEW_LENGTH else ""),
                    chunk_count=chunk_count,
                    analyzed_length=len(analysed_text),
                )
            )
            for kind, outcome in zip(tasks, outcomes, strict=True):
                if isinstance(outcome, BaseException):
                    result.per_kind_errors[kind] = _error_text(outcome)
                    error_kind = (
                        outcome.kind
                        if isinstance(outcome, AudioInsightError)
                        else ErrorKind.UNKNOWN
                    )
                    log.warning(
                        "analysis_kind_failed",
                        kind=kind.value,
                        error_kind=error_kind.value,
                        error=_error_text(outcome),
                    )
                else:
                    setattr(result, kind.value, outcome)

            if result.succeeded:
                self._cache.put(key, result)
            self.result = result
            self._finish()
            log.info(
                "analysis_complete",
                kinds=[kind.value for kind in kinds],
                failed=[kind.value for kind in result.per_kind_errors],
                chunk_count=chunk_count,
            )
            return result

    async def analyze_kind(
        self,
        kind: AnalysisKind,
        text: str,
        options: AnalysisOptions | None = None,
    ) -> BaseModel:
        """Run a single kind through the cache, regardless of include flags.

        Raises:
            AnalysisError: On blank text or when the kind fails.
            AnalysisCancelledError: If ``cancel()`` superseded this run.
        """
        options = options or AnalysisOptions()
        if not text or not text.strip():
            raise AnalysisError("No text provided for analysis", ErrorKind.MISSING_INPUT)

        key = self._key(text, options, kind.value)
        cached = self._cache.get(key)
        if cached is not None:
            logger.info("analysis_cache_used", kind=kind.value)
            return cached

        generation = self._start(kind.value)
        self.progress.advance(ISSUED_PERCENT)
        task = asyncio.create_task(self._operation(kind)(text, options))
        self._tasks.add(task)
        try:
            value = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                raise AnalysisCancelledError("Analysis was cancelled") from None
            raise
        except AnalysisError as exc:
            if generation == self._generation:
                self.error = exc
                self._finish()
            raise
        finally:
            self._tasks.discard(task)

        if generation != self._generation:
            raise AnalysisCancelledError("Analysis was cancelled")
        self._cache.put(key, value)
        self._finish()
        return value

    async def reanalyze(
        self, text: str, options: AnalysisOptions | None = None
    ) -> AnalysisResult:
        """Drop the cached aggregate for this request and run it again."""
        options = options or AnalysisOptions()
        self._cache.delete(self._key(text, options, ALL_KINDS_KEY))
        return await self.analyze_all(text, options)

    def cancel(self) -> None:
        """Abandon the in-flight run.

        Visible state is cleared at once; outstanding provider calls are
        cancelled and whatever they return is neither applied nor cached.
        """
        self._generation += 1
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        self._tasks.clear()
        self.is_analyzing = False
        self.active_kind = None
        self.progress.restart()
        logger.info("analysis_cancelled", pending_requests=len(pending))

    def reset(self) -> None:
        """Cancel anything in flight and clear results and errors."""
        self.cancel()
        self.result = None
        self.error = None

    def clear_cache(self) -> None:
        self._cache.clear()

    def has_cached_result(self, text: str, options: AnalysisOptions | None = None) -> bool:
        return self._cache.has(self._key(text, options or AnalysisOptions(), ALL_KINDS_KEY))

    @property
    def cache_size(self) -> int:
        return self._cache.size

    def progress_info(self) -> ProgressInfo:
        percent = self.progress.percent
        if self.active_kind == ALL_KINDS_KEY:
            if percent < 30:
                message = "Starting analysis..."
            elif percent < 60:
                message = "AI analysis in progress..."
            elif percent < 90:
                message = "Processing results..."
            else:
                message = "Finishing analysis..."
        else:
            message = _KIND_MESSAGES.get(self.active_kind or "", "Analyzing...")
        return ProgressInfo(percent=percent, message=message, kind=self.active_kind)

    # -- internals ------------------------------------------------------------

    def _preflight(self, text: str, options: AnalysisOptions) -> None:
        if not text or not text.strip():
            raise AnalysisError("No text provided for analysis", ErrorKind.MISSING_INPUT)
        check_requested_kinds(options)

    def _key(self, text: str, options: AnalysisOptions, kind: str) -> str:
        return build_cache_key(text, options, kind, self._key_prefix_length)

    def _select_text(self, text: str) -> tuple[str, int]:
        """Return the text to analyse and how many chunks the input had."""
        if len(text) <= self._settings.chunk_threshold:
            return text, 1
        chunks = split_into_chunks(text, self._settings.chunk_size)
        logger.info(
            "analysis_text_chunked",
            length=len(text),
            chunk_count=len(chunks),
            analysed_length=len(chunks[0]),
        )
        return chunks[0], len(chunks)

    def _start(self, kind: str) -> int:
        self._generation += 1
        self.is_analyzing = True
        self.active_kind = kind
        self.error = None
        self.progress.restart(stage=kind)
        return self._generation

    def _finish(self) -> None:
        self.progress.advance(100.0)
        self.is_analyzing = False
        self.active_kind = None
