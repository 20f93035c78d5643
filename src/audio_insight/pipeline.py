"""Session pipeline: audio file -> transcript -> optional analysis."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx
import structlog

from audio_insight.analysis import AnalysisOrchestrator, check_requested_kinds
from audio_insight.analysis_cache import AnalysisCache
from audio_insight.generation import build_generator
from audio_insight.transcription import TranscriptionOrchestrator
from audio_insight.transport import build_transport
from audio_insight.validator import FileValidator

if TYPE_CHECKING:
    from audio_insight.config import Settings
    from audio_insight.models import (
        AnalysisOptions,
        AnalysisResult,
        TranscriptionOptions,
        TranscriptionResult,
        UploadCandidate,
    )

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


@dataclass(slots=True)
class SessionOutcome:
    transcription: TranscriptionResult
    analysis: AnalysisResult | None = None


class InsightPipeline:
    """Wires a transcription orchestrator to an analysis orchestrator.

    Use as an async context manager when the pipeline owns its HTTP client
    (as ``create_pipeline`` arranges), so the client is closed on exit.
    """

    def __init__(
        self,
        transcriber: TranscriptionOrchestrator,
        analyzer: AnalysisOrchestrator,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.transcriber = transcriber
        self.analyzer = analyzer
        self._client = client

    async def run(
        self,
        candidate: UploadCandidate,
        transcription_options: TranscriptionOptions | None = None,
        analysis_options: AnalysisOptions | None = None,
    ) -> SessionOutcome:
        """Transcribe ``candidate`` and, if requested, analyse the transcript.

        Transcription errors propagate. Per-kind analysis failures are
        carried inside the returned ``AnalysisResult``.

        Raises:
            AnalysisError: ``MISSING_INPUT`` if ``analysis_options`` enables no
                kind. Raised before any upload.
        """
        if analysis_options is not None:
            check_requested_kinds(analysis_options)

        transcript = await self.transcriber.transcribe(candidate, transcription_options)
        if analysis_options is None:
            return SessionOutcome(transcription=transcript)

        analysis = await self.analyzer.analyze_all(transcript.full_text, analysis_options)
        logger.info(
            "session_complete",
            file_name=candidate.display_name,
            analysed=True,
            failed_kinds=[kind.value for kind in analysis.per_kind_errors],
        )
        return SessionOutcome(transcription=transcript, analysis=analysis)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def __aenter__(self) -> InsightPipeline:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def create_pipeline(
    settings: Settings, client: httpx.AsyncClient | None = None
) -> InsightPipeline:
    """Build the default components around one ``httpx.AsyncClient``.

    The transport enforces its own wall-clock limit, so the client itself
    has no read timeout.
    """
    owned = client is None
    http = client or httpx.AsyncClient(timeout=httpx.Timeout(None, connect=30.0))

    transcriber = TranscriptionOrchestrator(
        build_transport(settings.transport, http),
        FileValidator(settings.transport),
        settings.transcription,
    )
    analyzer = AnalysisOrchestrator(
        build_generator(settings.analysis, http, settings.transport.relay_base_url),
        AnalysisCache(settings.cache.ttl_seconds, settings.cache.max_entries),
        settings.analysis,
        settings.cache,
    )
    return InsightPipeline(transcriber, analyzer, http if owned else None)
