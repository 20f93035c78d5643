"""Typer CLI entry point for audio-insight."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from pathlib import Path
from typing import Annotated, Any, TypeVar

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from audio_insight import __version__
from audio_insight.analysis import check_requested_kinds
from audio_insight.config import Settings, format_validation_error
from audio_insight.exceptions import AudioInsightError, ErrorKind, user_message
from audio_insight.logging import configure_logging
from audio_insight.models import (
    AnalysisOptions,
    AnalysisResult,
    TranscriptionOptions,
    TranscriptionResult,
    UploadCandidate,
)
from audio_insight.pipeline import create_pipeline
from audio_insight.progress import ProgressChannel
from audio_insight.transcription import response_formats, supported_languages

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="audio-insight",
    help="Transcribe audio files and analyse the transcript.",
    no_args_is_help=True,
)

T = TypeVar("T")

_POLL_INTERVAL_SECONDS = 0.1


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(
    config_path: Path | None = None,
    verbose: bool = False,
    **overrides: Any,
) -> Settings:
    """Load settings with error handling and user-friendly messages."""
    from pydantic import ValidationError

    if verbose:
        overrides["logging"] = {"level": "DEBUG"}
    try:
        settings = Settings.load(config_path=config_path, **overrides)
    except ValidationError as exc:
        err_console.print(
            Panel(
                format_validation_error(exc),
                title="Configuration Error",
                border_style="red",
            )
        )
        raise typer.Exit(code=1) from exc

    configure_logging(
        settings.logging.level, settings.logging.format, settings.logging.file
    )
    return settings


def _create_progress() -> Progress:
    """Create a Rich progress bar with spinner, text, bar, and time columns."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


async def _with_progress(
    coro: Coroutine[Any, Any, T],
    channel: ProgressChannel,
    label: str,
) -> T:
    """Await ``coro`` while polling ``channel`` into a progress bar."""
    with _create_progress() as progress:
        task_id = progress.add_task(label, total=100)
        job = asyncio.ensure_future(coro)
        while not job.done():
            progress.update(
                task_id,
                completed=channel.percent,
                description=f"[cyan]{label}[/cyan] {channel.stage}",
            )
            await asyncio.wait({job}, timeout=_POLL_INTERVAL_SECONDS)
        progress.update(task_id, completed=channel.percent)
        return job.result()


def _display_error(exc: AudioInsightError) -> None:
    logger.debug("command_failed", kind=exc.kind.value, status_code=exc.status_code)
    if exc.kind is ErrorKind.RATE_LIMIT:
        err_console.print(
            Panel(
                f"[yellow bold]{user_message(exc)}[/yellow bold]",
                title="Rate Limited",
                border_style="yellow",
            )
        )
        return
    err_console.print(
        Panel(
            f"[red bold]{exc.kind.value}[/red bold]\n\n{user_message(exc)}",
            title="Error",
            border_style="red",
        )
    )


def _read_candidate(path: Path, duration: float | None) -> UploadCandidate:
    if not path.is_file():
        err_console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(code=1)
    return UploadCandidate.from_path(path, duration_seconds=duration)


def _analysis_options(
    *,
    summary: bool,
    keywords: bool,
    questions: bool,
    style: str,
    max_keywords: int,
    max_questions: int,
    language: str,
) -> AnalysisOptions:
    from pydantic import ValidationError

    try:
        return AnalysisOptions(
            include_summary=summary,
            include_keywords=keywords,
            include_questions=questions,
            summary_style=style,
            max_keywords=max_keywords,
            max_questions=max_questions,
            language=language,
        )
    except ValidationError as exc:
        err_console.print(
            Panel(format_validation_error(exc), title="Invalid Options", border_style="red")
        )
        raise typer.Exit(code=1) from exc


def _display_transcript(result: TranscriptionResult) -> None:
    console.print(Panel(result.full_text or "[dim](empty)[/dim]", title="Transcript"))
    if not result.segments:
        return
    table = Table(title="Segments", show_lines=False)
    table.add_column("Start", style="cyan", justify="right")
    table.add_column("End", style="cyan", justify="right")
    table.add_column("Text", style="white")
    table.add_column("Confidence", style="dim", justify="right")
    for segment in result.segments:
        table.add_row(
            f"{segment.start_seconds:.1f}",
            f"{segment.end_seconds:.1f}",
            segment.text,
            f"{segment.confidence_score:.2f}"
            if segment.confidence_score is not None
            else "",
        )
    console.print(table)


def _display_analysis(result: AnalysisResult) -> None:
    if result.summary is not None:
        console.print(
            Panel(
                result.summary.text,
                title=f"Summary ({result.summary.style})",
                subtitle=f"compression {result.summary.compression_ratio_percent}%",
            )
        )

    if result.keywords is not None:
        table = Table(title=f"Keywords ({result.keywords.parse_quality.value})")
        table.add_column("Keyword", style="bold")
        table.add_column("Importance", justify="right", style="cyan")
        table.add_column("Category", style="magenta")
        table.add_column("Context", style="dim")
        for item in result.keywords.items:
            table.add_row(
                item.word, str(item.importance_score), item.category, item.context_note
            )
        console.print(table)

    if result.questions is not None:
        table = Table(
            title=f"Anticipated Questions ({result.questions.parse_quality.value})",
            show_lines=True,
        )
        table.add_column("#", style="cyan", justify="right", width=4)
        table.add_column("Question", style="white")
        table.add_column("Type", style="magenta")
        table.add_column("Difficulty", style="dim")
        for index, item in enumerate(result.questions.items, start=1):
            table.add_row(str(index), item.question, item.type, item.difficulty)
        console.print(table)

    for kind, message in result.per_kind_errors.items():
        err_console.print(f"[red]{kind.value} failed:[/red] {message}")

    if result.source is not None and result.source.chunk_count > 1:
        console.print(
            f"[dim]Long text: analysed the first of {result.source.chunk_count} "
            f"chunks ({result.source.analyzed_length} of "
            f"{result.source.length} characters).[/dim]"
        )


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]audio-insight[/bold] {__version__}")
        raise typer.Exit


@app.callback()
def common(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """audio-insight global options."""


# ---------------------------------------------------------------------------
# Shared option types
# ---------------------------------------------------------------------------

ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="Path to config YAML file.")
]
VerboseOption = Annotated[
    bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")
]
JsonOption = Annotated[
    bool, typer.Option("--json", help="Print the result as JSON.")
]
StrategyOption = Annotated[
    str | None,
    typer.Option("--strategy", "-s", help="Upload strategy: 'direct' or 'staged'."),
]
LanguageHintOption = Annotated[
    str | None,
    typer.Option("--language", "-l", help="Spoken language hint (e.g. ko, en, auto)."),
]
PromptOption = Annotated[
    str | None, typer.Option("--prompt", help="Vocabulary or context hint.")
]
FormatOption = Annotated[
    str | None,
    typer.Option("--format", "-f", help="Transcript format: 'plain' or 'segmented'."),
]
DurationOption = Annotated[
    float | None,
    typer.Option("--duration", help="Audio length in seconds, for the time estimate."),
]
SummaryFlag = Annotated[
    bool, typer.Option("--summary/--no-summary", help="Generate a summary.")
]
KeywordsFlag = Annotated[
    bool, typer.Option("--keywords/--no-keywords", help="Extract keywords.")
]
QuestionsFlag = Annotated[
    bool, typer.Option("--questions/--no-questions", help="Generate questions.")
]
StyleOption = Annotated[
    str,
    typer.Option("--style", help="Summary style: brief, comprehensive or bulleted."),
]
MaxKeywordsOption = Annotated[
    int, typer.Option("--max-keywords", help="Keywords to extract (5-20).")
]
MaxQuestionsOption = Annotated[
    int, typer.Option("--max-questions", help="Questions to generate (3-15).")
]
OutputLanguageOption = Annotated[
    str, typer.Option("--output-language", "-o", help="Analysis language: ko or en.")
]


def _transport_overrides(strategy: str | None) -> dict[str, Any]:
    return {"transport": {"strategy": strategy}} if strategy else {}


def _transcription_options(
    language: str | None, prompt: str | None, fmt: str | None
) -> TranscriptionOptions:
    from pydantic import ValidationError

    try:
        return TranscriptionOptions(
            language_hint=language, prompt_hint=prompt, response_format=fmt
        )
    except ValidationError as exc:
        err_console.print(
            Panel(format_validation_error(exc), title="Invalid Options", border_style="red")
        )
        raise typer.Exit(code=1) from exc


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def transcribe(
    file: Annotated[Path, typer.Argument(help="Audio file to transcribe.")],
    language: LanguageHintOption = None,
    prompt: PromptOption = None,
    fmt: FormatOption = None,
    strategy: StrategyOption = None,
    duration: DurationOption = None,
    as_json: JsonOption = False,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Upload an audio file and print its transcript."""
    settings = _load_settings(config, verbose, **_transport_overrides(strategy))
    options = _transcription_options(language, prompt, fmt)
    candidate = _read_candidate(file, duration)

    async def _run() -> TranscriptionResult:
        async with create_pipeline(settings) as pipeline:
            transcriber = pipeline.transcriber
            estimate = transcriber.select(candidate)
            console.print(f"[dim]Estimated processing time: ~{estimate}s[/dim]")
            return await _with_progress(
                transcriber.begin(options), transcriber.progress, "Transcribing"
            )

    try:
        result = asyncio.run(_run())
    except AudioInsightError as exc:
        _display_error(exc)
        raise typer.Exit(code=1) from exc

    if as_json:
        console.print_json(result.model_dump_json())
    else:
        _display_transcript(result)


@app.command()
def analyze(
    text_file: Annotated[Path, typer.Argument(help="UTF-8 text file to analyse.")],
    summary: SummaryFlag = True,
    keywords: KeywordsFlag = True,
    questions: QuestionsFlag = True,
    style: StyleOption = "comprehensive",
    max_keywords: MaxKeywordsOption = 10,
    max_questions: MaxQuestionsOption = 8,
    output_language: OutputLanguageOption = "ko",
    as_json: JsonOption = False,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Summarize a transcript, extract keywords and anticipate questions."""
    settings = _load_settings(config, verbose)
    if not text_file.is_file():
        err_console.print(f"[red]File not found:[/red] {text_file}")
        raise typer.Exit(code=1)
    text = text_file.read_text(encoding="utf-8")
    options = _analysis_options(
        summary=summary,
        keywords=keywords,
        questions=questions,
        style=style,
        max_keywords=max_keywords,
        max_questions=max_questions,
        language=output_language,
    )

    async def _run() -> AnalysisResult:
        async with create_pipeline(settings) as pipeline:
            analyzer = pipeline.analyzer
            return await _with_progress(
                analyzer.analyze_all(text, options), analyzer.progress, "Analysing"
            )

    try:
        result = asyncio.run(_run())
    except AudioInsightError as exc:
        _display_error(exc)
        raise typer.Exit(code=1) from exc

    if as_json:
        console.print_json(result.model_dump_json())
    else:
        _display_analysis(result)
    if not result.succeeded:
        raise typer.Exit(code=1)


@app.command()
def run(
    file: Annotated[Path, typer.Argument(help="Audio file to transcribe and analyse.")],
    language: LanguageHintOption = None,
    prompt: PromptOption = None,
    fmt: FormatOption = None,
    strategy: StrategyOption = None,
    duration: DurationOption = None,
    summary: SummaryFlag = True,
    keywords: KeywordsFlag = True,
    questions: QuestionsFlag = True,
    style: StyleOption = "comprehensive",
    max_keywords: MaxKeywordsOption = 10,
    max_questions: MaxQuestionsOption = 8,
    output_language: OutputLanguageOption = "ko",
    as_json: JsonOption = False,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Transcribe an audio file, then analyse the transcript."""
    settings = _load_settings(config, verbose, **_transport_overrides(strategy))
    transcription_options = _transcription_options(language, prompt, fmt)
    analysis_options = _analysis_options(
        summary=summary,
        keywords=keywords,
        questions=questions,
        style=style,
        max_keywords=max_keywords,
        max_questions=max_questions,
        language=output_language,
    )
    try:
        check_requested_kinds(analysis_options)
    except AudioInsightError as exc:
        _display_error(exc)
        raise typer.Exit(code=1) from exc
    candidate = _read_candidate(file, duration)

    async def _run() -> tuple[TranscriptionResult, AnalysisResult]:
        async with create_pipeline(settings) as pipeline:
            transcriber = pipeline.transcriber
            estimate = transcriber.select(candidate)
            console.print(f"[dim]Estimated processing time: ~{estimate}s[/dim]")
            transcript = await _with_progress(
                transcriber.begin(transcription_options),
                transcriber.progress,
                "Transcribing",
            )
            analysis = await _with_progress(
                pipeline.analyzer.analyze_all(transcript.full_text, analysis_options),
                pipeline.analyzer.progress,
                "Analysing",
            )
            return transcript, analysis

    try:
        transcript, analysis = asyncio.run(_run())
    except AudioInsightError as exc:
        _display_error(exc)
        raise typer.Exit(code=1) from exc

    if as_json:
        console.print_json(
            data={
                "transcription": transcript.model_dump(mode="json"),
                "analysis": analysis.model_dump(mode="json"),
            }
        )
    else:
        _display_transcript(transcript)
        _display_analysis(analysis)

    if not analysis.succeeded:
        raise typer.Exit(code=1)


@app.command()
def languages() -> None:
    """List supported spoken-language hints and transcript formats."""
    table = Table(title="Language Hints")
    table.add_column("Code", style="cyan")
    table.add_column("Language", style="white")
    for code, name in supported_languages().items():
        table.add_row(code, name)
    console.print(table)

    formats = Table(title="Transcript Formats")
    formats.add_column("Format", style="cyan")
    formats.add_column("Description", style="white")
    for name, description in response_formats().items():
        formats.add_row(name, description)
    console.print(formats)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
