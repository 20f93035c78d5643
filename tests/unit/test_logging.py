"""Unit tests for audio_insight.logging - structured logging and stage context."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest
import structlog

from audio_insight.logging import (
    _VALID_LEVELS,
    configure_logging,
    generate_run_id,
    stage_logging_context,
)

if TYPE_CHECKING:
    from pathlib import Path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_structlog() -> None:
    """Reset structlog state between tests."""
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# generate_run_id
# ---------------------------------------------------------------------------


class TestGenerateRunId:
    def test_twelve_hex_characters(self) -> None:
        run_id = generate_run_id()
        assert len(run_id) == 12
        int(run_id, 16)

    def test_unique_across_calls(self) -> None:
        ids = {generate_run_id() for _ in range(10)}
        assert len(ids) == 10


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLoggingLevel:
    """configure_logging validates and applies log levels."""

    def test_valid_level_debug(self) -> None:
        configure_logging(level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG

    def test_case_insensitive(self) -> None:
        configure_logging(level="warning")
        assert logging.getLogger().level == logging.WARNING

    def test_invalid_level_raises(self) -> None:
        with pytest.raises(ValueError, match="Invalid log level"):
            configure_logging(level="TRACE")

    def test_all_valid_levels_accepted(self) -> None:
        for lvl in _VALID_LEVELS:
            configure_logging(level=lvl)
            assert logging.getLogger().level == getattr(logging, lvl)


class TestConfigureLoggingFile:
    """configure_logging creates file handlers."""

    def test_file_receives_json_output(self, tmp_path: Path) -> None:
        log_file = tmp_path / "run.log"
        configure_logging(level="INFO", fmt="json", log_file=log_file)

        structlog.get_logger("test_file").info("upload_start", size_bytes=10)
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = log_file.read_text()
        assert "upload_start" in content
        assert '"size_bytes": 10' in content

    def test_reconfigure_keeps_single_file_handler(self, tmp_path: Path) -> None:
        configure_logging(log_file=tmp_path / "first.log")
        configure_logging(log_file=tmp_path / "second.log")
        file_handlers = [
            h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
        ]
        assert len(file_handlers) == 1


# ---------------------------------------------------------------------------
# stage_logging_context
# ---------------------------------------------------------------------------


class TestStageLoggingContext:
    def test_binds_and_unbinds_stage_metadata(self) -> None:
        with stage_logging_context("transcribe", run_id="abc123"):
            ctx = structlog.contextvars.get_contextvars()
            assert ctx["stage"] == "transcribe"
            assert ctx["run_id"] == "abc123"

        ctx = structlog.contextvars.get_contextvars()
        assert "stage" not in ctx
        assert "run_id" not in ctx

    def test_reraises_and_unbinds_on_error(self) -> None:
        with pytest.raises(RuntimeError, match="boom"):
            with stage_logging_context("analyze", run_id="r1"):
                raise RuntimeError("boom")
        assert "stage" not in structlog.contextvars.get_contextvars()

    def test_logs_start_and_end_events(self) -> None:
        with structlog.testing.capture_logs() as captured:
            with stage_logging_context("analyze"):
                pass
        events = [entry["event"] for entry in captured]
        assert events == ["stage_start", "stage_end"]
