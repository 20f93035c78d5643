"""Unit tests for audio_insight.progress."""

from __future__ import annotations

import pytest

from audio_insight.progress import (
    PhasedProgress,
    ProgressChannel,
    scale_into_band,
)


class TestScaleIntoBand:
    def test_maps_endpoints(self) -> None:
        assert scale_into_band(0, 0, 50) == 0
        assert scale_into_band(100, 0, 50) == 50
        assert scale_into_band(50, 0, 50) == 25

    def test_clamps_input(self) -> None:
        assert scale_into_band(150, 10, 20) == 20
        assert scale_into_band(-5, 10, 20) == 10


class TestPhasedProgress:
    """The staged-upload blend: phases 0-30, 30-60, 60-100."""

    def test_phase_boundaries(self) -> None:
        phases = PhasedProgress()
        assert phases.unified_percent(0, 0.0) == 0
        assert phases.unified_percent(0, 1.0) == 30
        assert phases.unified_percent(1, 0.5) == 45
        assert phases.unified_percent(2, 0.0) == 60
        assert phases.unified_percent(2, 1.0) == 100

    def test_fraction_is_clamped(self) -> None:
        assert PhasedProgress().unified_percent(1, 2.0) == 60

    def test_unknown_phase_raises(self) -> None:
        with pytest.raises(IndexError):
            PhasedProgress().unified_percent(3, 0.5)

    def test_bands_must_be_contiguous(self) -> None:
        with pytest.raises(ValueError, match="contiguous"):
            PhasedProgress([(0, 30), (40, 100)])

    def test_custom_bands(self) -> None:
        phases = PhasedProgress([(0, 50), (50, 100)])
        assert phases.phase_count == 2
        assert phases.unified_percent(1, 0.5) == 75


class TestProgressChannel:
    def test_monotonic(self) -> None:
        channel = ProgressChannel("upload")
        channel.advance(40)
        assert channel.advance(20) == 40
        assert channel.percent == 40

    def test_values_clamped_to_range(self) -> None:
        channel = ProgressChannel("upload")
        assert channel.advance(140) == 100

    def test_restart_returns_to_zero(self) -> None:
        channel = ProgressChannel("upload")
        channel.advance(70, stage="uploading")
        channel.restart()
        assert channel.percent == 0
        assert channel.stage == ""

    def test_subscriber_receives_current_then_updates(self) -> None:
        channel = ProgressChannel("analysis")
        channel.advance(10, stage="all")
        queue = channel.subscribe()
        channel.advance(30)
        channel.advance(25)  # ignored: no event
        first = queue.get_nowait()
        second = queue.get_nowait()
        assert (first.percent, first.stage) == (10, "all")
        assert second.percent == 30
        assert queue.empty()

    def test_unsubscribe_stops_events(self) -> None:
        channel = ProgressChannel("analysis")
        queue = channel.subscribe()
        queue.get_nowait()
        channel.unsubscribe(queue)
        channel.advance(50)
        assert queue.empty()
