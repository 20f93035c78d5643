"""Perceived-progress reporting for multi-phase network operations.

Two pieces:

* ``PhasedProgress`` maps ``(phase_index, phase_fraction)`` onto one
  0-100 scale using fixed per-phase bands, so three discrete network
  calls read as one continuous bar.
* ``ProgressChannel`` holds the current percentage for polling and
  pushes ``ProgressEvent``s to subscriber queues. Values only ever move
  forward within one operation.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

import structlog
from pydantic import BaseModel, Field

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

ProgressCallback = Callable[[float], None]

STAGED_UPLOAD_BANDS: tuple[tuple[float, float], ...] = (
    (0.0, 30.0),
    (30.0, 60.0),
    (60.0, 100.0),
)


def scale_into_band(percent: float, low: float, high: float) -> float:
    """Map a 0-100 value into the ``[low, high]`` band, clamping the input."""
    clamped = min(max(percent, 0.0), 100.0)
    return low + (high - low) * clamped / 100.0


class PhasedProgress:
    """Weighted-phase progress calculator.

    Attributes:
        bands: One ``(start, end)`` percentage band per phase, ascending
            and contiguous.
    """

    def __init__(self, bands: Sequence[tuple[float, float]] = STAGED_UPLOAD_BANDS) -> None:
        if not bands:
            raise ValueError("At least one phase band is required")
        previous_end = bands[0][0]
        for start, end in bands:
            if start != previous_end or end < start:
                raise ValueError(f"Phase bands must be contiguous and ascending: {bands!r}")
            previous_end = end
        self.bands = tuple(bands)

    @property
    def phase_count(self) -> int:
        return len(self.bands)

    def unified_percent(self, phase_index: int, phase_fraction: float) -> float:
        """Return the unified percentage for a position inside one phase.

        Args:
            phase_index: Zero-based phase number.
            phase_fraction: Completion of that phase, 0.0 to 1.0 (clamped).

        Raises:
            IndexError: If ``phase_index`` is outside the configured phases.
        """
        if not 0 <= phase_index < len(self.bands):
            raise IndexError(f"No phase {phase_index}; have {len(self.bands)}")
        start, end = self.bands[phase_index]
        fraction = min(max(phase_fraction, 0.0), 1.0)
        return start + (end - start) * fraction


class ProgressEvent(BaseModel):
    """A progress update pushed to subscribers."""

    operation: str
    percent: float = Field(ge=0.0, le=100.0)
    stage: str = ""


class ProgressChannel:
    """Monotonic progress holder with optional push subscriptions.

    ``percent`` can be polled at any time. ``subscribe()`` returns an
    ``asyncio.Queue`` that receives an event for every forward move.
    ``restart()`` begins a new operation and is the only way the value
    goes back to zero.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self._percent = 0.0
        self._stage = ""
        self._subscribers: set[asyncio.Queue[ProgressEvent]] = set()

    @property
    def percent(self) -> float:
        return self._percent

    @property
    def stage(self) -> str:
        return self._stage

    def restart(self, stage: str = "") -> None:
        """Reset to zero for a new operation."""
        self._percent = 0.0
        self._stage = stage
        self._publish()

    def advance(self, percent: float, stage: str | None = None) -> float:
        """Move forward to ``percent``; lower values are ignored.

        Returns:
            The (possibly unchanged) current percentage.
        """
        target = min(max(percent, 0.0), 100.0)
        changed = False
        if stage is not None and stage != self._stage:
            self._stage = stage
            changed = True
        if target > self._percent:
            self._percent = target
            changed = True
        if changed:
            self._publish()
        return self._percent

    def subscribe(self) -> asyncio.Queue[ProgressEvent]:
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        queue.put_nowait(self._event())
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ProgressEvent]) -> None:
        self._subscribers.discard(queue)

    def _event(self) -> ProgressEvent:
        return ProgressEvent(
            operation=self.operation, percent=self._percent, stage=self._stage
        )

    def _publish(self) -> None:
        event = self._event()
        for queue in list(self._subscribers):
            queue.put_nowait(event)
        logger.debug(
            "progress_update",
            operation=self.operation,
            percent=round(self._percent, 1),
            stage=self._stage,
        )
