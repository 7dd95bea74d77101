"""Clock abstraction for schedulers and workers.

Manifesto:
    Cron evaluation, execution timestamps, elapsed-time tracking and the
    worker's minute-boundary sleep all read time.  Routing every read
    through one injected :class:`Clock` keeps those components
    deterministic under test and lets the scheduler compare wall time
    against a monotonic reference to detect clock drift.

Tags:
    taskspine, clock, time, monotonic, testing

Doc-Types:
    api-reference
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of wall time, monotonic time and sleeping."""

    def now(self, tz: tzinfo | None = None) -> datetime:
        """Timezone-aware wall time (UTC unless *tz* is given)."""
        ...

    def monotonic(self) -> float:
        """Monotonic seconds, unaffected by wall-clock adjustments."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block for *seconds*."""
        ...


class SystemClock:
    """Clock backed by the operating system."""

    def now(self, tz: tzinfo | None = None) -> datetime:
        return datetime.now(tz or UTC)

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class ManualClock:
    """Deterministic clock advanced explicitly.

    Wall time and monotonic time move together, so a scheduler built on a
    ManualClock never observes drift unless :meth:`skew` is called.
    ``sleep`` advances time instead of blocking.

    Example:
        >>> clock = ManualClock(datetime(2024, 1, 1, 0, 0, tzinfo=UTC))
        >>> clock.advance(90)
        >>> clock.now().minute
        1
    """

    def __init__(self, start: datetime | None = None) -> None:
        start = start or datetime(2024, 1, 1, tzinfo=UTC)
        if start.tzinfo is None:
            start = start.replace(tzinfo=UTC)
        self._wall = start
        self._monotonic = 0.0
        self.sleeps: list[float] = []

    def now(self, tz: tzinfo | None = None) -> datetime:
        return self._wall.astimezone(tz or UTC)

    def monotonic(self) -> float:
        return self._monotonic

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)

    def advance(self, seconds: float) -> None:
        """Move wall and monotonic time forward together."""
        self._wall += timedelta(seconds=seconds)
        self._monotonic += seconds

    def set(self, moment: datetime) -> None:
        """Jump to *moment*, keeping monotonic time consistent."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        if moment < self._wall:
            raise ValueError("ManualClock cannot move backwards; use skew()")
        self.advance((moment - self._wall).total_seconds())

    def skew(self, seconds: float) -> None:
        """Shift wall time only, simulating an external clock adjustment."""
        self._wall += timedelta(seconds=seconds)


__all__ = ["Clock", "SystemClock", "ManualClock"]
