"""
Shared pytest fixtures for taskspine tests.

This module provides:
- A deterministic ManualClock pinned to the start of a day
- An event dispatcher that records every event it delivers
- Storage / scheduler fixtures wired to that clock and dispatcher

Usage:
    Fixtures are auto-discovered by pytest::

        def test_something(scheduler, clock):
            scheduler.schedule(NullTask("a"))
            clock.advance(60)
"""

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest
import structlog

# Ensure taskspine package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from taskspine.core.clock import ManualClock
from taskspine.core.events import Event
from taskspine.core.events.memory import InMemoryEventDispatcher
from taskspine.core.scheduling.orchestrator import SchedulePolicyOrchestrator
from taskspine.core.scheduling.policies import default_policies
from taskspine.core.scheduling.scheduler import Scheduler
from taskspine.core.storage.memory import InMemoryStorage


START = datetime(2024, 1, 1, 0, 0, tzinfo=UTC)


# =============================================================================
# Clock & Events
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    """Clock frozen at 2024-01-01 00:00 UTC (a Monday, midnight)."""
    return ManualClock(START)


class RecordingDispatcher(InMemoryEventDispatcher):
    """InMemoryEventDispatcher that also keeps every dispatched event."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[Event] = []

    def dispatch(self, event: Event) -> None:
        self.events.append(event)
        super().dispatch(event)

    def types(self) -> list[str]:
        return [event.event_type for event in self.events]


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


# =============================================================================
# Storage & Scheduler
# =============================================================================


@pytest.fixture
def orchestrator(clock) -> SchedulePolicyOrchestrator:
    return SchedulePolicyOrchestrator(default_policies(clock))


@pytest.fixture
def storage(orchestrator) -> InMemoryStorage:
    return InMemoryStorage(orchestrator=orchestrator)


@pytest.fixture
def scheduler(storage, clock, dispatcher) -> Scheduler:
    return Scheduler(storage, timezone="UTC", clock=clock, dispatcher=dispatcher)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture
def reset_logging():
    """Undo configure_logging() so later tests don't write to closed streams."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)
