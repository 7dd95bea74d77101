"""Lifecycle events for schedulers and workers.

Why This Package Exists
-----------------------
The scheduler and the worker must announce what they do (task scheduled,
task failed, worker stopped) without knowing who listens.  Stop
conditions, single-run cleanup and task bookkeeping are all wired in as
subscribers, so the worker loop itself stays free of policy.

Unlike a cross-process bus, delivery here is synchronous: a subscriber
that calls ``worker.stop()`` while handling ``worker.running`` takes
effect before the worker picks the next task.

Usage::

    from taskspine.core.events import EventType
    from taskspine.core.events.memory import InMemoryEventDispatcher

    dispatcher = InMemoryEventDispatcher()

    def on_failed(event):
        print(event.payload["failed_task"].reason)

    dispatcher.subscribe(EventType.TASK_FAILED, on_failed)
    dispatcher.subscribe("worker.*", lambda event: ...)

Modules
-------
memory      InMemoryEventDispatcher -- synchronous, single process
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

__all__ = [
    "Event",
    "EventType",
    "EventHandler",
    "EventDispatcher",
]


class EventType(str, Enum):
    """Dot-separated lifecycle event types."""

    TASK_SCHEDULED = "task.scheduled"
    TASK_UNSCHEDULED = "task.unscheduled"
    TASK_SINGLE_RUN_EXECUTED = "task.single_run_executed"
    TASK_EXECUTING = "task.executing"
    TASK_EXECUTED = "task.executed"
    TASK_FAILED = "task.failed"
    WORKER_STARTED = "worker.started"
    WORKER_RUNNING = "worker.running"
    WORKER_STOPPED = "worker.stopped"
    WORKER_RESTARTED = "worker.restarted"
    SCHEDULER_REBOOTED = "scheduler.rebooted"


# ── Event Model ──────────────────────────────────────────────────────────


@dataclass
class Event:
    """Lifecycle event.

    Attributes:
        event_type: Dot-separated type (e.g., ``task.executed``)
        source: Origin component (``scheduler`` or ``worker``)
        payload: Live references (``task``, ``failed_task``, ``worker``,
            ``output``, ``scheduler``, ``task_name``, ``idle``)
        timestamp: When the event occurred (UTC)
        event_id: Unique event identifier
    """

    event_type: str
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if isinstance(self.event_type, EventType):
            self.event_type = self.event_type.value

    def matches(self, pattern: str) -> bool:
        """Check if event type matches a pattern (supports wildcards).

        Examples:
            - ``task.*`` matches ``task.scheduled``, ``task.failed``
            - ``*`` matches everything
            - ``worker.stopped`` matches exactly ``worker.stopped``
        """
        if isinstance(pattern, EventType):
            pattern = pattern.value
        if pattern == "*":
            return True
        if pattern.endswith(".*"):
            prefix = pattern[:-2]
            return self.event_type.startswith(prefix + ".")
        return self.event_type == pattern

    @property
    def task(self) -> Any:
        return self.payload.get("task")

    @property
    def worker(self) -> Any:
        return self.payload.get("worker")


# ── Type Aliases ─────────────────────────────────────────────────────────

EventHandler = Callable[[Event], None]


# ── EventDispatcher Protocol ─────────────────────────────────────────────


@runtime_checkable
class EventDispatcher(Protocol):
    """Protocol for synchronous event dispatchers."""

    def dispatch(self, event: Event) -> None:
        """Deliver an event to all matching subscribers."""
        ...

    def subscribe(self, event_type: str, handler: EventHandler) -> str:
        """Subscribe to events matching a pattern.

        Returns:
            Subscription ID for later unsubscription
        """
        ...

    def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription."""
        ...
