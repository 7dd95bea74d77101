"""Message bus seam for queued tasks and message-dispatch runners.

A task flagged ``is_queued`` is not persisted by the scheduler when a bus
is configured; it is wrapped in a :class:`TaskMessage` and handed to the
bus instead.  :class:`~taskspine.execution.runners.messaging.MessengerTaskRunner`
uses the same seam to dispatch a task's message payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from taskspine.core.tasks.models import Task


@runtime_checkable
class MessageBus(Protocol):
    """Anything able to dispatch a message object."""

    def dispatch(self, message: Any) -> Any:
        ...


@dataclass(frozen=True)
class TaskMessage:
    """Envelope carrying a queued task."""

    task: Task


__all__ = ["MessageBus", "TaskMessage"]
