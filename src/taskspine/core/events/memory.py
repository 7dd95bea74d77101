"""
In-memory event dispatcher implementation.

Manifesto:
    Workers and schedulers in one process need an event stream that
    delivers immediately, in subscription order, without external
    infrastructure.

Handlers run synchronously in the dispatching thread.  A failing handler
is logged and does not prevent delivery to the remaining handlers.

Tags:
    taskspine, events, in-memory, single-process, testing

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass

from taskspine.core.events import Event, EventHandler
from taskspine.core.logging import get_logger

__all__ = ["InMemoryEventDispatcher"]

log = get_logger("taskspine.events")


@dataclass
class Subscription:
    """Internal subscription record."""

    id: str
    pattern: str
    handler: EventHandler


class InMemoryEventDispatcher:
    """In-process event dispatcher.

    Example::

        dispatcher = InMemoryEventDispatcher()
        dispatcher.subscribe("*", lambda event: print(event.event_type))
        dispatcher.dispatch(Event(event_type="task.scheduled", source="example"))
        # Output: task.scheduled
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def dispatch(self, event: Event) -> None:
        """Deliver an event to all matching subscribers, in order."""
        with self._lock:
            matching = [
                sub for sub in self._subscriptions.values() if event.matches(sub.pattern)
            ]

        for sub in matching:
            try:
                sub.handler(event)
            except Exception as e:
                log.warning(
                    "event_handler_error",
                    subscription_id=sub.id,
                    event_type=event.event_type,
                    error=str(e),
                )

    def subscribe(self, event_type: str, handler: EventHandler) -> str:
        """Subscribe to events matching a pattern.

        Args:
            event_type: Pattern to match (supports ``*`` and ``type.*``)
            handler: Callback for matching events

        Returns:
            Subscription ID
        """
        pattern = getattr(event_type, "value", event_type)
        sub_id = f"sub_{uuid.uuid4().hex[:12]}"
        with self._lock:
            self._subscriptions[sub_id] = Subscription(id=sub_id, pattern=pattern, handler=handler)
        return sub_id

    def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription."""
        with self._lock:
            self._subscriptions.pop(subscription_id, None)

    def clear(self) -> None:
        """Drop every subscription."""
        with self._lock:
            self._subscriptions.clear()

    @property
    def subscription_count(self) -> int:
        """Number of active subscriptions."""
        return len(self._subscriptions)
