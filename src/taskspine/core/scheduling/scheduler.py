"""Scheduler - task registration and due-task selection.

Manifesto:
    The scheduler is the only entry point for changing what is scheduled.
    It stamps tasks, delegates persistence to a storage, announces every
    change on the event stream, and answers one question for workers:
    which tasks are due right now?

"Right now" is a synchronized instant.  The scheduler keeps the wall
time and the monotonic time observed at initialization and derives the
current instant from elapsed monotonic time.  If the wall clock has
drifted away from that instant by more than ``max_clock_drift_seconds``
(NTP step, manual adjustment, suspended VM) the query fails with
:class:`ClockDriftExceededError` instead of evaluating cron expressions
against a skewed clock.  :meth:`Scheduler.resynchronize` accepts the
new wall time as reference.

Architecture:
    ::

        schedule(task) ──► stamp scheduled_at / timezone
                             │
                   ┌─────────┴──────────┐
                   ▼                    ▼
          is_queued and bus       storage.create(task)
          bus.dispatch(TaskMessage)     │
                   └─────────┬──────────┘
                             ▼
                      task.scheduled event

        get_due_tasks() ──► synchronized_now()
                             ──► storage.list()        (policy-ordered)
                             ──► filter(cron is_due in task timezone)

Guardrails:
    ❌ DON'T: Evaluate due-ness with an unchecked wall clock
    ✅ DO: Go through synchronized_now()

    ❌ DON'T: Retry failed storage calls here
    ✅ DO: Let errors propagate to the caller

Tags:
    taskspine, scheduling, cron, clock-drift, events

Doc-Types:
    api-reference, architecture-diagram
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, tzinfo
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from taskspine.core.clock import Clock, SystemClock
from taskspine.core.cron import REBOOT_MACRO, is_due, resolve_timezone, zone_key
from taskspine.core.errors import ClockDriftExceededError, InvalidConfigurationError, InvalidTaskError
from taskspine.core.events import Event, EventDispatcher, EventType
from taskspine.core.messaging import MessageBus, TaskMessage
from taskspine.core.tasks.collection import TaskCollection
from taskspine.core.tasks.models import Task

if TYPE_CHECKING:
    from taskspine.core.storage.protocol import Storage

logger = logging.getLogger(__name__)

DEFAULT_MAX_CLOCK_DRIFT_SECONDS = 1.0


class Scheduler:
    """Schedules tasks into a storage and selects the due ones.

    Example:
        >>> scheduler = Scheduler(storage=InMemoryStorage(), timezone="Europe/Paris")
        >>> scheduler.schedule(ShellTask("backup", expression="0 3 * * *", command=["backup.sh"]))
        >>> [task.name for task in scheduler.get_due_tasks()]
        []
    """

    def __init__(
        self,
        storage: Storage,
        timezone: str | tzinfo = "UTC",
        clock: Clock | None = None,
        dispatcher: EventDispatcher | None = None,
        bus: MessageBus | None = None,
        max_clock_drift_seconds: float = DEFAULT_MAX_CLOCK_DRIFT_SECONDS,
    ) -> None:
        """Initialize scheduler.

        Args:
            storage: Persistence backend for scheduled tasks
            timezone: Scheduler timezone (IANA name or ZoneInfo), applied
                to tasks without one
            clock: Time source (system clock by default)
            dispatcher: Event dispatcher for lifecycle events (optional)
            bus: Message bus receiving queued tasks (optional)
            max_clock_drift_seconds: Accepted distance between the
                synchronized instant and the wall clock
        """
        self.storage = storage
        try:
            self.timezone = ZoneInfo(zone_key(timezone))
        except InvalidTaskError as e:
            raise InvalidConfigurationError(
                f"The scheduler timezone must be an IANA zone, got {timezone!r}", cause=e
            ) from e
        self.clock = clock or SystemClock()
        self.dispatcher = dispatcher
        self.bus = bus
        self.max_clock_drift_seconds = max_clock_drift_seconds
        self.resynchronize()

    # === Clock synchronization ===

    def resynchronize(self) -> None:
        """Take the current wall and monotonic time as the new reference."""
        self._initialized_at = self.clock.now(self.timezone)
        self._monotonic_at_init = self.clock.monotonic()

    def synchronized_now(self) -> datetime:
        """Current instant derived from monotonic time, in the scheduler timezone.

        Raises:
            ClockDriftExceededError: If the wall clock drifted beyond the bound.
        """
        elapsed = self.clock.monotonic() - self._monotonic_at_init
        synchronized = self._initialized_at + timedelta(seconds=elapsed)
        drift = abs((self.clock.now(self.timezone) - synchronized).total_seconds())
        if drift > self.max_clock_drift_seconds:
            logger.error(
                f"Clock drift of {drift:.3f}s exceeds {self.max_clock_drift_seconds:.3f}s"
            )
            raise ClockDriftExceededError(drift, self.max_clock_drift_seconds)
        return synchronized.astimezone(self.timezone)

    # === Scheduling ===

    def schedule(self, task: Task) -> None:
        """Stamp and persist *task* (or hand it to the bus when queued).

        Raises:
            AlreadyScheduledError: If the storage already holds the name.
        """
        task.scheduled_at = self.synchronized_now()
        if task.timezone is None:
            task.timezone = self.timezone.key

        if self.bus is not None and task.is_queued:
            self.bus.dispatch(TaskMessage(task))
            logger.info(f"Dispatched queued task '{task.name}' to the message bus")
        else:
            self.storage.create(task)
            logger.info(f"Scheduled task '{task.name}' ({task.expression})")

        self._dispatch(EventType.TASK_SCHEDULED, task=task)

    def unschedule(self, name: str) -> None:
        self.storage.delete(name)
        logger.info(f"Unscheduled task '{name}'")
        self._dispatch(EventType.TASK_UNSCHEDULED, task_name=name)

    def update(self, name: str, task: Task) -> None:
        self.storage.update(name, task)

    def pause(self, name: str) -> None:
        self.storage.pause(name)

    def resume(self, name: str) -> None:
        self.storage.resume(name)

    # === Queries ===

    def get_due_tasks(self) -> TaskCollection:
        """Tasks whose cron expression fires at the synchronized instant.

        Reboot-only tasks are never due here; the storage order (policy
        order) is preserved.
        """
        now = self.synchronized_now()
        return self.storage.list().filter(
            lambda task: is_due(task.expression, now, resolve_timezone(task.timezone, self.timezone))
        )

    def get_timezone(self) -> tzinfo:
        return self.timezone

    def get_tasks(self) -> TaskCollection:
        return self.storage.list()

    def reboot(self) -> None:
        """Reset the storage to the reboot-only tasks."""
        reboot_tasks = self.get_tasks().filter(lambda task: task.expression == REBOOT_MACRO)
        self.storage.clear()
        for task in reboot_tasks:
            self.storage.create(task)

        logger.info(f"Scheduler rebooted, {len(reboot_tasks)} reboot task(s) kept")
        self._dispatch(EventType.SCHEDULER_REBOOTED, scheduler=self)

    def _dispatch(self, event_type: EventType, **payload: object) -> None:
        if self.dispatcher is None:
            return
        self.dispatcher.dispatch(Event(event_type=event_type, source="scheduler", payload=payload))


__all__ = ["Scheduler", "DEFAULT_MAX_CLOCK_DRIFT_SECONDS"]
