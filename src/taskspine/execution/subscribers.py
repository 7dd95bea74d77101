"""Event subscribers wired around the worker loop.

The worker itself never decides when to stop or what to do with a
single-run task.  These subscribers listen to the lifecycle events and
act on the worker or the scheduler:

- :class:`StopWorkerOnTaskLimitSubscriber` -- stop after N executions
- :class:`StopWorkerOnTimeLimitSubscriber` -- stop after N seconds
- :class:`StopWorkerOnFailureLimitSubscriber` -- stop after N failures
- :class:`TaskExecutionSubscriber` -- unschedule single-run tasks, persist
  executed tasks
- :class:`TaskLoggerSubscriber` -- keep a :class:`TaskEventList` of task events

Each exposes ``subscribe(dispatcher)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from taskspine.core.clock import Clock, SystemClock
from taskspine.core.events import Event, EventDispatcher, EventType
from taskspine.core.logging import get_logger
from taskspine.core.scheduling.scheduler import Scheduler

log = get_logger(__name__)


class StopWorkerOnTaskLimitSubscriber:
    """Stop the worker once it has started *max_tasks* executions.

    Counts the non-idle ``worker.running`` events that announce a task
    execution (those carrying a task).
    """

    def __init__(self, max_tasks: int) -> None:
        if max_tasks < 1:
            raise ValueError("max_tasks must be at least 1")
        self.max_tasks = max_tasks
        self.consumed_tasks = 0

    def on_worker_running(self, event: Event) -> None:
        if event.payload.get("idle") or event.task is None:
            return
        self.consumed_tasks += 1
        if self.consumed_tasks >= self.max_tasks:
            event.worker.stop()
            log.info("worker_stopped_task_limit", count=self.consumed_tasks)

    def subscribe(self, dispatcher: EventDispatcher) -> None:
        dispatcher.subscribe(EventType.WORKER_RUNNING, self.on_worker_running)


class StopWorkerOnTimeLimitSubscriber:
    """Stop the worker once *seconds* have elapsed since it started."""

    def __init__(self, seconds: float, clock: Clock | None = None) -> None:
        self.seconds = seconds
        self.clock = clock or SystemClock()
        self._end_time: float | None = None

    def on_worker_started(self, event: Event) -> None:
        self._end_time = self.clock.monotonic() + self.seconds

    def on_worker_running(self, event: Event) -> None:
        if self._end_time is None or self.clock.monotonic() < self._end_time:
            return
        event.worker.stop()
        log.info("worker_stopped_time_limit", seconds=self.seconds)

    def subscribe(self, dispatcher: EventDispatcher) -> None:
        dispatcher.subscribe(EventType.WORKER_STARTED, self.on_worker_started)
        dispatcher.subscribe(EventType.WORKER_RUNNING, self.on_worker_running)


class StopWorkerOnFailureLimitSubscriber:
    """Stop the worker once *max_failures* tasks have failed."""

    def __init__(self, max_failures: int) -> None:
        if max_failures < 1:
            raise ValueError("max_failures must be at least 1")
        self.max_failures = max_failures
        self.failed_tasks = 0

    def on_task_failed(self, event: Event) -> None:
        self.failed_tasks += 1
        if self.failed_tasks >= self.max_failures:
            event.worker.stop()
            log.info("worker_stopped_failure_limit", count=self.failed_tasks)

    def subscribe(self, dispatcher: EventDispatcher) -> None:
        dispatcher.subscribe(EventType.TASK_FAILED, self.on_task_failed)


class TaskExecutionSubscriber:
    """Keep the storage in step with what the worker did.

    Single-run tasks are unscheduled as soon as the worker picks them up;
    every other executed task is written back so its timestamps, measured
    computation time and execution state persist.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self.scheduler = scheduler

    def on_single_run_task_executed(self, event: Event) -> None:
        self.scheduler.unschedule(event.task.name)

    def on_task_executed(self, event: Event) -> None:
        task = event.task
        if task.is_single_run:
            return
        self.scheduler.update(task.name, task)

    def subscribe(self, dispatcher: EventDispatcher) -> None:
        dispatcher.subscribe(EventType.TASK_SINGLE_RUN_EXECUTED, self.on_single_run_task_executed)
        dispatcher.subscribe(EventType.TASK_EXECUTED, self.on_task_executed)


@dataclass
class TaskEventList:
    """Ordered record of task lifecycle events."""

    events: list[Event] = field(default_factory=list)

    def add_event(self, event: Event) -> None:
        self.events.append(event)

    def _of_type(self, event_type: EventType) -> list[Event]:
        return [event for event in self.events if event.matches(event_type)]

    def get_scheduled_task_events(self) -> list[Event]:
        return self._of_type(EventType.TASK_SCHEDULED)

    def get_unscheduled_task_events(self) -> list[Event]:
        return self._of_type(EventType.TASK_UNSCHEDULED)

    def get_executed_task_events(self) -> list[Event]:
        return self._of_type(EventType.TASK_EXECUTED)

    def get_failed_task_events(self) -> list[Event]:
        return self._of_type(EventType.TASK_FAILED)

    def get_queued_task_events(self) -> list[Event]:
        return [event for event in self.get_scheduled_task_events() if event.task.is_queued]

    def __len__(self) -> int:
        return len(self.events)


class TaskLoggerSubscriber:
    """Collect scheduled, unscheduled, executed and failed task events."""

    EVENT_TYPES = (
        EventType.TASK_SCHEDULED,
        EventType.TASK_UNSCHEDULED,
        EventType.TASK_EXECUTED,
        EventType.TASK_FAILED,
    )

    def __init__(self) -> None:
        self.events = TaskEventList()

    def on_task(self, event: Event) -> None:
        self.events.add_event(event)

    def get_events(self) -> TaskEventList:
        return self.events

    def subscribe(self, dispatcher: EventDispatcher) -> None:
        for event_type in self.EVENT_TYPES:
            dispatcher.subscribe(event_type, self.on_task)


__all__ = [
    "StopWorkerOnTaskLimitSubscriber",
    "StopWorkerOnTimeLimitSubscriber",
    "StopWorkerOnFailureLimitSubscriber",
    "TaskExecutionSubscriber",
    "TaskEventList",
    "TaskLoggerSubscriber",
]
