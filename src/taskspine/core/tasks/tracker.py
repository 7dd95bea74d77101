"""Elapsed-time measurement for task executions."""

from __future__ import annotations

from taskspine.core.clock import Clock, SystemClock
from taskspine.core.tasks.models import Task


class TaskExecutionTracker:
    """Measure how long each tracked task runs.

    The measured seconds are written to ``task.execution_computation_time``,
    the input of the round-robin policy.  Untracked tasks are ignored.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._started: dict[str, float] = {}

    def start_tracking(self, task: Task) -> None:
        if not task.is_tracked:
            return
        self._started[task.name] = self._clock.monotonic()

    def end_tracking(self, task: Task) -> None:
        if not task.is_tracked:
            return
        started = self._started.pop(task.name, None)
        if started is None:
            return
        task.execution_computation_time = self._clock.monotonic() - started

    def is_tracking(self, task: Task) -> bool:
        return task.name in self._started


__all__ = ["TaskExecutionTracker"]
