"""Schedule policies (execution modes).

Manifesto:
    The order in which due tasks run is a policy decision, not a property
    of the storage or the worker.  Each policy is a small, stateless
    strategy object modeled on a classical process-scheduling discipline
    and selected by name through the
    :class:`~taskspine.core.scheduling.orchestrator.SchedulePolicyOrchestrator`.

Every policy maps ``name → Task`` to a new ``name → Task`` and must be
deterministic: sorting an unchanged input twice yields the same order.
The only intentional side effect is the batch policy's priority aging.

Ordering direction: higher ``priority`` values run first.  Tasks whose
priority carries "no preference" (0 for first-in-first-out, > 19 for
idle) keep their slot; the remaining tasks are reordered among the slots
they already occupy, so a stable order is preserved around them.

Architecture:
    ::

        ┌─────────────────────────┬──────────────────────────────────────┐
        │ first_in_first_out      │ priority desc, priority 0 pinned     │
        │ round_robin             │ exhausted quantum demoted            │
        │ deadline                │ absolute deadline asc, none last     │
        │ batch                   │ priority -= 1, then priority desc    │
        │ idle                    │ priority desc, priority > 19 pinned  │
        │ normal                  │ nice asc, only if all priorities 0   │
        └─────────────────────────┴──────────────────────────────────────┘

Tags:
    taskspine, scheduling, policies, ordering, nice, deadline

Doc-Types:
    api-reference
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from taskspine.core.clock import Clock, SystemClock
from taskspine.core.tasks.models import MIN_PRIORITY, Task

IDLE_PRIORITY_CEILING = 19


@runtime_checkable
class SchedulePolicy(Protocol):
    """Ordering strategy selected by name."""

    name: str

    def supports(self, policy: str) -> bool:
        ...

    def sort(self, tasks: dict[str, Task]) -> dict[str, Task]:
        ...


def _reorder_in_place(
    tasks: dict[str, Task],
    movable: Callable[[Task], bool],
    key: Callable[[Task], object],
) -> dict[str, Task]:
    """Sort the movable tasks among their own slots; pinned tasks stay put."""
    items = list(tasks.items())
    slots = [index for index, (_, task) in enumerate(items) if movable(task)]
    ordered = sorted((items[index] for index in slots), key=lambda item: key(item[1]))
    for index, item in zip(slots, ordered):
        items[index] = item
    return dict(items)


class _BasePolicy:
    name: str = ""

    def supports(self, policy: str) -> bool:
        return policy == self.name

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class FirstInFirstOutPolicy(_BasePolicy):
    """Default mode: priority 0 means "no preference" and never moves.

    Non-zero priorities are ordered highest first.
    """

    name = "first_in_first_out"

    def sort(self, tasks: dict[str, Task]) -> dict[str, Task]:
        return _reorder_in_place(
            tasks,
            movable=lambda task: task.priority != 0,
            key=lambda task: -task.priority,
        )


class RoundRobinPolicy(_BasePolicy):
    """Demote tasks whose measured computation time exhausted their quantum.

    A task is ordered after another when its computation time reached its
    ``max_duration`` and exceeds the other task's computation time.
    """

    name = "round_robin"

    @staticmethod
    def _demoted(task: Task, other: Task) -> bool:
        elapsed = task.execution_computation_time
        if elapsed is None or task.max_duration is None:
            return False
        return elapsed >= task.max_duration and elapsed > (other.execution_computation_time or 0.0)

    def _compare(self, left: tuple[str, Task], right: tuple[str, Task]) -> int:
        if self._demoted(left[1], right[1]):
            return 1
        if self._demoted(right[1], left[1]):
            return -1
        return 0

    def sort(self, tasks: dict[str, Task]) -> dict[str, Task]:
        return dict(sorted(tasks.items(), key=functools.cmp_to_key(self._compare)))


class DeadlinePolicy(_BasePolicy):
    """Earliest absolute deadline first.

    The absolute deadline of each task is recomputed as
    ``arrival_time + execution_relative_deadline - now`` when both are
    known.  Tasks without a deadline run after every task that has one.
    """

    name = "deadline"

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def sort(self, tasks: dict[str, Task]) -> dict[str, Task]:
        now = self._clock.now()
        for task in tasks.values():
            self._refresh_absolute_deadline(task, now)

        def deadline_key(item: tuple[str, Task]) -> tuple[bool, timedelta]:
            deadline = item[1].execution_absolute_deadline
            return deadline is None, deadline if deadline is not None else timedelta(0)

        return dict(sorted(tasks.items(), key=deadline_key))

    @staticmethod
    def _refresh_absolute_deadline(task: Task, now: datetime) -> None:
        if task.arrival_time is None or task.execution_relative_deadline is None:
            return
        task.execution_absolute_deadline = (
            task.arrival_time + task.execution_relative_deadline - now
        )


class BatchPolicy(_BasePolicy):
    """Age every task by one priority point, then order highest first.

    The decrement is cumulative across calls; priorities never go below
    the task model's lower bound.
    """

    name = "batch"

    def sort(self, tasks: dict[str, Task]) -> dict[str, Task]:
        for task in tasks.values():
            task.priority = max(MIN_PRIORITY, task.priority - 1)
        return dict(sorted(tasks.items(), key=lambda item: -item[1].priority))


class IdlePolicy(_BasePolicy):
    """Priority ordering restricted to tasks at or below the idle ceiling."""

    name = "idle"

    def sort(self, tasks: dict[str, Task]) -> dict[str, Task]:
        return _reorder_in_place(
            tasks,
            movable=lambda task: task.priority <= IDLE_PRIORITY_CEILING,
            key=lambda task: -task.priority,
        )


class NicePolicy(_BasePolicy):
    """Lowest nice value first, for priority-0 tasks only.

    As soon as any task carries a non-zero priority no reordering happens.
    A missing nice value counts as 0.
    """

    name = "normal"

    def sort(self, tasks: dict[str, Task]) -> dict[str, Task]:
        if any(task.priority != 0 for task in tasks.values()):
            return dict(tasks)
        return dict(sorted(tasks.items(), key=lambda item: item[1].nice or 0))


def default_policies(clock: Clock | None = None) -> list[SchedulePolicy]:
    """One instance of every built-in policy."""
    return [
        FirstInFirstOutPolicy(),
        RoundRobinPolicy(),
        DeadlinePolicy(clock),
        BatchPolicy(),
        IdlePolicy(),
        NicePolicy(),
    ]


POLICY_NAMES = (
    FirstInFirstOutPolicy.name,
    RoundRobinPolicy.name,
    DeadlinePolicy.name,
    BatchPolicy.name,
    IdlePolicy.name,
    NicePolicy.name,
)


__all__ = [
    "IDLE_PRIORITY_CEILING",
    "POLICY_NAMES",
    "SchedulePolicy",
    "FirstInFirstOutPolicy",
    "RoundRobinPolicy",
    "DeadlinePolicy",
    "BatchPolicy",
    "IdlePolicy",
    "NicePolicy",
    "default_policies",
]
