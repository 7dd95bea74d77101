"""Task runners and the kind → runner lookup table.

Manifesto:
    A worker does not know how to run a shell command or call a URL.  It
    looks the task's kind up in a :class:`RunnerRegistry` and hands the
    task to the registered runner.  The set of kinds is closed
    (:class:`~taskspine.core.tasks.models.TaskKind`); the runner for each
    kind is replaceable by registration.

Modules
-------
null        NullTaskRunner
callback    CallbackTaskRunner
shell       ShellTaskRunner, CommandTaskRunner (sub-processes)
http        HttpTaskRunner (httpx)
messaging   MessengerTaskRunner, NotificationTaskRunner

Usage::

    registry = RunnerRegistry()
    registry.register(TaskKind.SHELL, ShellTaskRunner())
    runner = registry.for_task(task)
    output = runner.run(task)
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol, runtime_checkable

import httpx

from taskspine.core.messaging import MessageBus
from taskspine.core.tasks.models import Output, Task, TaskKind
from taskspine.execution.runners.callback import CallbackTaskRunner
from taskspine.execution.runners.http import HttpTaskRunner
from taskspine.execution.runners.messaging import MessengerTaskRunner, NotificationTaskRunner, Notifier
from taskspine.execution.runners.null import NullTaskRunner
from taskspine.execution.runners.shell import CommandTaskRunner, ShellTaskRunner


@runtime_checkable
class Runner(Protocol):
    """Executes tasks of one kind."""

    def supports(self, task: Task) -> bool:
        ...

    def run(self, task: Task) -> Output:
        ...


class RunnerRegistry:
    """Lookup table from task kind to runner."""

    def __init__(self, runners: dict[TaskKind, Runner] | None = None) -> None:
        self._runners: dict[TaskKind, Runner] = {}
        for kind, runner in (runners or {}).items():
            self.register(kind, runner)

    def register(self, kind: TaskKind, runner: Runner) -> None:
        self._runners[TaskKind(kind)] = runner

    def unregister(self, kind: TaskKind) -> None:
        self._runners.pop(TaskKind(kind), None)

    def for_task(self, task: Task) -> Runner | None:
        """The runner registered for the task's kind, if it accepts the task."""
        runner = self._runners.get(task.kind)
        if runner is None or not runner.supports(task):
            return None
        return runner

    def kinds(self) -> list[TaskKind]:
        return list(self._runners)

    def __len__(self) -> int:
        return len(self._runners)

    def __iter__(self) -> Iterator[Runner]:
        return iter(self._runners.values())


def default_runners(
    bus: MessageBus | None = None,
    notifier: Notifier | None = None,
    http_client: httpx.Client | None = None,
) -> RunnerRegistry:
    """Registry with a runner for every kind the given collaborators allow.

    Messenger and notification runners are only registered when a bus or
    a notifier is supplied.
    """
    registry = RunnerRegistry()
    registry.register(TaskKind.NULL, NullTaskRunner())
    registry.register(TaskKind.CALLBACK, CallbackTaskRunner())
    registry.register(TaskKind.SHELL, ShellTaskRunner())
    registry.register(TaskKind.COMMAND, CommandTaskRunner())
    registry.register(TaskKind.HTTP, HttpTaskRunner(http_client))
    if bus is not None:
        registry.register(TaskKind.MESSENGER, MessengerTaskRunner(bus))
    if notifier is not None:
        registry.register(TaskKind.NOTIFICATION, NotificationTaskRunner(notifier))
    return registry


__all__ = [
    "CallbackTaskRunner",
    "CommandTaskRunner",
    "HttpTaskRunner",
    "MessengerTaskRunner",
    "NotificationTaskRunner",
    "Notifier",
    "NullTaskRunner",
    "Runner",
    "RunnerRegistry",
    "ShellTaskRunner",
    "default_runners",
]
