"""Runner for tasks without side effects."""

from __future__ import annotations

from taskspine.core.tasks.models import NullTask, Output, Task


class NullTaskRunner:
    def supports(self, task: Task) -> bool:
        return isinstance(task, NullTask)

    def run(self, task: Task) -> Output:
        return Output(task)
