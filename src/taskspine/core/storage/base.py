"""Shared option handling for policy-ordered storages."""

from __future__ import annotations

from typing import Any

from taskspine.core.errors import InvalidConfigurationError
from taskspine.core.scheduling.orchestrator import SchedulePolicyOrchestrator
from taskspine.core.scheduling.policies import FirstInFirstOutPolicy, default_policies
from taskspine.core.tasks.models import Task

DEFAULT_OPTIONS: dict[str, Any] = {
    "execution_mode": FirstInFirstOutPolicy.name,
}


class PolicyOrderedStorage:
    """Base for storages that keep tasks in schedule-policy order.

    Recognized options:
        execution_mode: Name of the schedule policy (default first_in_first_out)
        nice: When set, overrides the nice value of every created task
    """

    def __init__(
        self,
        options: dict[str, Any] | None = None,
        orchestrator: SchedulePolicyOrchestrator | None = None,
    ) -> None:
        self.options = {**DEFAULT_OPTIONS, **(options or {})}
        self.orchestrator = orchestrator or SchedulePolicyOrchestrator(default_policies())
        if self.orchestrator.policies and not self.orchestrator.supports(self.execution_mode):
            raise InvalidConfigurationError(
                f'The execution mode "{self.execution_mode}" is not supported'
            ).with_context(policy=self.execution_mode)

    @property
    def execution_mode(self) -> str:
        return self.options["execution_mode"]

    def get_options(self) -> dict[str, Any]:
        return dict(self.options)

    def _apply_options(self, task: Task) -> None:
        nice = self.options.get("nice")
        if nice is not None:
            task.nice = int(nice)

    def _sort(self, tasks: dict[str, Task]) -> dict[str, Task]:
        return self.orchestrator.sort(self.execution_mode, tasks)


__all__ = ["DEFAULT_OPTIONS", "PolicyOrderedStorage"]
