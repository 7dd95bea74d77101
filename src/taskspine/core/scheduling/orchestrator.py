"""Dispatch sort requests to the schedule policy matching a name."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from taskspine.core.errors import InvalidConfigurationError, NoPoliciesRegisteredError
from taskspine.core.scheduling.policies import SchedulePolicy
from taskspine.core.tasks.models import Task

logger = logging.getLogger(__name__)


class SchedulePolicyOrchestrator:
    """Holds the registered policies and sorts tasks with the one named.

    Example:
        >>> orchestrator = SchedulePolicyOrchestrator(default_policies())
        >>> ordered = orchestrator.sort("deadline", {"a": task_a, "b": task_b})
    """

    def __init__(self, policies: Iterable[SchedulePolicy] = ()) -> None:
        self._policies: list[SchedulePolicy] = list(policies)

    def register(self, policy: SchedulePolicy) -> None:
        self._policies.append(policy)

    @property
    def policies(self) -> list[SchedulePolicy]:
        return list(self._policies)

    def supports(self, policy: str) -> bool:
        return any(candidate.supports(policy) for candidate in self._policies)

    def sort(self, policy: str, tasks: dict[str, Task]) -> dict[str, Task]:
        """Order *tasks* with the first policy supporting *policy*.

        Raises:
            NoPoliciesRegisteredError: If no policy is registered at all.
            InvalidConfigurationError: If no registered policy supports *policy*.
        """
        if not self._policies:
            raise NoPoliciesRegisteredError()
        if not tasks:
            return {}

        for candidate in self._policies:
            if candidate.supports(policy):
                logger.debug(f"Sorting {len(tasks)} tasks with {candidate!r}")
                return candidate.sort(tasks)

        raise InvalidConfigurationError(
            f'The policy "{policy}" cannot be used as no registered policy supports it'
        ).with_context(policy=policy)


__all__ = ["SchedulePolicyOrchestrator"]
