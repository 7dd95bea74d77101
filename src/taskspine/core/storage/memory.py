"""In-memory task storage."""

from __future__ import annotations

import logging
import threading
from typing import Any

from taskspine.core.errors import AlreadyScheduledError, TaskNotFoundError
from taskspine.core.scheduling.orchestrator import SchedulePolicyOrchestrator
from taskspine.core.storage.base import PolicyOrderedStorage
from taskspine.core.tasks.collection import TaskCollection
from taskspine.core.tasks.models import Task

logger = logging.getLogger(__name__)


class InMemoryStorage(PolicyOrderedStorage):
    """Process-local storage, reordered by the schedule policy on every create.

    Tasks are stored by reference: a task mutated by the worker is the
    task the storage returns.

    Example:
        >>> storage = InMemoryStorage({"execution_mode": "normal"})
        >>> storage.create(NullTask("a", nice=5))
        >>> storage.create(NullTask("b", nice=1))
        >>> storage.list().names()
        ['b', 'a']
    """

    def __init__(
        self,
        options: dict[str, Any] | None = None,
        orchestrator: SchedulePolicyOrchestrator | None = None,
    ) -> None:
        super().__init__(options, orchestrator)
        self._tasks: dict[str, Task] = {}
        self._lock = threading.RLock()

    def get(self, name: str) -> Task:
        with self._lock:
            try:
                return self._tasks[name]
            except KeyError:
                raise TaskNotFoundError(name) from None

    def list(self) -> TaskCollection:
        with self._lock:
            return TaskCollection.from_mapping(self._tasks)

    def create(self, task: Task) -> None:
        with self._lock:
            if task.name in self._tasks:
                raise AlreadyScheduledError(task.name)
            self._apply_options(task)
            self._tasks[task.name] = task
            self._tasks = self._sort(self._tasks)
        logger.debug(f"Stored task '{task.name}' ({len(self._tasks)} total)")

    def update(self, name: str, task: Task) -> None:
        with self._lock:
            if name not in self._tasks:
                raise TaskNotFoundError(name)
            self._tasks[name] = task

    def delete(self, name: str) -> None:
        with self._lock:
            self._tasks.pop(name, None)

    def pause(self, name: str) -> None:
        with self._lock:
            self.get(name).pause()

    def resume(self, name: str) -> None:
        with self._lock:
            self.get(name).resume()

    def clear(self) -> None:
        with self._lock:
            self._tasks = {}


__all__ = ["InMemoryStorage"]
