"""Composite storages fanning out over several underlying storages.

Manifesto:
    A single backend is a single point of failure.  Composite storages
    combine several backends behind the same protocol so the scheduler
    never needs to know how many there are.

Three strategies:

- :class:`FailoverStorage` -- primary first, next one only when a call
  fails with :class:`StorageFailureError`
- :class:`RoundRobinStorage` -- each storage serves ``quantum``
  consecutive calls before the next takes over; a failing storage is
  skipped for the current call
- :class:`LongTailStorage` -- sharding: new tasks go to the storage
  holding the fewest tasks, name-keyed calls go to the storage holding
  the name, ``list()`` merges every shard

Domain errors (AlreadyScheduled, TaskNotFound, invalid transitions) are
answers, not failures: they propagate immediately and never trigger a
fallback.

Tags:
    taskspine, storage, failover, round-robin, sharding

Doc-Types:
    api-reference
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from taskspine.core.errors import (
    AlreadyScheduledError,
    InvalidConfigurationError,
    StorageFailureError,
    TaskNotFoundError,
)
from taskspine.core.storage.protocol import Storage
from taskspine.core.tasks.collection import TaskCollection
from taskspine.core.tasks.models import Task

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _CompositeStorage:
    """Holds the underlying storages and the composite's own options."""

    kind = "composite"

    def __init__(self, storages: Sequence[Storage], options: dict[str, Any] | None = None) -> None:
        if not storages:
            raise InvalidConfigurationError(f"A {self.kind} storage needs at least one storage")
        self.storages = list(storages)
        self.options = dict(options or {})

    def get_options(self) -> dict[str, Any]:
        return dict(self.options)

    def _execute(self, func: Callable[[Storage], T]) -> T:
        raise NotImplementedError

    # Every protocol call goes through _execute

    def get(self, name: str) -> Task:
        return self._execute(lambda storage: storage.get(name))

    def list(self) -> TaskCollection:
        return self._execute(lambda storage: storage.list())

    def create(self, task: Task) -> None:
        self._execute(lambda storage: storage.create(task))

    def update(self, name: str, task: Task) -> None:
        self._execute(lambda storage: storage.update(name, task))

    def delete(self, name: str) -> None:
        self._execute(lambda storage: storage.delete(name))

    def pause(self, name: str) -> None:
        self._execute(lambda storage: storage.pause(name))

    def resume(self, name: str) -> None:
        self._execute(lambda storage: storage.resume(name))

    def clear(self) -> None:
        self._execute(lambda storage: storage.clear())


class FailoverStorage(_CompositeStorage):
    """Use the first storage that does not fail.

    Example:
        >>> storage = FailoverStorage([SqliteStorage(conn), InMemoryStorage()])
    """

    kind = "failover"

    def _execute(self, func: Callable[[Storage], T]) -> T:
        errors: list[StorageFailureError] = []
        for storage in self.storages:
            try:
                return func(storage)
            except StorageFailureError as e:
                logger.warning(f"Storage {storage!r} failed, trying the next one: {e}")
                errors.append(e)

        raise StorageFailureError(
            "All the storages failed to execute the requested action",
            cause=errors[-1],
        ).with_context(storage=self.kind, failures=len(errors))


class RoundRobinStorage(_CompositeStorage):
    """Rotate between storages every ``quantum`` calls."""

    kind = "roundrobin"
    DEFAULT_QUANTUM = 2

    def __init__(self, storages: Sequence[Storage], options: dict[str, Any] | None = None) -> None:
        super().__init__(storages, {"quantum": self.DEFAULT_QUANTUM, **(options or {})})
        self.quantum = int(self.options["quantum"])
        if self.quantum < 1:
            raise InvalidConfigurationError("The round-robin quantum must be at least 1")
        self._index = 0
        self._served = 0
        self._lock = threading.Lock()

    def _next_start(self) -> int:
        with self._lock:
            if self._served >= self.quantum:
                self._index = (self._index + 1) % len(self.storages)
                self._served = 0
            self._served += 1
            return self._index

    def _execute(self, func: Callable[[Storage], T]) -> T:
        start = self._next_start()
        last_error: StorageFailureError | None = None
        for offset in range(len(self.storages)):
            storage = self.storages[(start + offset) % len(self.storages)]
            try:
                return func(storage)
            except StorageFailureError as e:
                logger.warning(f"Storage {storage!r} failed, skipping it for this call: {e}")
                last_error = e

        raise StorageFailureError(
            "All the storages failed to execute the requested action",
            cause=last_error,
        ).with_context(storage=self.kind)


class LongTailStorage(_CompositeStorage):
    """Shard tasks across storages, filling the least-loaded one first."""

    kind = "longtail"

    def _locate(self, name: str) -> Storage | None:
        for storage in self.storages:
            if name in storage.list():
                return storage
        return None

    def get(self, name: str) -> Task:
        storage = self._locate(name)
        if storage is None:
            raise TaskNotFoundError(name)
        return storage.get(name)

    def list(self) -> TaskCollection:
        merged = TaskCollection()
        for storage in self.storages:
            for task in storage.list():
                merged.add(task)
        return merged

    def create(self, task: Task) -> None:
        loads = []
        for storage in self.storages:
            tasks = storage.list()
            if task.name in tasks:
                raise AlreadyScheduledError(task.name)
            loads.append(len(tasks))
        target = self.storages[loads.index(min(loads))]
        target.create(task)

    def update(self, name: str, task: Task) -> None:
        storage = self._locate(name)
        if storage is None:
            raise TaskNotFoundError(name)
        storage.update(name, task)

    def delete(self, name: str) -> None:
        storage = self._locate(name)
        if storage is not None:
            storage.delete(name)

    def pause(self, name: str) -> None:
        storage = self._locate(name)
        if storage is None:
            raise TaskNotFoundError(name)
        storage.pause(name)

    def resume(self, name: str) -> None:
        storage = self._locate(name)
        if storage is None:
            raise TaskNotFoundError(name)
        storage.resume(name)

    def clear(self) -> None:
        for storage in self.storages:
            storage.clear()


__all__ = ["FailoverStorage", "RoundRobinStorage", "LongTailStorage"]
