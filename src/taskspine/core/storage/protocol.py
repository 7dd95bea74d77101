"""Storage protocol for scheduled tasks (SYNC-ONLY).

Manifesto:
    The scheduler and the worker never know where tasks live.  Every
    backend -- in-memory, SQLite, filesystem, or a composite over several
    of them -- implements the same small synchronous protocol, and
    ``list()`` always returns tasks already ordered by the storage's
    schedule policy (``execution_mode`` option).

Error contract:
    - ``create`` on an existing name raises :class:`AlreadyScheduledError`
    - ``get`` / ``update`` / ``pause`` / ``resume`` on a missing name raise
      :class:`TaskNotFoundError`; ``delete`` on a missing name is a no-op
    - pausing a paused task (or resuming an enabled one) raises
      :class:`InvalidTransitionError`
    - driver and OS failures are wrapped in :class:`StorageFailureError`

Tags:
    taskspine, storage, protocol, sync-only

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from taskspine.core.tasks.collection import TaskCollection
from taskspine.core.tasks.models import Task


@runtime_checkable
class Storage(Protocol):
    """Persistence backend for scheduled tasks."""

    def get(self, name: str) -> Task:
        ...

    def list(self) -> TaskCollection:
        ...

    def create(self, task: Task) -> None:
        ...

    def update(self, name: str, task: Task) -> None:
        ...

    def delete(self, name: str) -> None:
        ...

    def pause(self, name: str) -> None:
        ...

    def resume(self, name: str) -> None:
        ...

    def clear(self) -> None:
        ...

    def get_options(self) -> dict[str, Any]:
        ...


__all__ = ["Storage"]
