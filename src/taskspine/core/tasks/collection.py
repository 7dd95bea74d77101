"""Ordered, name-keyed task container."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator

from taskspine.core.errors import AlreadyScheduledError, TaskNotFoundError
from taskspine.core.tasks.models import Task


class TaskCollection:
    """Insertion-ordered mapping of task name to :class:`Task`.

    Names are unique: adding a second task under an existing name raises
    :class:`AlreadyScheduledError` instead of overwriting it.

    Example:
        >>> tasks = TaskCollection([NullTask("a"), NullTask("b")])
        >>> tasks.names()
        ['a', 'b']
        >>> tasks.filter(lambda task: task.name == "b").names()
        ['b']
    """

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._tasks: dict[str, Task] = {}
        for task in tasks:
            self.add(task)

    @classmethod
    def from_mapping(cls, tasks: dict[str, Task]) -> TaskCollection:
        """Build a collection preserving the mapping's order."""
        collection = cls()
        collection._tasks = dict(tasks)
        return collection

    def add(self, task: Task) -> None:
        if task.name in self._tasks:
            raise AlreadyScheduledError(task.name)
        self._tasks[task.name] = task

    def remove(self, name: str) -> Task:
        try:
            return self._tasks.pop(name)
        except KeyError:
            raise TaskNotFoundError(name) from None

    def get(self, name: str) -> Task:
        try:
            return self._tasks[name]
        except KeyError:
            raise TaskNotFoundError(name) from None

    def has(self, name: str) -> bool:
        return name in self._tasks

    def filter(self, predicate: Callable[[Task], bool]) -> TaskCollection:
        """Return a new collection with the tasks matching *predicate*, in order."""
        return TaskCollection.from_mapping(
            {name: task for name, task in self._tasks.items() if predicate(task)}
        )

    def to_list(self, keep_keys: bool = False) -> list[Task] | dict[str, Task]:
        """Materialize the collection; with *keep_keys* a name-keyed dict is returned."""
        if keep_keys:
            return dict(self._tasks)
        return list(self._tasks.values())

    def to_dict(self) -> dict[str, Task]:
        return dict(self._tasks)

    def names(self) -> list[str]:
        return list(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __iter__(self) -> Iterator[Task]:
        return iter(list(self._tasks.values()))

    def __len__(self) -> int:
        return len(self._tasks)

    def __repr__(self) -> str:
        return f"TaskCollection({self.names()!r})"


__all__ = ["TaskCollection"]
