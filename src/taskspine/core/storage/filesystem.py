"""Filesystem task storage: one JSON document per task."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from taskspine.core.errors import (
    AlreadyScheduledError,
    InvalidTaskError,
    StorageFailureError,
    TaskNotFoundError,
)
from taskspine.core.scheduling.orchestrator import SchedulePolicyOrchestrator
from taskspine.core.storage.base import PolicyOrderedStorage
from taskspine.core.tasks.collection import TaskCollection
from taskspine.core.tasks.models import Task

logger = logging.getLogger(__name__)


class FilesystemStorage(PolicyOrderedStorage):
    """Store each task as ``<directory>/<name>.json``.

    Files carry no order, so :meth:`list` sorts with the schedule policy
    on every call.  Writes go through a temporary file and ``os.replace``
    so a reader never sees a half-written task.
    """

    SUFFIX = ".json"

    def __init__(
        self,
        directory: str | Path | None = None,
        options: dict[str, Any] | None = None,
        orchestrator: SchedulePolicyOrchestrator | None = None,
    ) -> None:
        super().__init__(options, orchestrator)
        self.directory = Path(directory) if directory else Path(tempfile.gettempdir()) / "taskspine"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageFailureError(f"Cannot create {self.directory}", cause=e).with_context(
                storage=str(self.directory)
            ) from e

    def _path(self, name: str) -> Path:
        if not name or os.sep in name or (os.altsep and os.altsep in name) or name in (".", ".."):
            raise InvalidTaskError(f"The task name {name!r} cannot be used as a file name")
        return self.directory / f"{name}{self.SUFFIX}"

    def _read(self, path: Path) -> Task:
        try:
            return Task.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except OSError as e:
            raise StorageFailureError(f"Cannot read {path}", cause=e).with_context(storage=str(path)) from e

    def _write(self, task: Task) -> None:
        path = self._path(task.name)
        try:
            fd, tmp = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(task.to_dict(), handle, indent=2)
            os.replace(tmp, path)
        except OSError as e:
            raise StorageFailureError(f"Cannot write {path}", cause=e).with_context(storage=str(path)) from e

    def get(self, name: str) -> Task:
        path = self._path(name)
        if not path.exists():
            raise TaskNotFoundError(name)
        return self._read(path)

    def list(self) -> TaskCollection:
        tasks = {}
        for path in sorted(self.directory.glob(f"*{self.SUFFIX}")):
            task = self._read(path)
            tasks[task.name] = task
        return TaskCollection.from_mapping(self._sort(tasks) if tasks else {})

    def create(self, task: Task) -> None:
        if self._path(task.name).exists():
            raise AlreadyScheduledError(task.name)
        self._apply_options(task)
        self._write(task)
        logger.debug(f"Stored task '{task.name}' in {self.directory}")

    def update(self, name: str, task: Task) -> None:
        path = self._path(name)
        if not path.exists():
            raise TaskNotFoundError(name)
        if task.name != name:
            path.unlink()
        self._write(task)

    def delete(self, name: str) -> None:
        self._path(name).unlink(missing_ok=True)

    def pause(self, name: str) -> None:
        task = self.get(name)
        task.pause()
        self._write(task)

    def resume(self, name: str) -> None:
        task = self.get(name)
        task.resume()
        self._write(task)

    def clear(self) -> None:
        for path in self.directory.glob(f"*{self.SUFFIX}"):
            path.unlink(missing_ok=True)


__all__ = ["FilesystemStorage"]
