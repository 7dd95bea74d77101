"""SQLite task storage.

Tasks are stored one row each in ``taskspine_tasks``::

    name      TEXT PRIMARY KEY
    position  INTEGER            -- schedule-policy order
    payload   TEXT               -- Task.to_dict() as JSON

Every create re-sorts the stored tasks with the schedule policy and
rewrites positions (and payloads, so batch aging persists) in one
transaction.  Several worker processes may share the same database
file; per-task locking is the lock manager's job, not the storage's.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from taskspine.core.errors import AlreadyScheduledError, StorageFailureError, TaskNotFoundError
from taskspine.core.scheduling.orchestrator import SchedulePolicyOrchestrator
from taskspine.core.storage.base import PolicyOrderedStorage
from taskspine.core.tasks.collection import TaskCollection
from taskspine.core.tasks.models import Task

logger = logging.getLogger(__name__)

TABLE = "taskspine_tasks"


class SqliteStorage(PolicyOrderedStorage):
    """Durable storage backed by a SQLite connection.

    Example:
        >>> storage = SqliteStorage(sqlite3.connect("tasks.db"))
        >>> storage.create(ShellTask("backup", command=["backup.sh"]))
        >>> storage.get("backup").command
        ['backup.sh']
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        options: dict[str, Any] | None = None,
        orchestrator: SchedulePolicyOrchestrator | None = None,
    ) -> None:
        super().__init__(options, orchestrator)
        self.conn = conn
        self._lock = threading.RLock()
        with self._transaction() as cursor:
            cursor.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {TABLE} (
                    name TEXT PRIMARY KEY,
                    position INTEGER NOT NULL,
                    payload TEXT NOT NULL
                )
                """
            )

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                cursor = self.conn.cursor()
                yield cursor
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                logger.error(f"SQLite storage operation failed: {e}")
                raise StorageFailureError(str(e), cause=e).with_context(storage="sqlite") from e
            except Exception:
                self.conn.rollback()
                raise

    @staticmethod
    def _load(payload: str) -> Task:
        return Task.from_dict(json.loads(payload))

    @staticmethod
    def _dump(task: Task) -> str:
        return json.dumps(task.to_dict())

    def _fetch(self, cursor: sqlite3.Cursor, name: str) -> Task:
        row = cursor.execute(f"SELECT payload FROM {TABLE} WHERE name = ?", (name,)).fetchone()
        if row is None:
            raise TaskNotFoundError(name)
        return self._load(row[0])

    def get(self, name: str) -> Task:
        with self._transaction() as cursor:
            return self._fetch(cursor, name)

    def list(self) -> TaskCollection:
        with self._transaction() as cursor:
            rows = cursor.execute(f"SELECT payload FROM {TABLE} ORDER BY position, name").fetchall()
        return TaskCollection(self._load(row[0]) for row in rows)

    def create(self, task: Task) -> None:
        with self._transaction() as cursor:
            exists = cursor.execute(f"SELECT 1 FROM {TABLE} WHERE name = ?", (task.name,)).fetchone()
            if exists:
                raise AlreadyScheduledError(task.name)
            self._apply_options(task)

            rows = cursor.execute(f"SELECT payload FROM {TABLE} ORDER BY position, name").fetchall()
            tasks = {stored.name: stored for stored in (self._load(row[0]) for row in rows)}
            tasks[task.name] = task
            ordered = self._sort(tasks)

            cursor.execute(f"DELETE FROM {TABLE}")
            cursor.executemany(
                f"INSERT INTO {TABLE} (name, position, payload) VALUES (?, ?, ?)",
                [(name, position, self._dump(item)) for position, (name, item) in enumerate(ordered.items())],
            )
        logger.debug(f"Stored task '{task.name}' in SQLite")

    def update(self, name: str, task: Task) -> None:
        with self._transaction() as cursor:
            cursor.execute(
                f"UPDATE {TABLE} SET payload = ? WHERE name = ?",
                (self._dump(task), name),
            )
            if cursor.rowcount == 0:
                raise TaskNotFoundError(name)

    def delete(self, name: str) -> None:
        with self._transaction() as cursor:
            cursor.execute(f"DELETE FROM {TABLE} WHERE name = ?", (name,))

    def pause(self, name: str) -> None:
        with self._lock:
            task = self.get(name)
            task.pause()
            self.update(name, task)

    def resume(self, name: str) -> None:
        with self._lock:
            task = self.get(name)
            task.resume()
            self.update(name, task)

    def clear(self) -> None:
        with self._transaction() as cursor:
            cursor.execute(f"DELETE FROM {TABLE}")


__all__ = ["SqliteStorage"]
