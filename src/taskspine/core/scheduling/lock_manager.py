"""Per-task mutual exclusion for workers.

Manifesto:
    Several workers may poll the same storage.  A task must never run in
    two of them at once, so every execution is bracketed by a lock keyed
    on the task name.  Acquisition never blocks: a worker that loses the
    race skips the task for this pass.

Two implementations:

- :class:`InMemoryLockManager` -- threads of one process
- :class:`SqliteLockManager` -- processes sharing one SQLite file.  A lock
  lives as long as its holder process, so a long task keeps it and a
  crashed worker loses it; remote holders expire after a TTL.
  INSERT-or-ignore gives atomic conflict detection.

Tags:
    taskspine, scheduling, locks, liveness, TTL, concurrency

Doc-Types:
    api-reference
"""

from __future__ import annotations

import logging
import os
import socket
import sqlite3
import sys
import threading
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable
from uuid import uuid4

from taskspine.core.clock import Clock, SystemClock
from taskspine.core.errors import StorageFailureError

logger = logging.getLogger(__name__)


@runtime_checkable
class LockManager(Protocol):
    """Non-blocking named lock."""

    def acquire(self, name: str) -> bool:
        """Try to take the lock; False when another holder has it."""
        ...

    def release(self, name: str) -> bool:
        """Release a lock held by this manager."""
        ...

    def is_locked(self, name: str) -> bool:
        ...


class InMemoryLockManager:
    """Process-local named locks.

    Example:
        >>> locks = InMemoryLockManager()
        >>> locks.acquire("backup")
        True
        >>> locks.acquire("backup")
        False
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: set[str] = set()

    def acquire(self, name: str) -> bool:
        with self._guard:
            if name in self._held:
                logger.debug(f"Lock already held for task {name}")
                return False
            self._held.add(name)
        logger.debug(f"Acquired lock for task {name}")
        return True

    def release(self, name: str) -> bool:
        with self._guard:
            if name not in self._held:
                return False
            self._held.discard(name)
        logger.debug(f"Released lock for task {name}")
        return True

    def is_locked(self, name: str) -> bool:
        with self._guard:
            return name in self._held


def _process_alive(pid: int) -> bool | None:
    """Whether *pid* runs on this host; None when the platform can't tell."""
    if pid == os.getpid():
        return True
    if sys.platform == "win32":
        return None
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class SqliteLockManager:
    """Database-backed named locks, released when their holder dies.

    Each row records the holder's host and process id.  A lock held on
    this host stays held for as long as the holding process is alive,
    however long its task runs, and is reclaimed as soon as that process
    is gone.  Holders on other hosts cannot be probed, so their rows fall
    back to the TTL, which :meth:`refresh` extends.

    Example:
        >>> manager = SqliteLockManager(sqlite3.connect("locks.db"), instance_id="worker-1")
        >>> if manager.acquire("backup"):
        ...     try:
        ...         pass  # run the task
        ...     finally:
        ...         manager.release("backup")
    """

    TABLE = "taskspine_locks"

    def __init__(
        self,
        conn: sqlite3.Connection,
        instance_id: str | None = None,
        ttl_seconds: int = 300,
        clock: Clock | None = None,
        host: str | None = None,
        pid: int | None = None,
    ) -> None:
        """Initialize lock manager.

        Args:
            conn: SQLite connection (shared file for cross-process locking)
            instance_id: Unique identifier for this worker instance.
                        Auto-generated if not provided.
            ttl_seconds: Expiry of locks whose holder runs on another host
            clock: Time source for lock timestamps
            host: Host name recorded on acquired locks (this host by default)
            pid: Process id recorded on acquired locks (this process by default)
        """
        self.conn = conn
        self.instance_id = instance_id or str(uuid4())
        self.ttl_seconds = ttl_seconds
        self.host = host or socket.gethostname()
        self.pid = pid or os.getpid()
        self._clock = clock or SystemClock()
        self._guard = threading.Lock()
        self.conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.TABLE} (
                name TEXT PRIMARY KEY,
                locked_by TEXT NOT NULL,
                host TEXT NOT NULL,
                pid INTEGER NOT NULL,
                locked_at TEXT NOT NULL,
                expires_at TEXT NOT NULL
            )
            """
        )
        self.conn.commit()

    def _is_stale(self, host: str, pid: int, expires_at: str, now: datetime) -> bool:
        if host == self.host:
            alive = _process_alive(pid)
            if alive is not None:
                return not alive
        return expires_at < now.isoformat()

    def acquire(self, name: str) -> bool:
        """Acquire exclusive lock for a task.

        A stale row (dead local holder, or expired remote holder) is
        removed first.

        Returns:
            True if lock acquired, False if already locked elsewhere
        """
        now = self._clock.now()
        expires = now + timedelta(seconds=self.ttl_seconds)

        with self._guard:
            try:
                row = self.conn.execute(
                    f"SELECT locked_by, host, pid, expires_at FROM {self.TABLE} WHERE name = ?",
                    (name,),
                ).fetchone()
                if row is not None and self._is_stale(row[1], row[2], row[3], now):
                    logger.warning(f"Reclaiming stale lock for task {name} held by {row[0]}")
                    self.conn.execute(
                        f"DELETE FROM {self.TABLE} WHERE name = ? AND locked_by = ?",
                        (name, row[0]),
                    )
                cursor = self.conn.execute(
                    f"""
                    INSERT OR IGNORE INTO {self.TABLE} (name, locked_by, host, pid, locked_at, expires_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (name, self.instance_id, self.host, self.pid, now.isoformat(), expires.isoformat()),
                )
                self.conn.commit()

                if cursor.rowcount > 0:
                    logger.debug(f"Acquired lock for task {name}")
                    return True

                # Held elsewhere, or by this instance mid-execution
                logger.debug(f"Lock already held for task {name}")
                return False

            except sqlite3.Error as e:
                self.conn.rollback()
                logger.error(f"Lock acquire failed: {e}")
                raise StorageFailureError(f"Lock acquire failed for {name}", cause=e) from e

    def release(self, name: str) -> bool:
        """Release the lock if held by this instance."""
        with self._guard:
            try:
                cursor = self.conn.execute(
                    f"DELETE FROM {self.TABLE} WHERE name = ? AND locked_by = ?",
                    (name, self.instance_id),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                logger.error(f"Lock release failed: {e}")
                return False

        if cursor.rowcount > 0:
            logger.debug(f"Released lock for task {name}")
            return True
        return False

    def refresh(self, name: str) -> bool:
        """Extend the expiry of a lock held by this instance."""
        expires = self._clock.now() + timedelta(seconds=self.ttl_seconds)
        with self._guard:
            cursor = self.conn.execute(
                f"UPDATE {self.TABLE} SET expires_at = ? WHERE name = ? AND locked_by = ?",
                (expires.isoformat(), name, self.instance_id),
            )
            self.conn.commit()
        return cursor.rowcount > 0

    def is_locked(self, name: str) -> bool:
        """Check if a task is locked (by any live instance)."""
        return self.get_lock_holder(name) is not None

    def get_lock_holder(self, name: str) -> str | None:
        locks = [lock for lock in self.list_active_locks() if lock["name"] == name]
        return locks[0]["locked_by"] if locks else None

    # === Maintenance ===

    def _rows(self) -> list[tuple]:
        with self._guard:
            cursor = self.conn.execute(
                f"""
                SELECT name, locked_by, host, pid, locked_at, expires_at
                FROM {self.TABLE}
                ORDER BY locked_at
                """
            )
            return cursor.fetchall()

    def cleanup_expired_locks(self) -> int:
        """Remove all stale locks.

        Returns:
            Number of locks removed
        """
        now = self._clock.now()
        stale = [row for row in self._rows() if self._is_stale(row[2], row[3], row[5], now)]
        count = 0
        with self._guard:
            for row in stale:
                cursor = self.conn.execute(
                    f"DELETE FROM {self.TABLE} WHERE name = ? AND locked_by = ?",
                    (row[0], row[1]),
                )
                count += cursor.rowcount
            self.conn.commit()

        if count > 0:
            logger.info(f"Cleaned up {count} stale locks")
        return count

    def list_active_locks(self) -> list[dict]:
        """List all locks whose holder is still considered alive."""
        now = self._clock.now()
        return [
            {
                "name": row[0],
                "locked_by": row[1],
                "host": row[2],
                "pid": row[3],
                "locked_at": row[4],
                "expires_at": row[5],
            }
            for row in self._rows()
            if not self._is_stale(row[2], row[3], row[5], now)
        ]

    def force_release_all(self) -> int:
        """Force release all locks (recovery or testing only)."""
        with self._guard:
            cursor = self.conn.execute(f"DELETE FROM {self.TABLE}")
            self.conn.commit()
        count = cursor.rowcount
        logger.warning(f"Force released {count} locks")
        return count


__all__ = ["LockManager", "InMemoryLockManager", "SqliteLockManager"]
