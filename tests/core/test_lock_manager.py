"""Tests for taskspine.core.scheduling.lock_manager — per-task locks."""

import sqlite3
import subprocess
import sys
import threading

import pytest

from taskspine.core.events.memory import InMemoryEventDispatcher
from taskspine.core.scheduling.lock_manager import InMemoryLockManager, LockManager, SqliteLockManager
from taskspine.core.scheduling.scheduler import Scheduler
from taskspine.core.storage.memory import InMemoryStorage
from taskspine.core.tasks.models import NullTask, Output, TaskKind
from taskspine.execution.runners import RunnerRegistry
from taskspine.execution.subscribers import StopWorkerOnTaskLimitSubscriber
from taskspine.execution.worker import Worker


# ── Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture()
def conn(tmp_path):
    db = sqlite3.connect(tmp_path / "locks.db", check_same_thread=False)
    yield db
    db.close()


@pytest.fixture()
def manager(conn, clock):
    return SqliteLockManager(conn, instance_id="inst-1", clock=clock)


# ── In-memory ────────────────────────────────────────────────────────────


class TestInMemoryLockManager:
    def test_protocol(self):
        assert isinstance(InMemoryLockManager(), LockManager)

    def test_acquire_release(self):
        locks = InMemoryLockManager()
        assert locks.acquire("a") is True
        assert locks.is_locked("a") is True
        assert locks.acquire("a") is False
        assert locks.release("a") is True
        assert locks.is_locked("a") is False
        assert locks.acquire("a") is True

    def test_release_unheld(self):
        assert InMemoryLockManager().release("a") is False

    def test_names_are_independent(self):
        locks = InMemoryLockManager()
        assert locks.acquire("a") is True
        assert locks.acquire("b") is True

    def test_concurrent_acquire_single_winner(self):
        locks = InMemoryLockManager()
        barrier = threading.Barrier(8)
        results = []

        def contend():
            barrier.wait()
            results.append(locks.acquire("backup"))

        threads = [threading.Thread(target=contend) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1


# ── SQLite: Acquire / Release ────────────────────────────────────────────


class TestSqliteAcquireRelease:
    def test_protocol(self, manager):
        assert isinstance(manager, LockManager)

    def test_acquire_succeeds(self, manager):
        assert manager.acquire("backup") is True

    def test_acquire_twice_same_instance_fails(self, manager):
        assert manager.acquire("backup") is True
        assert manager.acquire("backup") is False

    def test_acquire_blocked_by_other_instance(self, conn, clock):
        m1 = SqliteLockManager(conn, instance_id="inst-1", clock=clock)
        m2 = SqliteLockManager(conn, instance_id="inst-2", clock=clock)

        assert m1.acquire("backup") is True
        assert m2.acquire("backup") is False

    def test_release_only_own_lock(self, conn, clock):
        m1 = SqliteLockManager(conn, instance_id="inst-1", clock=clock)
        m2 = SqliteLockManager(conn, instance_id="inst-2", clock=clock)

        m1.acquire("backup")
        assert m2.release("backup") is False
        assert m1.release("backup") is True
        assert m2.acquire("backup") is True

    def test_concurrent_acquire_single_winner(self, tmp_path, clock):
        managers = [
            SqliteLockManager(
                sqlite3.connect(tmp_path / "shared.db", check_same_thread=False, timeout=10),
                instance_id=f"inst-{i}",
                clock=clock,
            )
            for i in range(4)
        ]
        barrier = threading.Barrier(len(managers))
        results = []

        def contend(manager):
            barrier.wait()
            results.append(manager.acquire("backup"))

        threads = [threading.Thread(target=contend, args=(m,)) for m in managers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1


# ── SQLite: Holder liveness ──────────────────────────────────────────────


@pytest.fixture(scope="module")
def exited_pid():
    process = subprocess.Popen([sys.executable, "-c", "pass"])
    process.wait()
    return process.pid


class TestSqliteHolderLiveness:
    def test_running_holder_keeps_lock_past_ttl(self, conn, clock):
        holder = SqliteLockManager(conn, instance_id="inst-1", ttl_seconds=300, clock=clock)
        other = SqliteLockManager(conn, instance_id="inst-2", ttl_seconds=300, clock=clock)

        assert holder.acquire("backup") is True
        clock.advance(301)

        assert other.acquire("backup") is False
        assert other.get_lock_holder("backup") == "inst-1"

    def test_worker_keeps_lock_during_long_run(self, conn, clock):
        holder = SqliteLockManager(conn, instance_id="inst-1", ttl_seconds=60, clock=clock)
        other = SqliteLockManager(conn, instance_id="inst-2", ttl_seconds=60, clock=clock)
        seen = []

        class SlowRunner:
            def supports(self, task):
                return True

            def run(self, task):
                clock.advance(3600)
                seen.append(other.acquire(task.name))
                return Output(task)

        dispatcher = InMemoryEventDispatcher()
        StopWorkerOnTaskLimitSubscriber(1).subscribe(dispatcher)
        scheduler = Scheduler(InMemoryStorage(), "UTC", clock)
        worker = Worker(scheduler, RunnerRegistry({TaskKind.NULL: SlowRunner()}), holder, clock=clock, dispatcher=dispatcher)

        worker.execute(NullTask("backup"))

        assert seen == [False]
        assert holder.is_locked("backup") is False

    def test_dead_local_holder_reclaimed_before_ttl(self, conn, clock, exited_pid):
        crashed = SqliteLockManager(conn, instance_id="crashed", clock=clock, pid=exited_pid)
        other = SqliteLockManager(conn, instance_id="inst-2", clock=clock)

        assert crashed.acquire("backup") is True

        assert other.is_locked("backup") is False
        assert other.acquire("backup") is True
        assert other.get_lock_holder("backup") == "inst-2"

    def test_remote_holder_expires_after_ttl(self, conn, clock):
        remote = SqliteLockManager(conn, instance_id="inst-1", ttl_seconds=60, clock=clock, host="other-host")
        local = SqliteLockManager(conn, instance_id="inst-2", ttl_seconds=60, clock=clock)

        remote.acquire("backup")
        clock.advance(59)
        assert local.acquire("backup") is False

        clock.advance(2)
        assert local.acquire("backup") is True
        assert local.get_lock_holder("backup") == "inst-2"


# ── SQLite: Query & Maintenance ──────────────────────────────────────────


class TestSqliteMaintenance:
    def test_is_locked(self, manager):
        assert manager.is_locked("backup") is False
        manager.acquire("backup")
        assert manager.is_locked("backup") is True

    def test_refresh_extends_expiry(self, conn, clock):
        remote = SqliteLockManager(conn, instance_id="inst-1", ttl_seconds=60, clock=clock, host="other-host")
        local = SqliteLockManager(conn, instance_id="inst-2", ttl_seconds=60, clock=clock)
        remote.acquire("backup")
        clock.advance(50)
        assert remote.refresh("backup") is True
        clock.advance(50)
        assert local.is_locked("backup") is True

    def test_cleanup_stale_locks(self, conn, clock):
        remote = SqliteLockManager(conn, instance_id="inst-1", ttl_seconds=60, clock=clock, host="other-host")
        local = SqliteLockManager(conn, instance_id="inst-2", ttl_seconds=60, clock=clock)
        remote.acquire("a")
        remote.acquire("b")
        local.acquire("c")
        clock.advance(120)
        assert local.cleanup_expired_locks() == 2
        assert [lock["name"] for lock in local.list_active_locks()] == ["c"]

    def test_list_active_locks(self, manager):
        manager.acquire("backup")
        locks = manager.list_active_locks()
        assert [lock["name"] for lock in locks] == ["backup"]
        assert locks[0]["locked_by"] == "inst-1"

    def test_force_release_all(self, manager):
        manager.acquire("a")
        manager.acquire("b")
        assert manager.force_release_all() == 2
        assert manager.is_locked("a") is False
