"""Explicit wiring of schedulers and workers from settings.

Every collaborator is built here and passed by constructor; nothing is
looked up from a global container.  Tests and embedding applications can
call the individual builders and swap any piece.

Example:
    >>> components = build_components(get_settings())
    >>> components.scheduler.schedule(ShellTask("backup", command=["backup.sh"]))
    >>> components.worker.execute()
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from taskspine.core.clock import Clock, SystemClock
from taskspine.core.errors import InvalidConfigurationError
from taskspine.core.events import EventDispatcher
from taskspine.core.events.memory import InMemoryEventDispatcher
from taskspine.core.messaging import MessageBus
from taskspine.core.scheduling.lock_manager import InMemoryLockManager, LockManager, SqliteLockManager
from taskspine.core.scheduling.orchestrator import SchedulePolicyOrchestrator
from taskspine.core.scheduling.policies import default_policies
from taskspine.core.scheduling.scheduler import Scheduler
from taskspine.core.settings import TaskSpineSettings
from taskspine.core.storage.dsn import Dsn, create_storage, sqlite_database
from taskspine.core.storage.protocol import Storage
from taskspine.execution.runners import RunnerRegistry, default_runners
from taskspine.execution.subscribers import (
    StopWorkerOnFailureLimitSubscriber,
    StopWorkerOnTaskLimitSubscriber,
    StopWorkerOnTimeLimitSubscriber,
    TaskExecutionSubscriber,
)
from taskspine.execution.worker import Worker


@dataclass
class Components:
    """Everything a scheduler process needs, wired together."""

    settings: TaskSpineSettings
    clock: Clock
    dispatcher: EventDispatcher
    storage: Storage
    scheduler: Scheduler
    lock_manager: LockManager
    runners: RunnerRegistry
    worker: Worker


def build_lock_manager(settings: TaskSpineSettings, clock: Clock | None = None) -> LockManager:
    """Lock manager for ``settings.lock_dsn`` (``memory://`` or ``sqlite:///path``)."""
    dsn = Dsn.from_string(settings.lock_dsn)
    if dsn.scheme == "memory":
        return InMemoryLockManager()
    if dsn.scheme == "sqlite":
        database = sqlite_database(dsn)
        conn = sqlite3.connect(database, check_same_thread=False)
        return SqliteLockManager(conn, ttl_seconds=settings.lock_ttl_seconds, clock=clock)
    raise InvalidConfigurationError(
        f'No lock manager supports the DSN "{settings.lock_dsn}"'
    ).with_context(storage=settings.lock_dsn)


def build_scheduler(
    settings: TaskSpineSettings,
    clock: Clock | None = None,
    dispatcher: EventDispatcher | None = None,
    bus: MessageBus | None = None,
) -> Scheduler:
    clock = clock or SystemClock()
    orchestrator = SchedulePolicyOrchestrator(default_policies(clock))
    storage = create_storage(settings.storage_dsn, orchestrator)
    return Scheduler(
        storage,
        timezone=settings.timezone,
        clock=clock,
        dispatcher=dispatcher,
        bus=bus,
        max_clock_drift_seconds=settings.max_clock_drift_seconds,
    )


def wire_subscribers(
    settings: TaskSpineSettings,
    dispatcher: EventDispatcher,
    scheduler: Scheduler,
    clock: Clock,
    task_limit: int | None = None,
    time_limit_seconds: int | None = None,
    failure_limit: int | None = None,
) -> None:
    """Subscribe the bookkeeping subscriber and the configured stop conditions.

    Explicit limits override the ones from *settings*.
    """
    TaskExecutionSubscriber(scheduler).subscribe(dispatcher)

    task_limit = task_limit or settings.task_limit
    time_limit_seconds = time_limit_seconds or settings.time_limit_seconds
    failure_limit = failure_limit or settings.failure_limit
    if task_limit:
        StopWorkerOnTaskLimitSubscriber(task_limit).subscribe(dispatcher)
    if time_limit_seconds:
        StopWorkerOnTimeLimitSubscriber(time_limit_seconds, clock).subscribe(dispatcher)
    if failure_limit:
        StopWorkerOnFailureLimitSubscriber(failure_limit).subscribe(dispatcher)


def build_components(
    settings: TaskSpineSettings,
    clock: Clock | None = None,
    bus: MessageBus | None = None,
    runners: RunnerRegistry | None = None,
    task_limit: int | None = None,
    time_limit_seconds: int | None = None,
    failure_limit: int | None = None,
) -> Components:
    clock = clock or SystemClock()
    dispatcher = InMemoryEventDispatcher()
    scheduler = build_scheduler(settings, clock, dispatcher, bus)
    lock_manager = build_lock_manager(settings, clock)
    runners = runners or default_runners(bus=bus)
    worker = Worker(scheduler, runners, lock_manager, clock=clock, dispatcher=dispatcher)
    wire_subscribers(
        settings,
        dispatcher,
        scheduler,
        clock,
        task_limit=task_limit,
        time_limit_seconds=time_limit_seconds,
        failure_limit=failure_limit,
    )
    return Components(
        settings=settings,
        clock=clock,
        dispatcher=dispatcher,
        storage=scheduler.storage,
        scheduler=scheduler,
        lock_manager=lock_manager,
        runners=runners,
        worker=worker,
    )


__all__ = [
    "Components",
    "build_components",
    "build_lock_manager",
    "build_scheduler",
    "wire_subscribers",
]
