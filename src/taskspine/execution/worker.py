"""Worker - the task execution loop.

Manifesto:
    A worker runs every due task exactly once per pass, never runs a
    task that another worker is running, and never lets one failing task
    take the loop down.  Everything else (how many tasks to consume, how
    long to run, what to do with single-run tasks) is decided by event
    subscribers, not by the loop.

Architecture:
    ::

        execute(*tasks)
          │  no runners registered ──► UndefinedRunnerError
          ▼
        worker.started
          │
          ├─► while not stopped:
          │     due = tasks (first pass) or scheduler.get_due_tasks()
          │     for task in due:
          │        state UNDEFINED ──► LogicViolationError
          │        state PAUSED/DISABLED ──► skip
          │        worker.running
          │        runner = registry.for_task(task)   (none ──► skip)
          │        single run ──► task.single_run_executed
          │        lock.acquire(task.name)            (held ──► skip)
          │          worker.running(task) ─► task.executing ─► runner.run
          │          ─► task.executed(output)
          │          except ──► FailedTask + task.failed
          │          finally ──► lock.release, worker.running(idle)
          │        stopped? ──► break
          │     worker.running(idle)
          │     sleep until next minute + sleep_duration_delay
          ▼
        worker.stopped

Guardrails:
    ❌ DON'T: Re-enter execute() after sleeping (unbounded recursion)
    ✅ DO: Loop with while and check the stop flag

    ❌ DON'T: Let a runner exception escape execute()
    ✅ DO: Record it as a FailedTask and emit task.failed

    ❌ DON'T: Interrupt a running runner on stop()
    ✅ DO: Check the stop flag between tasks and between passes

Tags:
    taskspine, execution, worker, locks, fault-isolation, events

Doc-Types:
    api-reference, architecture-diagram
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import timedelta

from taskspine.core.clock import Clock, SystemClock
from taskspine.core.errors import LogicViolationError, UndefinedRunnerError
from taskspine.core.events import Event, EventDispatcher, EventType
from taskspine.core.logging import LogContext, get_logger
from taskspine.core.scheduling.lock_manager import InMemoryLockManager, LockManager
from taskspine.core.scheduling.scheduler import Scheduler
from taskspine.core.settings import WorkerOptions
from taskspine.core.tasks.models import ExecutionState, FailedTask, Output, Task, TaskState
from taskspine.core.tasks.tracker import TaskExecutionTracker
from taskspine.execution.runners import Runner, RunnerRegistry

log = get_logger(__name__)


class Worker:
    """Executes due tasks until stopped.

    Example:
        >>> worker = Worker(scheduler, default_runners(), InMemoryLockManager())
        >>> StopWorkerOnTaskLimitSubscriber(10).subscribe(dispatcher)
        >>> worker.execute()
    """

    def __init__(
        self,
        scheduler: Scheduler,
        runners: RunnerRegistry,
        lock_manager: LockManager | None = None,
        clock: Clock | None = None,
        dispatcher: EventDispatcher | None = None,
        tracker: TaskExecutionTracker | None = None,
        worker_id: str | None = None,
    ) -> None:
        """Initialize worker.

        Args:
            scheduler: Source of due tasks
            runners: Task kind → runner lookup table
            lock_manager: Per-task mutual exclusion (process-local by default)
            clock: Time source for timestamps and sleeping
            dispatcher: Event dispatcher for lifecycle events (optional)
            tracker: Elapsed-time tracker (built on *clock* by default)
            worker_id: Identifier used in logs
        """
        self.scheduler = scheduler
        self.runners = runners
        self.lock_manager = lock_manager or InMemoryLockManager()
        self.clock = clock or SystemClock()
        self.dispatcher = dispatcher
        self.tracker = tracker or TaskExecutionTracker(self.clock)
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        self.options = WorkerOptions()

        self._failed_tasks: list[FailedTask] = []
        self._running = False
        self._should_stop = False

    # === Loop ===

    def execute(self, *tasks: Task, options: WorkerOptions | None = None) -> None:
        """Run passes over the due tasks until :meth:`stop` is called.

        Tasks given explicitly are used for the first pass only; later
        passes ask the scheduler for the tasks due at that moment.

        Raises:
            UndefinedRunnerError: If no runner is registered.
            LogicViolationError: If a task in UNDEFINED state is due.
        """
        if len(self.runners) == 0:
            raise UndefinedRunnerError()

        self.options = options or WorkerOptions()
        supplied: Iterable[Task] | None = list(tasks) or None

        with LogContext(worker_id=self.worker_id):
            log.info("worker_started")
            self._dispatch(EventType.WORKER_STARTED)

            while not self._should_stop:
                due = supplied if supplied is not None else self.scheduler.get_due_tasks()
                supplied = None

                for task in due:
                    if not self._check_task_state(task):
                        continue

                    self._dispatch(EventType.WORKER_RUNNING, idle=False)

                    runner = self.runners.for_task(task)
                    if runner is None:
                        log.debug("runner_missing", task=task.name, kind=task.kind.value)
                        continue

                    self._handle_single_run_task(task)
                    self._run_locked(runner, task)

                    if self._should_stop:
                        break

                if self._should_stop:
                    break

                self._dispatch(EventType.WORKER_RUNNING, idle=True)
                if self._should_stop:
                    break
                self.clock.sleep(self._sleep_duration())

            log.info("worker_stopped", failed_tasks=len(self._failed_tasks))
            self._dispatch(EventType.WORKER_STOPPED)

    def _check_task_state(self, task: Task) -> bool:
        if task.state == TaskState.UNDEFINED:
            raise LogicViolationError(
                "The task state must be defined in order to be executed"
            ).with_context(task_name=task.name)

        if task.state in (TaskState.PAUSED, TaskState.DISABLED):
            log.info("task_skipped", task=task.name, state=task.state.value)
            return False

        return True

    def _handle_single_run_task(self, task: Task) -> None:
        if not task.is_single_run:
            return
        self._dispatch(EventType.TASK_SINGLE_RUN_EXECUTED, task=task)

    def _run_locked(self, runner: Runner, task: Task) -> None:
        acquired = False
        try:
            acquired = self.lock_manager.acquire(task.name)
            if not acquired or self._running:
                log.debug("task_locked", task=task.name)
                return

            self._running = True
            self._dispatch(EventType.WORKER_RUNNING, idle=False, task=task)
            with LogContext(task=task.name):
                self._handle_task(runner, task)
        except Exception as e:
            failed_task = FailedTask(task, str(e), failed_at=self.clock.now())
            task.execution_state = ExecutionState.ERRORED
            self._failed_tasks.append(failed_task)
            log.warning("task_failed", task=task.name, reason=failed_task.reason)
            self._dispatch(EventType.TASK_FAILED, task=task, failed_task=failed_task)
        finally:
            if acquired:
                self.lock_manager.release(task.name)
            self._running = False
            self._dispatch(EventType.WORKER_RUNNING, idle=True)

    def _handle_task(self, runner: Runner, task: Task) -> None:
        self._dispatch(EventType.TASK_EXECUTING, task=task)

        task.arrival_time = self.clock.now()
        task.execution_start_time = self.clock.now()
        task.execution_state = ExecutionState.RUNNING
        self.tracker.start_tracking(task)
        try:
            output: Output = runner.run(task)
        finally:
            self.tracker.end_tracking(task)
        task.execution_end_time = self.clock.now()
        task.last_execution = self.clock.now()
        task.execution_state = output.execution_state

        log.info(
            "task_executed",
            state=task.execution_state.value,
            duration=task.execution_computation_time,
        )
        self._dispatch(EventType.TASK_EXECUTED, task=task, output=output)

    def _sleep_duration(self) -> float:
        now = self.clock.now(self.scheduler.get_timezone())
        next_minute = (now + timedelta(minutes=1)).replace(second=0, microsecond=0)
        return (next_minute - now).total_seconds() + self.options.sleep_duration_delay

    # === Control ===

    def stop(self) -> None:
        """Request a cooperative stop, honored between tasks and passes."""
        self._should_stop = True

    def restart(self) -> None:
        self.stop()
        self._running = False
        self._failed_tasks = []
        self._should_stop = False

        log.info("worker_restarted", worker_id=self.worker_id)
        self._dispatch(EventType.WORKER_RESTARTED)

    def is_running(self) -> bool:
        return self._running

    @property
    def should_stop(self) -> bool:
        return self._should_stop

    def get_failed_tasks(self) -> list[FailedTask]:
        return list(self._failed_tasks)

    def remove_failed_task(self, name: str) -> None:
        """Drop the failed-task records of the task called *name*."""
        self._failed_tasks = [failed for failed in self._failed_tasks if failed.task.name != name]

    def _dispatch(self, event_type: EventType, **payload: object) -> None:
        if self.dispatcher is None:
            return
        self.dispatcher.dispatch(
            Event(event_type=event_type, source="worker", payload={"worker": self, **payload})
        )


__all__ = ["Worker"]
