"""Tests for taskspine.execution.worker — the execution loop."""

import pytest

from taskspine.core.errors import LogicViolationError, UndefinedRunnerError
from taskspine.core.events import EventType
from taskspine.core.scheduling.lock_manager import InMemoryLockManager
from taskspine.core.settings import WorkerOptions
from taskspine.core.tasks.models import (
    CallbackTask,
    ExecutionState,
    NullTask,
    Output,
    ShellTask,
    TaskKind,
    TaskState,
)
from taskspine.execution.runners import NullTaskRunner, RunnerRegistry
from taskspine.execution.subscribers import (
    StopWorkerOnFailureLimitSubscriber,
    StopWorkerOnTaskLimitSubscriber,
    StopWorkerOnTimeLimitSubscriber,
    TaskExecutionSubscriber,
)
from taskspine.execution.worker import Worker


class FailingRunner:
    def supports(self, task):
        return True

    def run(self, task):
        raise RuntimeError("boom")


class ErrorOutputRunner:
    def supports(self, task):
        return True

    def run(self, task):
        return Output(task, "exit code 2", is_error=True)


# ── Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture
def runners():
    return RunnerRegistry({TaskKind.NULL: NullTaskRunner()})


@pytest.fixture
def locks():
    return InMemoryLockManager()


@pytest.fixture
def worker(scheduler, runners, locks, clock, dispatcher):
    return Worker(scheduler, runners, locks, clock=clock, dispatcher=dispatcher, worker_id="worker-test")


def stop_after(dispatcher, tasks):
    StopWorkerOnTaskLimitSubscriber(tasks).subscribe(dispatcher)


# ── Execution ────────────────────────────────────────────────────────────


class TestExecution:
    def test_executes_given_task(self, worker, dispatcher, clock):
        task = NullTask("a")
        stop_after(dispatcher, 1)

        worker.execute(task)

        assert task.execution_state == ExecutionState.SUCCEED
        assert task.last_execution == clock.now()
        assert task.execution_start_time == clock.now()
        assert task.execution_computation_time == 0
        assert worker.get_failed_tasks() == []

    def test_event_sequence(self, worker, dispatcher):
        stop_after(dispatcher, 1)

        worker.execute(NullTask("a"))

        assert dispatcher.types() == [
            "worker.started",
            "worker.running",
            "worker.running",
            "task.executing",
            "task.executed",
            "worker.running",
            "worker.stopped",
        ]
        running = [event for event in dispatcher.events if event.matches(EventType.WORKER_RUNNING)]
        assert [event.payload["idle"] for event in running] == [False, False, True]
        assert running[1].task.name == "a"
        assert all(event.worker is worker for event in dispatcher.events)

    def test_task_limit_stops_after_n_tasks(self, worker, dispatcher):
        tasks = [NullTask("a"), NullTask("b"), NullTask("c")]
        stop_after(dispatcher, 2)

        worker.execute(*tasks)

        assert [task.execution_state for task in tasks] == [
            ExecutionState.SUCCEED,
            ExecutionState.SUCCEED,
            None,
        ]

    def test_runs_due_tasks_and_sleeps_to_next_minute(self, worker, scheduler, dispatcher, clock):
        scheduler.schedule(NullTask("minutely"))
        stop_after(dispatcher, 2)

        worker.execute()

        # 60s to the minute boundary plus the default 1s delay
        assert clock.sleeps == [61]
        executed = [event for event in dispatcher.events if event.matches(EventType.TASK_EXECUTED)]
        assert len(executed) == 2

    def test_sleep_duration_delay_option(self, worker, scheduler, dispatcher, clock):
        scheduler.schedule(NullTask("minutely"))
        stop_after(dispatcher, 2)

        worker.execute(options=WorkerOptions(sleep_duration_delay=0))

        assert clock.sleeps == [60]

    def test_error_output_is_not_a_failure(self, scheduler, clock, dispatcher):
        worker = Worker(scheduler, RunnerRegistry({TaskKind.NULL: ErrorOutputRunner()}), clock=clock, dispatcher=dispatcher)
        task = NullTask("a")
        stop_after(dispatcher, 1)

        worker.execute(task)

        assert task.execution_state == ExecutionState.ERRORED
        assert worker.get_failed_tasks() == []
        executed = [event for event in dispatcher.events if event.matches(EventType.TASK_EXECUTED)]
        assert executed[0].payload["output"].content == "exit code 2"


# ── Failure isolation ────────────────────────────────────────────────────


class TestFailures:
    @pytest.fixture
    def failing_worker(self, scheduler, locks, clock, dispatcher):
        registry = RunnerRegistry({TaskKind.NULL: FailingRunner()})
        return Worker(scheduler, registry, locks, clock=clock, dispatcher=dispatcher)

    def test_failing_runner_recorded_once(self, failing_worker, dispatcher, clock, locks):
        StopWorkerOnFailureLimitSubscriber(1).subscribe(dispatcher)
        task = NullTask("a")

        failing_worker.execute(task)

        failed = failing_worker.get_failed_tasks()
        assert len(failed) == 1
        assert failed[0].task is task
        assert failed[0].reason == "boom"
        assert failed[0].failed_at == clock.now()
        assert task.execution_state == ExecutionState.ERRORED
        assert locks.is_locked("a") is False
        assert failing_worker.is_running() is False

    def test_failure_event(self, failing_worker, dispatcher):
        StopWorkerOnFailureLimitSubscriber(1).subscribe(dispatcher)

        failing_worker.execute(NullTask("a"))

        failures = [event for event in dispatcher.events if event.matches(EventType.TASK_FAILED)]
        assert len(failures) == 1
        assert failures[0].payload["failed_task"].name == "a.failed"
        assert "task.executed" not in dispatcher.types()

    def test_next_task_runs_after_failure(self, scheduler, clock, dispatcher):
        registry = RunnerRegistry({TaskKind.NULL: NullTaskRunner(), TaskKind.CALLBACK: FailingRunner()})
        worker = Worker(scheduler, registry, clock=clock, dispatcher=dispatcher)
        stop_after(dispatcher, 2)

        broken = CallbackTask("broken", callback=print)
        healthy = NullTask("healthy")
        worker.execute(broken, healthy)

        assert broken.execution_state == ExecutionState.ERRORED
        assert healthy.execution_state == ExecutionState.SUCCEED

    def test_remove_failed_task(self, failing_worker, dispatcher):
        StopWorkerOnFailureLimitSubscriber(1).subscribe(dispatcher)
        failing_worker.execute(NullTask("a"))

        failing_worker.remove_failed_task("a")

        assert failing_worker.get_failed_tasks() == []


# ── Task state & runners ─────────────────────────────────────────────────


class TestGuards:
    def test_no_runners(self, scheduler, clock):
        worker = Worker(scheduler, RunnerRegistry(), clock=clock)
        with pytest.raises(UndefinedRunnerError):
            worker.execute(NullTask("a"))

    def test_undefined_state(self, worker):
        with pytest.raises(LogicViolationError, match="must be defined"):
            worker.execute(NullTask("a", state=TaskState.UNDEFINED))

    def test_paused_task_skipped(self, worker, dispatcher):
        paused = NullTask("paused")
        paused.pause()
        other = NullTask("other")
        stop_after(dispatcher, 1)

        worker.execute(paused, other)

        assert paused.last_execution is None
        assert other.execution_state == ExecutionState.SUCCEED

    def test_task_without_runner_skipped(self, worker, dispatcher, clock):
        StopWorkerOnTimeLimitSubscriber(30, clock).subscribe(dispatcher)
        task = ShellTask("shell", command=["true"])

        worker.execute(task)

        assert task.last_execution is None
        assert "task.executing" not in dispatcher.types()

    def test_locked_task_skipped(self, worker, locks, dispatcher, clock):
        locks.acquire("a")
        StopWorkerOnTimeLimitSubscriber(30, clock).subscribe(dispatcher)
        task = NullTask("a")

        worker.execute(task)

        assert task.last_execution is None
        assert locks.is_locked("a") is True
        assert clock.sleeps == [61]


# ── Single run & bookkeeping ─────────────────────────────────────────────


class TestSingleRun:
    def test_single_run_task_unscheduled(self, worker, scheduler, dispatcher):
        TaskExecutionSubscriber(scheduler).subscribe(dispatcher)
        stop_after(dispatcher, 1)
        scheduler.schedule(NullTask("once", is_single_run=True))

        worker.execute()

        assert "once" not in scheduler.get_tasks()
        assert "task.single_run_executed" in dispatcher.types()

    def test_recurring_task_written_back(self, worker, scheduler, dispatcher, clock):
        TaskExecutionSubscriber(scheduler).subscribe(dispatcher)
        stop_after(dispatcher, 1)
        scheduler.schedule(NullTask("recurring"))

        worker.execute()

        stored = scheduler.get_tasks().get("recurring")
        assert stored.last_execution == clock.now()
        assert stored.execution_state == ExecutionState.SUCCEED


# ── Control ──────────────────────────────────────────────────────────────


class TestControl:
    def test_stop_flag(self, worker):
        assert worker.should_stop is False
        worker.stop()
        assert worker.should_stop is True

    def test_stopped_worker_runs_nothing(self, worker, dispatcher):
        worker.stop()
        task = NullTask("a")

        worker.execute(task)

        assert task.last_execution is None
        assert dispatcher.types() == ["worker.started", "worker.stopped"]

    def test_restart_resets_state(self, scheduler, clock, dispatcher):
        worker = Worker(scheduler, RunnerRegistry({TaskKind.NULL: FailingRunner()}), clock=clock, dispatcher=dispatcher)
        StopWorkerOnFailureLimitSubscriber(1).subscribe(dispatcher)
        worker.execute(NullTask("a"))

        worker.restart()

        assert worker.should_stop is False
        assert worker.get_failed_tasks() == []
        assert dispatcher.types()[-1] == "worker.restarted"
