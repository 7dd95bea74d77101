"""Task domain models.

Defines the core data structures of the scheduler:
- Task: a mutable, name-identified unit of schedulable work, with one
  subclass per task kind (shell, command, http, callback, messenger,
  notification, null)
- TaskState / ExecutionState: lifecycle and outcome enums
- FailedTask: immutable record of a failed execution
- Output: what a runner returns

Task state changes go through :meth:`Task.pause`, :meth:`Task.resume`,
:meth:`Task.enable` and :meth:`Task.disable`, each validated against
``TASK_VALID_TRANSITIONS``.
"""

from __future__ import annotations

import importlib
from dataclasses import KW_ONLY, dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, ClassVar
from zoneinfo import ZoneInfo

from taskspine.core.cron import is_valid_expression, zone_key
from taskspine.core.errors import InvalidTaskError, InvalidTransitionError

MIN_PRIORITY = -1000
MAX_PRIORITY = 1000
MIN_NICE = -20
MAX_NICE = 19


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class TaskState(str, Enum):
    """Whether the worker may execute a task.

    Valid transition graph::

        UNDEFINED → ENABLED | PAUSED | DISABLED
        ENABLED   → PAUSED | DISABLED
        PAUSED    → ENABLED | DISABLED
        DISABLED  → ENABLED (explicit re-enable)
    """

    ENABLED = "enabled"
    PAUSED = "paused"
    DISABLED = "disabled"
    UNDEFINED = "undefined"


TASK_VALID_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    TaskState.UNDEFINED: frozenset({
        TaskState.ENABLED,
        TaskState.PAUSED,
        TaskState.DISABLED,
    }),
    TaskState.ENABLED: frozenset({
        TaskState.PAUSED,
        TaskState.DISABLED,
    }),
    TaskState.PAUSED: frozenset({
        TaskState.ENABLED,
        TaskState.DISABLED,
    }),
    TaskState.DISABLED: frozenset({
        TaskState.ENABLED,
    }),
}


def validate_task_transition(
    current: TaskState,
    target: TaskState,
    task_name: str | None = None,
) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal.

    Example:
        >>> validate_task_transition(TaskState.ENABLED, TaskState.PAUSED)
        >>> validate_task_transition(TaskState.PAUSED, TaskState.PAUSED)
        InvalidTransitionError: Invalid TaskState transition: paused → paused
    """
    allowed = TASK_VALID_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidTransitionError(current.value, target.value, task_name)


class ExecutionState(str, Enum):
    """Outcome of the most recent run attempt, overwritten on every run."""

    RUNNING = "running"
    SUCCEED = "succeed"
    ERRORED = "errored"
    DONE = "done"
    INCOMPLETE = "incomplete"
    TO_RETRY = "to_retry"


class TaskKind(str, Enum):
    """Closed set of task variants; runners are registered per kind."""

    SHELL = "shell"
    COMMAND = "command"
    HTTP = "http"
    CALLBACK = "callback"
    MESSENGER = "messenger"
    NOTIFICATION = "notification"
    NULL = "null"


_DATETIME_FIELDS = (
    "arrival_time",
    "scheduled_at",
    "execution_start_time",
    "execution_end_time",
    "last_execution",
)
_TIMEDELTA_FIELDS = ("execution_relative_deadline", "execution_absolute_deadline")


@dataclass(eq=False)
class Task:
    """A schedulable unit of work, identified by its name.

    Tasks are mutable records: the scheduler stamps ``scheduled_at`` and
    the timezone, the worker stamps execution times, the measured
    computation time and the execution state, and the batch policy ages
    ``priority``.  Equality is identity.

    Example:
        >>> task = ShellTask("backup", expression="0 3 * * *", command=["tar", "czf", "b.tgz", "data"])
        >>> task.pause()
        >>> task.state
        <TaskState.PAUSED: 'paused'>
    """

    kind: ClassVar[TaskKind] = TaskKind.NULL

    name: str
    _: KW_ONLY
    expression: str = "* * * * *"
    timezone: str | None = None
    description: str | None = None
    state: TaskState = TaskState.ENABLED
    execution_state: ExecutionState | None = None

    priority: int = 0
    nice: int | None = None
    max_duration: float | None = None
    execution_computation_time: float | None = None
    execution_relative_deadline: timedelta | None = None
    execution_absolute_deadline: timedelta | None = None
    execution_period: float | None = None
    execution_memory_usage: int | None = None

    arrival_time: datetime | None = None
    scheduled_at: datetime | None = None
    execution_start_time: datetime | None = None
    execution_end_time: datetime | None = None
    last_execution: datetime | None = None

    is_queued: bool = False
    is_single_run: bool = False
    is_tracked: bool = True
    must_run_in_background: bool = False
    is_output: bool = False
    tags: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidTaskError("A task must have a name")
        if not is_valid_expression(self.expression):
            raise InvalidTaskError(
                f"Invalid cron expression: {self.expression!r}"
            ).with_context(task_name=self.name)
        if not MIN_PRIORITY <= self.priority <= MAX_PRIORITY:
            raise InvalidTaskError(
                f"The priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}, got {self.priority}"
            ).with_context(task_name=self.name)
        if self.nice is not None and not MIN_NICE <= self.nice <= MAX_NICE:
            raise InvalidTaskError(
                f"The nice value must be between {MIN_NICE} and {MAX_NICE}, got {self.nice}"
            ).with_context(task_name=self.name)
        if self.timezone is not None:
            try:
                self.timezone = zone_key(self.timezone)
            except InvalidTaskError as e:
                raise e.with_context(task_name=self.name)
        self._normalize_datetimes()
        self.state = TaskState(self.state)
        if self.execution_state is not None:
            self.execution_state = ExecutionState(self.execution_state)
        self.tags = set(self.tags)

    def _normalize_datetimes(self) -> None:
        """Parse ISO strings and read naive values in the task timezone."""
        zone = ZoneInfo(self.timezone) if self.timezone else UTC
        for key in _DATETIME_FIELDS:
            value = getattr(self, key)
            if value is None:
                continue
            if isinstance(value, str):
                try:
                    value = datetime.fromisoformat(value)
                except ValueError as e:
                    raise InvalidTaskError(
                        f"Invalid {key}: {value!r}", cause=e
                    ).with_context(task_name=self.name) from e
            if not isinstance(value, datetime):
                raise InvalidTaskError(
                    f"{key} must be a datetime, got {type(value).__name__}"
                ).with_context(task_name=self.name)
            if value.tzinfo is None:
                value = value.replace(tzinfo=zone)
            setattr(self, key, value)

    # === State transitions ===

    def _transition(self, target: TaskState) -> None:
        validate_task_transition(self.state, target, self.name)
        self.state = target

    def pause(self) -> None:
        self._transition(TaskState.PAUSED)

    def resume(self) -> None:
        self._transition(TaskState.ENABLED)

    def enable(self) -> None:
        self._transition(TaskState.ENABLED)

    def disable(self) -> None:
        self._transition(TaskState.DISABLED)

    @property
    def is_executable(self) -> bool:
        return self.state == TaskState.ENABLED

    def add_tag(self, tag: str) -> None:
        self.tags.add(tag)

    # === Persistence format ===

    def _extra_fields(self) -> dict[str, Any]:
        """Kind-specific fields, overridden by subclasses."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict for storage backends."""
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "name": self.name,
            "expression": self.expression,
            "timezone": self.timezone,
            "description": self.description,
            "state": self.state.value,
            "execution_state": self.execution_state.value if self.execution_state else None,
            "priority": self.priority,
            "nice": self.nice,
            "max_duration": self.max_duration,
            "execution_computation_time": self.execution_computation_time,
            "execution_period": self.execution_period,
            "execution_memory_usage": self.execution_memory_usage,
            "is_queued": self.is_queued,
            "is_single_run": self.is_single_run,
            "is_tracked": self.is_tracked,
            "must_run_in_background": self.must_run_in_background,
            "is_output": self.is_output,
            "tags": sorted(self.tags),
        }
        for key in _DATETIME_FIELDS:
            value = getattr(self, key)
            data[key] = value.isoformat() if value else None
        for key in _TIMEDELTA_FIELDS:
            value = getattr(self, key)
            data[key] = value.total_seconds() if value is not None else None
        data.update(self._extra_fields())
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        """Rebuild a task (of the right kind) from :meth:`to_dict` output."""
        values = dict(data)
        kind = TaskKind(values.pop("kind", TaskKind.NULL.value))
        task_cls = TASK_TYPES[kind]
        for key in _DATETIME_FIELDS:
            if values.get(key):
                values[key] = datetime.fromisoformat(values[key])
        for key in _TIMEDELTA_FIELDS:
            if values.get(key) is not None:
                values[key] = timedelta(seconds=values[key])
        if "tags" in values:
            values["tags"] = set(values["tags"] or ())
        return task_cls(**values)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(name={self.name!r}, expression={self.expression!r}, "
            f"state={self.state.value}, priority={self.priority})"
        )


@dataclass(eq=False, repr=False)
class NullTask(Task):
    """Task with no side effect, useful for tests and placeholders."""

    kind: ClassVar[TaskKind] = TaskKind.NULL


@dataclass(eq=False, repr=False, kw_only=True)
class ShellTask(Task):
    """Run an argv list as a sub-process."""

    kind: ClassVar[TaskKind] = TaskKind.SHELL

    command: list[str] = field(default_factory=list)
    cwd: str | None = None
    environment: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None

    def _extra_fields(self) -> dict[str, Any]:
        return {
            "command": list(self.command),
            "cwd": self.cwd,
            "environment": dict(self.environment),
            "timeout": self.timeout,
        }


@dataclass(eq=False, repr=False, kw_only=True)
class CommandTask(Task):
    """Run a Python console command (``python -m <command>``) as a sub-process."""

    kind: ClassVar[TaskKind] = TaskKind.COMMAND

    command: str = ""
    arguments: list[str] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)

    def _extra_fields(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "arguments": list(self.arguments),
            "options": dict(self.options),
        }


@dataclass(eq=False, repr=False, kw_only=True)
class HttpTask(Task):
    """Issue an HTTP request."""

    kind: ClassVar[TaskKind] = TaskKind.HTTP

    url: str = ""
    method: str = "GET"
    client_options: dict[str, Any] = field(default_factory=dict)

    def _extra_fields(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "method": self.method,
            "client_options": dict(self.client_options),
        }


@dataclass(eq=False, repr=False, kw_only=True)
class CallbackTask(Task):
    """Call a Python callable, given directly or as ``module:qualname``."""

    kind: ClassVar[TaskKind] = TaskKind.CALLBACK

    callback: Any = None
    arguments: list[Any] = field(default_factory=list)

    def resolve_callback(self) -> Any:
        """Return the callable, importing it when stored as a dotted path."""
        if not isinstance(self.callback, str):
            return self.callback
        module_name, _, qualname = self.callback.partition(":")
        target: Any = importlib.import_module(module_name)
        for part in qualname.split("."):
            target = getattr(target, part)
        return target

    def _extra_fields(self) -> dict[str, Any]:
        callback = self.callback
        if callable(callback):
            callback = f"{callback.__module__}:{callback.__qualname__}"
        return {"callback": callback, "arguments": list(self.arguments)}


@dataclass(eq=False, repr=False, kw_only=True)
class MessengerTask(Task):
    """Dispatch a message to a message bus."""

    kind: ClassVar[TaskKind] = TaskKind.MESSENGER

    message: Any = None

    def _extra_fields(self) -> dict[str, Any]:
        return {"message": self.message}


@dataclass(eq=False, repr=False, kw_only=True)
class NotificationTask(Task):
    """Send a notification to a list of recipients."""

    kind: ClassVar[TaskKind] = TaskKind.NOTIFICATION

    notification: Any = None
    recipients: list[str] = field(default_factory=list)

    def _extra_fields(self) -> dict[str, Any]:
        return {"notification": self.notification, "recipients": list(self.recipients)}


TASK_TYPES: dict[TaskKind, type[Task]] = {
    TaskKind.NULL: NullTask,
    TaskKind.SHELL: ShellTask,
    TaskKind.COMMAND: CommandTask,
    TaskKind.HTTP: HttpTask,
    TaskKind.CALLBACK: CallbackTask,
    TaskKind.MESSENGER: MessengerTask,
    TaskKind.NOTIFICATION: NotificationTask,
}


@dataclass(frozen=True)
class FailedTask:
    """Immutable record pairing a task with the reason its run failed."""

    task: Task
    reason: str
    failed_at: datetime = field(default_factory=utcnow)

    @property
    def name(self) -> str:
        return f"{self.task.name}.failed"


@dataclass
class Output:
    """Result of a runner invocation.

    Attributes:
        task: The task that produced the output
        content: Captured output (only kept when ``task.is_output``)
        is_error: Whether the run failed without raising
        state: Explicit execution state; the worker falls back to
            SUCCEED / ERRORED based on ``is_error``
    """

    task: Task
    content: str | None = None
    is_error: bool = False
    state: ExecutionState | None = None

    @property
    def execution_state(self) -> ExecutionState:
        if self.state is not None:
            return self.state
        return ExecutionState.ERRORED if self.is_error else ExecutionState.SUCCEED


__all__ = [
    "MIN_PRIORITY",
    "MAX_PRIORITY",
    "MIN_NICE",
    "MAX_NICE",
    "TaskState",
    "ExecutionState",
    "TaskKind",
    "TASK_VALID_TRANSITIONS",
    "validate_task_transition",
    "Task",
    "NullTask",
    "ShellTask",
    "CommandTask",
    "HttpTask",
    "CallbackTask",
    "MessengerTask",
    "NotificationTask",
    "TASK_TYPES",
    "FailedTask",
    "Output",
]
