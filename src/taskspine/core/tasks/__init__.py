"""Task entities: models, collection, builder and execution tracker."""

from taskspine.core.tasks.builder import TaskBuilder
from taskspine.core.tasks.collection import TaskCollection
from taskspine.core.tasks.models import (
    CallbackTask,
    CommandTask,
    ExecutionState,
    FailedTask,
    HttpTask,
    MessengerTask,
    NotificationTask,
    NullTask,
    Output,
    ShellTask,
    Task,
    TaskKind,
    TaskState,
)
from taskspine.core.tasks.tracker import TaskExecutionTracker

__all__ = [
    "CallbackTask",
    "CommandTask",
    "ExecutionState",
    "FailedTask",
    "HttpTask",
    "MessengerTask",
    "NotificationTask",
    "NullTask",
    "Output",
    "ShellTask",
    "Task",
    "TaskBuilder",
    "TaskCollection",
    "TaskExecutionTracker",
    "TaskKind",
    "TaskState",
]
