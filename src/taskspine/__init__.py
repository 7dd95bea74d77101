"""
taskspine - cron-driven task scheduler and worker runtime.

Register recurring or one-shot tasks with a :class:`Scheduler`, order
them with a schedule policy, and execute the due ones with a
:class:`Worker` that guarantees at most one concurrent execution per task
name and isolates every task failure.
"""

__version__ = "0.1.0"

from taskspine.core.clock import Clock, ManualClock, SystemClock
from taskspine.core.errors import (
    AlreadyScheduledError,
    ClockDriftExceededError,
    InvalidConfigurationError,
    LogicViolationError,
    StorageFailureError,
    TaskNotFoundError,
    TaskSpineError,
    UndefinedRunnerError,
)
from taskspine.core.scheduling import Scheduler, SchedulePolicyOrchestrator, default_policies
from taskspine.core.storage import InMemoryStorage, create_storage
from taskspine.core.tasks import (
    CallbackTask,
    CommandTask,
    HttpTask,
    MessengerTask,
    NotificationTask,
    NullTask,
    ShellTask,
    Task,
    TaskBuilder,
    TaskCollection,
    TaskState,
)
from taskspine.execution import Worker, default_runners

__all__ = [
    "__version__",
    "AlreadyScheduledError",
    "CallbackTask",
    "Clock",
    "ClockDriftExceededError",
    "CommandTask",
    "HttpTask",
    "InMemoryStorage",
    "InvalidConfigurationError",
    "LogicViolationError",
    "ManualClock",
    "MessengerTask",
    "NotificationTask",
    "NullTask",
    "SchedulePolicyOrchestrator",
    "Scheduler",
    "ShellTask",
    "StorageFailureError",
    "SystemClock",
    "Task",
    "TaskBuilder",
    "TaskCollection",
    "TaskNotFoundError",
    "TaskSpineError",
    "TaskState",
    "UndefinedRunnerError",
    "Worker",
    "create_storage",
    "default_policies",
]
