"""Task execution: the worker loop, its runners and its subscribers."""

from taskspine.execution.runners import Runner, RunnerRegistry, default_runners
from taskspine.execution.subscribers import (
    StopWorkerOnFailureLimitSubscriber,
    StopWorkerOnTaskLimitSubscriber,
    StopWorkerOnTimeLimitSubscriber,
    TaskEventList,
    TaskExecutionSubscriber,
    TaskLoggerSubscriber,
)
from taskspine.execution.worker import Worker

__all__ = [
    "Runner",
    "RunnerRegistry",
    "StopWorkerOnFailureLimitSubscriber",
    "StopWorkerOnTaskLimitSubscriber",
    "StopWorkerOnTimeLimitSubscriber",
    "TaskEventList",
    "TaskExecutionSubscriber",
    "TaskLoggerSubscriber",
    "Worker",
    "default_runners",
]
