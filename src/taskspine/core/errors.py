"""
Structured error types for taskspine.

Every failure that crosses a public seam (scheduler call, storage call,
worker start) is a TaskSpineError subclass, so callers can tell a
duplicate task from a dead database without parsing messages:
- **category** routes the error (scheduling, storage, clock, ...)
- **retryable** is True only where a second attempt can succeed
  (storage backends), which is what the failover storage keys on
- **context** names the task, storage, policy or worker involved
- **cause** keeps the driver / OS exception a storage wrapped

Manifesto:
    Runner exceptions never become TaskSpineErrors: the worker records
    them as FailedTask entries.  Everything the scheduler, storages and
    orchestrator raise does.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      TaskSpineError                              │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  AlreadyScheduledError     TaskNotFoundError    InvalidTaskError │
        │  (SCHEDULING)              (SCHEDULING)         (VALIDATION)     │
        │                                                                  │
        │  InvalidConfigurationError NoPoliciesRegisteredError             │
        │  (CONFIG)                  (CONFIG)                              │
        │                                                                  │
        │  UndefinedRunnerError      LogicViolationError                   │
        │  (EXECUTION)               (INTERNAL)                            │
        │                                 │                                │
        │                            InvalidTransitionError                │
        │                                                                  │
        │  ClockDriftExceededError   StorageFailureError                   │
        │  (CLOCK)                   (STORAGE, retryable)                  │
        └─────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Raise generic Exception from scheduler or storage code
    ✅ DO: Use the matching TaskSpineError subclass

    ❌ DON'T: Swallow the original driver/OS exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    errors, exception-hierarchy, retry, failover,
    taskspine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Categories are grouped by their typical retry behavior:
    - **Infrastructure (usually transient):** STORAGE, CLOCK
    - **Domain errors:** SCHEDULING, EXECUTION, VALIDATION
    - **Configuration (never retryable):** CONFIG
    - **Internal errors:** INTERNAL, UNKNOWN
    """

    STORAGE = "STORAGE"           # Persistence backend failures
    CLOCK = "CLOCK"               # Clock synchronization failures

    SCHEDULING = "SCHEDULING"     # Duplicate or missing tasks
    EXECUTION = "EXECUTION"       # Worker/runner failures
    VALIDATION = "VALIDATION"     # Invalid task fields

    CONFIG = "CONFIG"             # Unknown policies, bad DSNs

    INTERNAL = "INTERNAL"         # Bugs, invalid state
    UNKNOWN = "UNKNOWN"           # Uncategorized errors


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Typed fields for the metadata that matters when a scheduling call
    fails; anything else goes in ``metadata``.

    Attributes:
        task_name: Name of the task involved
        storage: Storage backend or DSN involved
        policy: Schedule policy (execution mode) involved
        worker_id: Worker that observed the error
        metadata: Additional key-value pairs
    """

    task_name: str | None = None
    storage: str | None = None
    policy: str | None = None
    worker_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["task_name", "storage", "policy", "worker_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class TaskSpineError(Exception):
    """
    Base exception for all taskspine errors.

    All instances carry:
    - **category:** ErrorCategory enum for classification
    - **retryable:** Boolean indicating if operation can be retried
    - **context:** ErrorContext with structured metadata
    - **cause:** Optional underlying exception

    Examples:
        >>> error = TaskSpineError("Boom", category=ErrorCategory.STORAGE)
        >>> error.category
        <ErrorCategory.STORAGE: 'STORAGE'>
        >>> error.with_context(task_name="backup").context.task_name
        'backup'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> TaskSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise TaskNotFoundError("backup").with_context(storage="memory://")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# SCHEDULING ERRORS
# =============================================================================


class AlreadyScheduledError(TaskSpineError):
    """A task with the same name already exists in the storage."""

    default_category = ErrorCategory.SCHEDULING

    def __init__(self, task_name: str, message: str | None = None):
        self.task_name = task_name
        super().__init__(
            message or f'The task "{task_name}" has already been scheduled',
            context=ErrorContext(task_name=task_name),
        )


class TaskNotFoundError(TaskSpineError, KeyError):
    """No task with the given name exists."""

    default_category = ErrorCategory.SCHEDULING

    def __init__(self, task_name: str, message: str | None = None):
        self.task_name = task_name
        super().__init__(
            message or f'The task "{task_name}" cannot be found',
            context=ErrorContext(task_name=task_name),
        )


class InvalidTaskError(TaskSpineError, ValueError):
    """A task field holds a value outside its allowed domain."""

    default_category = ErrorCategory.VALIDATION


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class InvalidConfigurationError(TaskSpineError, ValueError):
    """Unknown policy/execution mode, malformed DSN or bad option."""

    default_category = ErrorCategory.CONFIG


class NoPoliciesRegisteredError(TaskSpineError, RuntimeError):
    """The policy orchestrator was asked to sort without any policy."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, message: str = "The tasks cannot be sorted as no policies have been defined"):
        super().__init__(message)


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class UndefinedRunnerError(TaskSpineError):
    """The worker was started without any registered runner."""

    default_category = ErrorCategory.EXECUTION

    def __init__(self, message: str = "No runner found"):
        super().__init__(message)


class LogicViolationError(TaskSpineError):
    """An operation was attempted from a state that does not allow it."""

    default_category = ErrorCategory.INTERNAL


class InvalidTransitionError(LogicViolationError):
    """Raised when an illegal task state transition is attempted.

    Transition validation is deliberately strict.  If a legitimate
    transition is blocked, add it to ``TASK_VALID_TRANSITIONS``.
    """

    def __init__(self, current: str, target: str, task_name: str | None = None) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid TaskState transition: {current} → {target}",
            context=ErrorContext(task_name=task_name),
        )


# =============================================================================
# INFRASTRUCTURE ERRORS
# =============================================================================


class ClockDriftExceededError(TaskSpineError, RuntimeError):
    """The scheduler clock drifted outside the accepted window."""

    default_category = ErrorCategory.CLOCK

    def __init__(self, drift_seconds: float, max_drift_seconds: float):
        self.drift_seconds = drift_seconds
        self.max_drift_seconds = max_drift_seconds
        super().__init__(
            "The scheduler is not synchronized with the current clock, "
            f"current drift: {drift_seconds:.6f}s, allowed: {max_drift_seconds:.6f}s"
        )


class StorageFailureError(TaskSpineError):
    """Opaque failure raised by a persistence backend."""

    default_category = ErrorCategory.STORAGE
    default_retryable = True


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, TaskSpineError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, TaskSpineError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "TaskSpineError",
    "AlreadyScheduledError",
    "TaskNotFoundError",
    "InvalidTaskError",
    "InvalidConfigurationError",
    "NoPoliciesRegisteredError",
    "UndefinedRunnerError",
    "LogicViolationError",
    "InvalidTransitionError",
    "ClockDriftExceededError",
    "StorageFailureError",
    "is_retryable",
    "categorize_error",
]
