"""
taskspine logging - structured logs for the scheduler, worker and CLI.

Manifesto:
    A worker left running under cron or systemd is only debuggable through
    what it wrote.  Every worker pass and every task attempt therefore logs
    as key/value events, with the worker id and the task name carried in
    contextvars instead of being repeated at each call site.

Architecture:
    ::

        configure_logging(level, json_format, service)
          │
          ▼
        structlog processors
          merge_contextvars        worker_id / task bound by LogContext
          add_log_level, add_logger_name
          TimeStamper(iso)
          _add_service             service=<name>
          _render_domain_objects   Task / Worker / FailedTask -> name
          JSONRenderer | ConsoleRenderer
          │
          ▼
        stdlib logging on stderr   (shared with storages and lock managers)

    stdout is left to command output, so ``taskspine list --json`` stays
    parseable whatever the log level.

Examples:
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> log = get_logger(__name__)
    >>> with LogContext(worker_id="worker-1", task="backup"):
    ...     log.info("task_executed", state="succeed")

Tags:
    logging, structlog, contextvars, taskspine

Doc-Types:
    api-reference
"""

from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_service = "taskspine"


def _add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", _service)
    return event_dict


def _render_domain_objects(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Log tasks and workers by name rather than by repr."""
    for key, value in event_dict.items():
        if key == "event":
            continue
        for attr in ("worker_id", "name"):
            named = getattr(value, attr, None)
            if isinstance(named, str) and not isinstance(value, (str, Enum)):
                event_dict[key] = named
                break
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "taskspine",
) -> None:
    """Configure structlog and the stdlib root logger.

    Safe to call more than once; each call replaces the previous handlers.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines when True, colored console output when False,
            JSON whenever stderr is not a terminal when None
        service: Value of the ``service`` field on every event
    """
    global _service
    _service = service
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_service,
        _render_domain_objects,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level, force=True)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


class LogContext:
    """Bind logging context for the duration of a ``with`` block.

    Keys already bound by an outer context are restored on exit, so a
    worker-level ``worker_id`` survives the nested per-task context.

    Example:
        with LogContext(task="backup"):
            log.info("task_executing")
    """

    def __init__(self, **context: Any):
        self._context = context
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._context)
        return self

    def __exit__(self, *exc_info: object) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


__all__ = ["configure_logging", "get_logger", "LogContext"]
