"""Build tasks from plain option mappings (config files, CLI, storage)."""

from __future__ import annotations

import dataclasses
import logging
from datetime import timedelta
from typing import Any

from taskspine.core.errors import InvalidConfigurationError
from taskspine.core.tasks.models import TASK_TYPES, Task, TaskKind

logger = logging.getLogger(__name__)

# Alternate option names accepted for kind-specific fields
_ALIASES = {
    "environment_variables": "environment",
}
_TIMEDELTA_OPTIONS = ("execution_relative_deadline", "execution_absolute_deadline")


class TaskBuilder:
    """Create a :class:`Task` of the right kind from an options dict.

    The ``type`` key selects the variant (``shell``, ``command``, ``http``,
    ``callback``, ``messenger``, ``notification``, ``null``).  Options that
    do not name a field of that variant are ignored.

    Example:
        >>> TaskBuilder().build({"type": "shell", "name": "backup", "command": ["ls"]})
        ShellTask(name='backup', expression='* * * * *', state=enabled, priority=0)
    """

    def build(self, options: dict[str, Any]) -> Task:
        kind_name = options.get("type")
        if kind_name is None:
            raise InvalidConfigurationError("The task cannot be created as no type has been given")
        try:
            kind = TaskKind(kind_name)
        except ValueError:
            raise InvalidConfigurationError(
                f'The task cannot be created as no builder has been defined for "{kind_name}"'
            ) from None

        task_cls = TASK_TYPES[kind]
        accepted = {f.name for f in dataclasses.fields(task_cls)}
        values: dict[str, Any] = {}
        for key, value in options.items():
            key = _ALIASES.get(key, key)
            if key not in accepted:
                if key != "type":
                    logger.debug(f"Ignoring unknown option '{key}' for {kind.value} task")
                continue
            if key in _TIMEDELTA_OPTIONS and value is not None and not isinstance(value, timedelta):
                value = timedelta(seconds=value)
            values[key] = value

        if "name" not in values:
            raise InvalidConfigurationError("The task cannot be created without a name")
        return task_cls(**values)


__all__ = ["TaskBuilder"]
