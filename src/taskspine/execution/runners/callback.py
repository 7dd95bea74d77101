"""Runner calling Python callables."""

from __future__ import annotations

from taskspine.core.tasks.models import CallbackTask, Output, Task


class CallbackTaskRunner:
    """Call ``task.callback(*task.arguments)``.

    A callback returning ``False`` produces an error output; any other
    return value is the output content (kept when ``task.is_output``).
    Exceptions propagate to the worker, which records a failed task.
    """

    def supports(self, task: Task) -> bool:
        return isinstance(task, CallbackTask)

    def run(self, task: Task) -> Output:
        callback = task.resolve_callback()
        result = callback(*task.arguments)
        if result is False:
            return Output(task, None, is_error=True)

        content = None
        if task.is_output and result is not None:
            content = str(result).strip()
        return Output(task, content)
