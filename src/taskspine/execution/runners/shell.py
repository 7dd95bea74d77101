"""Sub-process runners: shell commands and Python console commands."""

from __future__ import annotations

import logging
import os
import subprocess
import sys

from taskspine.core.tasks.models import CommandTask, Output, ShellTask, Task

logger = logging.getLogger(__name__)

BACKGROUND_OUTPUT = "Task is running in background, output is not available"


def _run_process(task: Task, argv: list[str], cwd: str | None, env: dict[str, str], timeout: float | None) -> Output:
    environment = {**os.environ, **env}

    if task.must_run_in_background:
        subprocess.Popen(argv, cwd=cwd, env=environment, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        logger.debug(f"Started '{task.name}' in background")
        return Output(task, BACKGROUND_OUTPUT)

    completed = subprocess.run(
        argv,
        cwd=cwd,
        env=environment,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )
    if completed.returncode != 0:
        logger.debug(f"'{task.name}' exited with code {completed.returncode}")
        return Output(task, completed.stderr.strip() or None, is_error=True)

    return Output(task, completed.stdout.strip() if task.is_output else None)


class ShellTaskRunner:
    """Run ``task.command`` (an argv list) as a sub-process.

    A non-zero exit code produces an error output carrying stderr.
    ``subprocess.TimeoutExpired`` propagates to the worker.
    """

    def supports(self, task: Task) -> bool:
        return isinstance(task, ShellTask)

    def run(self, task: Task) -> Output:
        return _run_process(task, list(task.command), task.cwd, task.environment, task.timeout)


class CommandTaskRunner:
    """Run a Python console command: ``python -m <command> [options] [arguments]``.

    Options become ``--key=value`` flags (``--key`` for ``True``, omitted
    for ``False`` / ``None``).
    """

    def __init__(self, python: str | None = None) -> None:
        self.python = python or sys.executable

    def supports(self, task: Task) -> bool:
        return isinstance(task, CommandTask)

    def build_argv(self, task: CommandTask) -> list[str]:
        argv = [self.python, "-m", task.command]
        for key, value in task.options.items():
            flag = key if key.startswith("-") else f"--{key}"
            if value is True:
                argv.append(flag)
            elif value not in (False, None):
                argv.append(f"{flag}={value}")
        argv.extend(str(argument) for argument in task.arguments)
        return argv

    def run(self, task: Task) -> Output:
        return _run_process(task, self.build_argv(task), None, {}, None)
