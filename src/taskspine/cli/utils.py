"""
CLI utility helpers — output formatting and component wiring.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from taskspine.core.errors import TaskSpineError
from taskspine.core.logging import configure_logging
from taskspine.core.settings import TaskSpineSettings, get_settings
from taskspine.core.tasks.models import Task

console = Console()
err_console = Console(stderr=True)


def load_settings(storage: str | None = None) -> TaskSpineSettings:
    """Fresh settings for this invocation, with an optional storage DSN override."""
    settings = get_settings(_force_reload=True)
    if storage:
        settings = settings.model_copy(update={"storage_dsn": storage})
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_format == "json",
        service="taskspine-cli",
    )
    return settings


def fail(error: Exception) -> None:
    """Print *error* and exit with status 1."""
    if isinstance(error, TaskSpineError):
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=1)


def _format_time(value: Any) -> str:
    return value.isoformat(timespec="seconds") if value else "-"


def output_tasks(tasks: Iterable[Task], *, as_json: bool = False, title: str = "Tasks") -> None:
    """Render tasks as a rich table (or JSON)."""
    tasks = list(tasks)
    if as_json:
        console.print_json(json.dumps([task.to_dict() for task in tasks], default=str))
        return

    if not tasks:
        console.print("[yellow]No tasks found[/yellow]")
        return

    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Expression")
    table.add_column("State")
    table.add_column("Priority", justify="right")
    table.add_column("Last execution")
    table.add_column("Last state")
    for task in tasks:
        table.add_row(
            task.name,
            task.kind.value,
            task.expression,
            task.state.value,
            str(task.priority),
            _format_time(task.last_execution),
            task.execution_state.value if task.execution_state else "-",
        )
    console.print(table)
