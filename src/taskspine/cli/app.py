"""
Root Typer application for the taskspine CLI.

Commands:
    list        Show scheduled tasks
    schedule    Schedule a task built from options
    consume     Run a worker over the due tasks
    reboot      Keep only the @reboot tasks
    pause       Pause a task
    resume      Resume a paused task
    unschedule  Remove a task
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

import typer
from typer import Typer

from taskspine.cli.utils import console, err_console, fail, load_settings, output_tasks
from taskspine.core.errors import TaskSpineError
from taskspine.core.events import Event, EventType
from taskspine.core.tasks.builder import TaskBuilder
from taskspine.factory import build_components, build_scheduler

app = Typer(
    name="taskspine",
    help="taskspine — cron-driven task scheduler and worker.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

StorageOption = typer.Option(None, "--storage", "-s", help="Storage DSN (overrides TASKSPINE_STORAGE_DSN)")


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("taskspine")
        except PackageNotFoundError:
            v = "0.1.0"
        typer.echo(f"taskspine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """taskspine CLI — schedule, inspect and consume tasks."""


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("list")
def list_tasks(
    storage: str | None = StorageOption,
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List the scheduled tasks in policy order."""
    try:
        scheduler = build_scheduler(load_settings(storage))
        output_tasks(scheduler.get_tasks(), as_json=json_out)
    except TaskSpineError as e:
        fail(e)


@app.command("schedule")
def schedule_task(
    name: str = typer.Argument(..., help="Task name"),
    task_type: str = typer.Option("null", "--type", "-t", help="shell, command, http, callback or null"),
    expression: str = typer.Option("* * * * *", "--expression", "-e", help="Cron expression or @reboot"),
    command: list[str] = typer.Option([], "--command", "-c", help="Command (repeat for each argv item)"),
    url: str | None = typer.Option(None, "--url"),
    method: str = typer.Option("GET", "--method"),
    callback: str | None = typer.Option(None, "--callback", help="module:function"),
    description: str | None = typer.Option(None, "--description"),
    priority: int = typer.Option(0, "--priority"),
    single_run: bool = typer.Option(False, "--single-run"),
    output: bool = typer.Option(False, "--output", help="Keep the task output"),
    storage: str | None = StorageOption,
) -> None:
    """Schedule a task."""
    options = {
        "type": task_type,
        "name": name,
        "expression": expression,
        "description": description,
        "priority": priority,
        "is_single_run": single_run,
        "is_output": output,
        "method": method,
    }
    if command:
        options["command"] = command if task_type == "shell" else command[0]
        if task_type == "command":
            options["arguments"] = command[1:]
    if url:
        options["url"] = url
    if callback:
        options["callback"] = callback

    try:
        scheduler = build_scheduler(load_settings(storage))
        scheduler.schedule(TaskBuilder().build(options))
    except TaskSpineError as e:
        fail(e)
    console.print(f"[green]✓[/green] Task [cyan]{name}[/cyan] scheduled")


@app.command("consume")
def consume(
    limit: int | None = typer.Option(None, "--limit", "-l", min=1, help="Limit the number of tasks consumed"),
    time_limit: int | None = typer.Option(None, "--time-limit", "-t", min=1, help="Limit the time in seconds the worker can run"),
    failure_limit: int | None = typer.Option(None, "--failure-limit", "-f", min=1, help="Limit the amount of task allowed to fail"),
    show_output: bool = typer.Option(False, "--show-output", help="Print each task output"),
    storage: str | None = StorageOption,
) -> None:
    """Consume due tasks."""
    try:
        components = build_components(
            load_settings(storage),
            task_limit=limit,
            time_limit_seconds=time_limit,
            failure_limit=failure_limit,
        )
        tasks = components.scheduler.get_due_tasks()
    except TaskSpineError as e:
        fail(e)

    if len(tasks) == 0:
        console.print("[yellow]No due tasks found[/yellow]")
        return

    stop_options = []
    if limit:
        stop_options.append(f"{limit} tasks have been consumed")
    if time_limit:
        stop_options.append(f"it has been running for {time_limit} seconds")
    if failure_limit:
        stop_options.append(f"{failure_limit} task{'s' if failure_limit > 1 else ''} have failed")
    if stop_options:
        last = stop_options.pop()
        stops_when = f"{', '.join(stop_options)} or {last}" if stop_options else last
        console.print(f"The worker will automatically exit once {stops_when}.")

    count = len(tasks)
    console.print(f"Found {count} task{'s' if count > 1 else ''}")
    console.print("Quit the worker with CONTROL-C.")

    if show_output:

        def _print_output(event: Event) -> None:
            output = event.payload.get("output")
            if output is not None and output.content:
                console.print(f"[bold]{event.task.name}[/bold] output:")
                console.print(output.content)

        components.dispatcher.subscribe(EventType.TASK_EXECUTED, _print_output)

    worker = components.worker
    try:
        worker.execute(*tasks)
    except KeyboardInterrupt:
        worker.stop()
        err_console.print("[yellow]Worker interrupted[/yellow]")
    except TaskSpineError as e:
        err_console.print("[bold red]An error occurred when executing the tasks[/bold red]")
        fail(e)

    failed = worker.get_failed_tasks()
    for failed_task in failed:
        err_console.print(f"[red]✗[/red] {failed_task.task.name}: {failed_task.reason}")
    console.print(
        f"[green]✓[/green] {count} task{'s' if count > 1 else ''} "
        f"{'have' if count > 1 else 'has'} been consumed, {len(failed)} failed"
    )


@app.command("reboot")
def reboot(storage: str | None = StorageOption) -> None:
    """Reboot the scheduler, keeping only the @reboot tasks."""
    try:
        scheduler = build_scheduler(load_settings(storage))
        scheduler.reboot()
        kept = len(scheduler.get_tasks())
    except TaskSpineError as e:
        fail(e)
    console.print(f"[green]✓[/green] Scheduler rebooted, {kept} task{'s' if kept != 1 else ''} kept")


@app.command("pause")
def pause(name: str = typer.Argument(..., help="Task name"), storage: str | None = StorageOption) -> None:
    """Pause a task."""
    try:
        build_scheduler(load_settings(storage)).pause(name)
    except TaskSpineError as e:
        fail(e)
    console.print(f"[green]✓[/green] Task [cyan]{name}[/cyan] paused")


@app.command("resume")
def resume(name: str = typer.Argument(..., help="Task name"), storage: str | None = StorageOption) -> None:
    """Resume a paused task."""
    try:
        build_scheduler(load_settings(storage)).resume(name)
    except TaskSpineError as e:
        fail(e)
    console.print(f"[green]✓[/green] Task [cyan]{name}[/cyan] resumed")


@app.command("unschedule")
def unschedule(name: str = typer.Argument(..., help="Task name"), storage: str | None = StorageOption) -> None:
    """Remove a task."""
    try:
        build_scheduler(load_settings(storage)).unschedule(name)
    except TaskSpineError as e:
        fail(e)
    console.print(f"[green]✓[/green] Task [cyan]{name}[/cyan] unscheduled")


if __name__ == "__main__":
    app()
