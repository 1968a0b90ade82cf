"""Task Commands - Enqueue and inspect background tasks"""

import asyncio
import json
from datetime import timedelta

import typer
from rich.console import Console
from rich.panel import Panel

from background_jobs.config.settings import get_settings
from background_jobs.core.exceptions import TaskQueueError
from background_jobs.tasks.durable import DurableStorage
from background_jobs.tasks.storage import utcnow
from background_jobs.worker.runtime import open_queue

from ..utils.formatting import (
    create_stats_panel,
    create_tasks_table,
    display_task,
    print_error,
    print_info,
    print_success,
)

console = Console()
app = typer.Typer(name="tasks", help="Enqueue and inspect background tasks")


@app.command("enqueue")
def enqueue(
    task_type: str = typer.Argument(..., help="Task type routed to a processor"),
    payload: str = typer.Option("{}", "--payload", "-p", help="JSON payload"),
    max_attempts: int = typer.Option(
        3, "--max-attempts", "-m", min=1, help="Attempts before failing permanently"
    ),
    delay: float | None = typer.Option(
        None, "--delay", "-d", min=0, help="Seconds before the task becomes ready"
    ),
):
    """➕ Enqueue a task"""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        print_error(f"Invalid JSON payload: {e}")
        raise typer.Exit(1)

    scheduled_for = utcnow() + timedelta(seconds=delay) if delay else None

    async def _enqueue():
        async with open_queue(get_settings()) as queue:
            return await queue.enqueue_with_options(
                task_type, data, scheduled_for=scheduled_for, max_attempts=max_attempts
            )

    try:
        record = asyncio.run(_enqueue())
    except TaskQueueError as e:
        print_error(f"Failed to enqueue task: {e.message}")
        raise typer.Exit(1)

    print_success(f"Enqueued {record.task_type} task {record.id}")
    if record.scheduled_for:
        print_info(f"Not before: {record.scheduled_for.isoformat()}")


@app.command("show")
def show(task_id: str = typer.Argument(..., help="Task id")):
    """🔎 Show a single task"""

    async def _show():
        async with open_queue(get_settings()) as queue:
            return await queue.get_task(task_id)

    try:
        record = asyncio.run(_show())
    except TaskQueueError as e:
        print_error(f"Failed to load task: {e.message}")
        raise typer.Exit(1)

    if record is None:
        print_error(f"Task not found: {task_id}")
        raise typer.Exit(1)

    display_task(record.model_dump(mode="json"))


@app.command("pending")
def pending(
    limit: int = typer.Option(10, "--limit", "-l", min=1, help="Number of tasks to show"),
):
    """📋 List ready tasks in pickup order"""

    async def _pending():
        async with open_queue(get_settings()) as queue:
            return await queue.find_pending(limit)

    try:
        records = asyncio.run(_pending())
    except TaskQueueError as e:
        print_error(f"Failed to list tasks: {e.message}")
        raise typer.Exit(1)

    if not records:
        console.print(
            Panel(
                "📭 [yellow]No ready tasks![/yellow]\n\n"
                "Scheduled tasks stay hidden until their time arrives.",
                title="Empty Queue",
                border_style="yellow",
            )
        )
        return

    console.print(
        create_tasks_table(
            [record.model_dump(mode="json") for record in records],
            title="Ready Tasks",
        )
    )


@app.command("stats")
def stats():
    """📊 Show task counts by status"""

    async def _stats():
        async with open_queue(get_settings()) as queue:
            return await queue.count_by_status()

    try:
        by_status = asyncio.run(_stats())
    except TaskQueueError as e:
        print_error(f"Failed to count tasks: {e.message}")
        raise typer.Exit(1)

    console.print(create_stats_panel(by_status))


@app.command("init-db")
def init_db():
    """🗄️ Create the tasks table on a development database"""

    async def _init():
        async with open_queue(get_settings()) as queue:
            if not isinstance(queue.storage, DurableStorage):
                return False
            await queue.storage.create_schema()
            return True

    try:
        created = asyncio.run(_init())
    except TaskQueueError as e:
        print_error(e.message)
        raise typer.Exit(1)

    if created:
        print_success("Task table is ready")
    else:
        print_info("In-memory storage needs no schema")
