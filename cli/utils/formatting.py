"""Rich Formatting Utilities for Beautiful CLI Output"""

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "blue",
    "completed": "green",
    "failed": "red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {escape(message)}[/red]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def create_tasks_table(tasks: list[dict[str, Any]], title: str = "Tasks") -> Table:
    """Create a formatted table for a task list"""
    table = Table(title=title, box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Attempts", justify="center", style="yellow")
    table.add_column("Created", justify="left", style="white")

    for task in tasks:
        table.add_row(
            str(task.get("id", "")),
            task.get("task_type", ""),
            _styled_status(task.get("status", "")),
            f"{task.get('attempts', 0)}/{task.get('max_attempts', 0)}",
            _short_timestamp(task.get("created_at")),
        )

    return table


def create_stats_panel(by_status: dict[str, int]) -> Panel:
    """Create panel with task counts by status"""
    lines = []
    for status in STATUS_STYLES:
        lines.append(f"• {_styled_status(status)}: {by_status.get(status, 0)}")

    depth = by_status.get("pending", 0) + by_status.get("processing", 0)
    lines.append(f"\n[bold]Queue depth:[/bold] {depth}")

    return Panel("\n".join(lines), title="Queue Stats", border_style="cyan")


def display_task(task: dict[str, Any]):
    """Display a single task record with all fields"""
    status = task.get("status", "")
    border = STATUS_STYLES.get(status, "white")

    body = (
        f"[bold]Type:[/bold] [magenta]{task.get('task_type', '')}[/magenta]\n"
        f"[bold]Status:[/bold] {_styled_status(status)}\n"
        f"[bold]Attempts:[/bold] {task.get('attempts', 0)}/{task.get('max_attempts', 0)}\n"
        f"[bold]Created:[/bold] {task.get('created_at')}\n"
        f"[bold]Updated:[/bold] {task.get('updated_at')}"
    )
    if task.get("scheduled_for"):
        body += f"\n[bold]Scheduled for:[/bold] {task['scheduled_for']}"
    if task.get("started_at"):
        body += f"\n[bold]Started:[/bold] {task['started_at']}"
    if task.get("completed_at"):
        body += f"\n[bold]Completed:[/bold] {task['completed_at']}"
    if task.get("error"):
        body += f"\n\n[bold red]Error:[/bold red] {escape(task['error'])}"

    body += "\n\n[bold]Payload:[/bold]\n" + escape(
        json.dumps(task.get("payload"), indent=2, sort_keys=True)
    )

    console.print(
        Panel(body, title=f"Task {task.get('id', '')}", border_style=border)
    )


def _styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _short_timestamp(value: str | None) -> str:
    """Trim an ISO timestamp to seconds precision"""
    if not value:
        return ""
    return value[:19].replace("T", " ")
