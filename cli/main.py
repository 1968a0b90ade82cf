"""Background Jobs CLI - Main Entry Point"""

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from background_jobs.config.settings import get_settings

# Import command modules
from .commands import tasks
from .commands.worker import worker

console = Console()

# Create main Typer app
app = typer.Typer(
    name="background-jobs",
    help="⚙️ Background Jobs - durable task queue CLI",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(tasks.app, name="tasks")
app.command("worker")(worker)


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    settings = get_settings()
    console.print(
        Panel(
            f"⚙️ [bold cyan]Background Jobs CLI[/bold cyan]\n\n"
            f"• Version: [green]{__version__}[/green]\n"
            f"• Environment: [yellow]{settings.environment}[/yellow]\n"
            f"• Storage: [blue]{settings.storage_backend.value}[/blue]",
            title="Version Info",
            border_style="cyan",
        )
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None, "--version", "-v", help="Show version and exit"
    ),
):
    """
    ⚙️ Background Jobs CLI

    Run workers, enqueue tasks and inspect the queue from the command line.
    """
    if version:
        from . import __version__

        console.print(f"Background Jobs CLI v{__version__}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


if __name__ == "__main__":
    app()
