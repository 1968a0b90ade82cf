"""Worker Command - Run the task worker process"""

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel

from background_jobs.config.settings import StorageBackend, get_settings
from background_jobs.worker.config import WorkerConfig
from background_jobs.worker.runtime import load_processors, run_worker

from ..utils.formatting import print_error, print_info

console = Console()


def worker(
    processors: str = typer.Option(
        ...,
        "--processors",
        "-p",
        help="Processors to register, as 'package.module:attribute'",
    ),
    backend: StorageBackend | None = typer.Option(
        None, "--backend", "-b", help="Storage backend (overrides STORAGE_BACKEND)"
    ),
    batch_size: int | None = typer.Option(
        None, "--batch-size", min=1, help="Maximum tasks fetched per poll"
    ),
    poll_interval: float | None = typer.Option(
        None, "--poll-interval", min=0.001, help="Base poll interval in seconds"
    ),
    metrics_port: int | None = typer.Option(
        None, "--metrics-port", help="Port for the /metrics endpoint"
    ),
    no_metrics: bool = typer.Option(
        False, "--no-metrics", help="Do not serve the metrics endpoint"
    ),
):
    """⚙️ Run a worker until interrupted"""
    settings = get_settings()
    if backend is not None:
        settings = settings.model_copy(update={"storage_backend": backend})

    try:
        loaded = load_processors(processors)
    except (ImportError, AttributeError, TypeError, ValueError) as e:
        print_error(f"Could not load processors from '{processors}': {e}")
        raise typer.Exit(1)

    config = WorkerConfig.from_settings(
        settings,
        batch_size=batch_size,
        poll_interval=poll_interval,
        metrics_port=metrics_port,
    )
    if config.max_backoff < config.poll_interval:
        print_error("--poll-interval must not exceed WORKER_MAX_BACKOFF")
        raise typer.Exit(1)

    console.print(
        Panel(
            f"• Storage: [yellow]{settings.storage_backend.value}[/yellow]\n"
            f"• Task types: [magenta]{', '.join(p.task_type for p in loaded)}[/magenta]\n"
            f"• Batch size: [cyan]{config.batch_size}[/cyan]\n"
            f"• Poll interval: [cyan]{config.poll_interval}s[/cyan]\n"
            f"• Metrics: [blue]"
            f"{'disabled' if no_metrics else f':{config.metrics_port}/metrics'}[/blue]",
            title="Starting Worker",
            border_style="green",
        )
    )

    asyncio.run(
        run_worker(
            loaded, config=config, settings=settings, serve_metrics=not no_metrics
        )
    )
    print_info("Worker stopped")
