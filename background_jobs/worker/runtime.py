"""
Worker process composition: storage, metrics, schedulers and the poll loop.
"""

import asyncio
import importlib
import signal
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

from background_jobs.config.logging import get_logger, setup_logging
from background_jobs.config.settings import Settings, StorageBackend
from background_jobs.config.settings import settings as default_settings
from background_jobs.core.registries import TaskProcessor
from background_jobs.infra.database import Database
from background_jobs.tasks.durable import DurableStorage
from background_jobs.tasks.memory import InMemoryStorage
from background_jobs.tasks.queue import TaskQueue
from background_jobs.tasks.storage import TaskStorage
from background_jobs.worker.config import WorkerConfig
from background_jobs.worker.metrics import WorkerMetrics, spawn_metrics_server
from background_jobs.worker.scheduler import spawn_processor_schedulers
from background_jobs.worker.task_worker import TaskWorker, TaskWorkerBuilder

logger = get_logger(__name__)


def build_storage(
    settings: Settings, database: Database | None = None
) -> TaskStorage:
    """Storage backend selected by ``STORAGE_BACKEND``."""
    if settings.storage_backend == StorageBackend.MEMORY:
        return InMemoryStorage()
    database = database or Database(settings)
    return DurableStorage(database.SessionLocal)


@asynccontextmanager
async def open_queue(settings: Settings) -> AsyncIterator[TaskQueue]:
    """Queue over the configured backend; the engine is disposed on exit."""
    database: Database | None = None
    if settings.storage_backend == StorageBackend.DURABLE:
        database = Database(settings)
    try:
        yield TaskQueue(build_storage(settings, database))
    finally:
        if database is not None:
            await database.close()


def load_processors(path: str) -> list[TaskProcessor]:
    """
    Resolve ``package.module:attribute`` into processor instances.

    The attribute may be a processor, an iterable of processors, or a
    zero-argument callable returning either.
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Expected 'module:attribute', got: {path}")

    target = getattr(importlib.import_module(module_name), attribute)
    if callable(target) and not hasattr(target, "process"):
        target = target()

    processors = [target] if hasattr(target, "process") else list(target)
    for processor in processors:
        if not getattr(processor, "task_type", None) or not hasattr(
            processor, "process"
        ):
            raise TypeError(f"Not a task processor: {processor!r}")
    return processors


def build_worker(
    queue: TaskQueue,
    processors: Iterable[TaskProcessor],
    config: WorkerConfig,
    metrics: WorkerMetrics | None = None,
) -> TaskWorker:
    builder = TaskWorkerBuilder(queue).with_config(config)
    for processor in processors:
        builder.register_processor(processor)
    if metrics is not None:
        metrics.warmup_task_types(builder.registered_task_types())
        builder.with_metrics(metrics)
    return builder.build()


async def run_worker(
    processors: Iterable[TaskProcessor],
    config: WorkerConfig | None = None,
    queue: TaskQueue | None = None,
    settings: Settings | None = None,
    serve_metrics: bool = True,
) -> None:
    """Run a worker process until SIGINT/SIGTERM."""
    settings = settings or default_settings
    config = config or WorkerConfig.from_settings(settings)
    setup_logging(settings)

    if queue is None:
        async with open_queue(settings) as queue:
            await _serve(queue, list(processors), config, settings, serve_metrics)
    else:
        await _serve(queue, list(processors), config, settings, serve_metrics)


async def _serve(
    queue: TaskQueue,
    processors: list[TaskProcessor],
    config: WorkerConfig,
    settings: Settings,
    serve_metrics: bool,
) -> None:
    metrics = WorkerMetrics(config.metrics_namespace)
    worker = build_worker(queue, processors, config, metrics)

    background: list[asyncio.Task] = []
    if serve_metrics:
        background.append(spawn_metrics_server(config.metrics_port, metrics))
    background.extend(spawn_processor_schedulers(processors, queue))

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.stop)
        except (NotImplementedError, RuntimeError):
            # Signal handlers are unavailable off the main thread and on Windows
            pass

    logger.info(
        "Worker runtime starting",
        storage=settings.storage_backend.value,
        metrics_port=config.metrics_port if serve_metrics else None,
        task_types=worker.registered_task_types,
    )

    try:
        await worker.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
