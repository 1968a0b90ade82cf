"""
Prometheus metrics for the task worker.
"""

import asyncio
from collections.abc import Iterable

import uvicorn
from fastapi import FastAPI, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from background_jobs.config.logging import get_logger

logger = get_logger(__name__)

LAG_BUCKETS = (0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 600.0)
DURATION_BUCKETS = (0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class WorkerMetrics:
    """Per-task-type counters and histograms on a dedicated registry."""

    def __init__(
        self,
        namespace: str = "background_jobs",
        registry: CollectorRegistry | None = None,
    ):
        self.registry = registry or CollectorRegistry()

        self.tasks_completed = Counter(
            "tasks_completed",
            "Number of successfully completed background tasks",
            ["type"],
            namespace=namespace,
            registry=self.registry,
        )
        self.tasks_failed = Counter(
            "tasks_failed",
            "Number of failed background tasks",
            ["type"],
            namespace=namespace,
            registry=self.registry,
        )
        self.task_invocations = Counter(
            "task_invocations",
            "Number of task processing attempts",
            ["type"],
            namespace=namespace,
            registry=self.registry,
        )
        self.task_processing_lag = Histogram(
            "task_processing_lag_seconds",
            "Time from task creation to processing start in seconds",
            ["type"],
            namespace=namespace,
            registry=self.registry,
            buckets=LAG_BUCKETS,
        )
        self.task_duration_seconds = Histogram(
            "task_duration_seconds",
            "Task execution duration in seconds",
            ["type"],
            namespace=namespace,
            registry=self.registry,
            buckets=DURATION_BUCKETS,
        )

    def warmup_task_types(self, task_types: Iterable[str]) -> None:
        """Create every label set up front so series exist before first use."""
        for task_type in task_types:
            self.tasks_completed.labels(type=task_type)
            self.tasks_failed.labels(type=task_type)
            self.task_invocations.labels(type=task_type)
            self.task_processing_lag.labels(type=task_type)
            self.task_duration_seconds.labels(type=task_type)

    def record_invocation(self, task_type: str) -> None:
        self.task_invocations.labels(type=task_type).inc()

    def record_processing_lag(self, task_type: str, lag_seconds: float) -> None:
        self.task_processing_lag.labels(type=task_type).observe(lag_seconds)

    def record_duration(self, task_type: str, duration_seconds: float) -> None:
        self.task_duration_seconds.labels(type=task_type).observe(duration_seconds)

    def record_completed(self, task_type: str) -> None:
        self.tasks_completed.labels(type=task_type).inc()

    def record_failed(self, task_type: str) -> None:
        self.tasks_failed.labels(type=task_type).inc()

    def render(self) -> tuple[bytes, str]:
        """Text exposition of all metrics and its content type."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST


def create_metrics_app(metrics: WorkerMetrics) -> FastAPI:
    """Minimal app exposing ``GET /metrics`` for scraping."""
    app = FastAPI(openapi_url=None, docs_url=None, redoc_url=None)

    @app.get("/metrics")
    async def scrape() -> Response:
        body, content_type = metrics.render()
        return Response(content=body, media_type=content_type)

    return app


def spawn_metrics_server(
    port: int, metrics: WorkerMetrics, host: str = "0.0.0.0"
) -> asyncio.Task:
    """Serve the metrics endpoint in the background of the running loop."""
    config = uvicorn.Config(
        create_metrics_app(metrics), host=host, port=port, log_level="warning"
    )
    server = uvicorn.Server(config)

    async def serve() -> None:
        logger.debug("Worker metrics server listening", host=host, port=port)
        try:
            await server.serve()
        except Exception:
            logger.exception("Worker metrics server exited", port=port)

    return asyncio.create_task(serve(), name="metrics-server")
