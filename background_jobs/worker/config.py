from dataclasses import dataclass, replace
from typing import Any

from background_jobs.config.settings import Settings, settings as default_settings


@dataclass(frozen=True)
class WorkerConfig:
    """Worker tuning knobs; hard-coded defaults, overridable from env or arguments."""

    batch_size: int = 10
    poll_interval: float = 1.0
    max_backoff: float = 60.0
    task_timeout: float | None = None
    metrics_port: int = 9100
    metrics_namespace: str = "background_jobs"
    retry_backoff_base: float = 0.0
    retry_backoff_max: float = 3600.0
    retry_jitter: float = 0.0

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, **overrides: Any
    ) -> "WorkerConfig":
        """Build from settings; explicit non-None overrides win."""
        settings = settings or default_settings
        config = cls(
            batch_size=settings.worker_batch_size,
            poll_interval=settings.worker_poll_interval,
            max_backoff=settings.worker_max_backoff,
            task_timeout=settings.worker_task_timeout,
            metrics_port=settings.metrics_port,
            metrics_namespace=settings.metrics_namespace,
            retry_backoff_base=settings.retry_backoff_base,
            retry_backoff_max=settings.retry_backoff_max,
            retry_jitter=settings.retry_jitter,
        )
        return replace(
            config, **{key: value for key, value in overrides.items() if value is not None}
        )
