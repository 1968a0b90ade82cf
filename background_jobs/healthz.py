from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel

from background_jobs.config.settings import Settings, SettingsDep
from background_jobs.core.exceptions import TaskQueueError, create_success_response
from background_jobs.tasks.models import TaskStatus
from background_jobs.tasks.queue import TaskQueue
from background_jobs.tasks.routes import QueueDep

router = APIRouter()


class StorageHealth(BaseModel):
    """Storage backend health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class QueueHealth(BaseModel):
    """Queue depth snapshot."""

    pending: int = 0
    processing: int = 0
    failed: int = 0


@router.get("/healthz", response_model=dict)
async def health_check(settings: Settings = SettingsDep, queue: TaskQueue = QueueDep):
    """Health check with storage reachability and queue depth."""

    timestamp = datetime.now(UTC).isoformat()
    start_time = datetime.now(UTC)

    queue_health = None
    try:
        counts = await queue.count_by_status()
        response_time_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
        storage_health = StorageHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )
        queue_health = QueueHealth(
            pending=counts.get(TaskStatus.PENDING.value, 0),
            processing=counts.get(TaskStatus.PROCESSING.value, 0),
            failed=counts.get(TaskStatus.FAILED.value, 0),
        )
    except TaskQueueError as e:
        storage_health = StorageHealth(connected=False, error=e.message)

    health_data = {
        "ok": storage_health.connected,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": timestamp,
        "storage": storage_health.model_dump(),
        "queue": queue_health.model_dump() if queue_health else None,
    }

    return create_success_response(data=health_data)
