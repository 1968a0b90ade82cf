"""
Task administration API endpoints.

Lets producers outside the process enqueue tasks and lets operators inspect
them; execution outcomes are only observable by polling.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from background_jobs.config.settings import Settings, get_settings
from background_jobs.core.exceptions import TaskNotFoundError, create_success_response
from background_jobs.infra.database import get_database
from background_jobs.tasks.models import TaskStatus
from background_jobs.tasks.queue import TaskQueue
from background_jobs.tasks.schemas import TaskEnqueueRequest, TaskStatsResponse
from background_jobs.worker.runtime import build_storage

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tasks", tags=["tasks"])


def get_queue(request: Request, settings: Settings = Depends(get_settings)) -> TaskQueue:
    """Queue bound to the app, or one built from settings on first use."""
    queue = getattr(request.app.state, "queue", None)
    if queue is None:
        database = get_database(settings)
        queue = TaskQueue(build_storage(settings, database))
        request.app.state.queue = queue
    return queue


QueueDep = Depends(get_queue)


@router.post("", response_model=dict, status_code=201)
async def enqueue_task(
    task_request: TaskEnqueueRequest, queue: TaskQueue = QueueDep
) -> dict[str, Any]:
    """Enqueue a new background task."""
    record = await queue.enqueue_with_options(
        task_request.task_type,
        task_request.payload,
        scheduled_for=task_request.scheduled_for,
        max_attempts=task_request.max_attempts,
    )

    logger.info(
        "Task enqueued via API",
        extra={"task_id": record.id, "task_type": record.task_type},
    )

    return create_success_response(data=record.model_dump(mode="json"))


@router.get("/pending", response_model=dict)
async def list_pending_tasks(
    limit: int = Query(default=10, ge=1, le=1000, description="Maximum results"),
    queue: TaskQueue = QueueDep,
) -> dict[str, Any]:
    """Peek at the ready set in pickup order."""
    tasks = await queue.find_pending(limit)
    return create_success_response(
        data={
            "tasks": [task.model_dump(mode="json") for task in tasks],
            "count": len(tasks),
        }
    )


@router.get("/stats", response_model=dict)
async def get_task_stats(queue: TaskQueue = QueueDep) -> dict[str, Any]:
    """Task counts by status."""
    by_status = await queue.count_by_status()
    stats = TaskStatsResponse(
        by_status=by_status,
        queue_depth=by_status.get(TaskStatus.PENDING.value, 0)
        + by_status.get(TaskStatus.PROCESSING.value, 0),
    )
    return create_success_response(data=stats.model_dump())


@router.get("/{task_id}", response_model=dict)
async def get_task(task_id: str, queue: TaskQueue = QueueDep) -> dict[str, Any]:
    """Get a task by id."""
    record = await queue.get_task(task_id)
    if record is None:
        raise TaskNotFoundError(task_id)
    return create_success_response(data=record.model_dump(mode="json"))
