"""
Producer-facing queue API.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from pydantic_core import PydanticSerializationError, to_jsonable_python

from background_jobs.core.exceptions import SerializationError
from background_jobs.tasks.schemas import DEFAULT_MAX_ATTEMPTS, Task, TaskRecord
from background_jobs.tasks.storage import TaskStorage

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Timestamps without an offset are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def serialize_payload(task: Any) -> Any:
    """Convert a typed task value into a JSON-compatible payload."""
    try:
        return to_jsonable_python(task)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise SerializationError(
            f"Task payload is not serializable: {e}",
            {"value_type": type(task).__name__},
        ) from e


class TaskQueue:
    """High-level interface for enqueuing and managing background tasks."""

    def __init__(self, storage: TaskStorage):
        self._storage = storage

    @property
    def storage(self) -> TaskStorage:
        return self._storage

    async def enqueue(self, task_type: str, task: Any) -> TaskRecord:
        """Enqueue a task for immediate processing with default attempts."""
        return await self.enqueue_with_options(task_type, task)

    async def enqueue_with_options(
        self,
        task_type: str,
        task: Any,
        scheduled_for: datetime | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> TaskRecord:
        """
        Enqueue a task with explicit scheduling and attempt ceiling.

        Args:
            task_type: Processor routing key
            task: Typed value serialized into the stored payload
            scheduled_for: Earliest time the task may be picked up
            max_attempts: Attempts before the task fails permanently

        Returns:
            The stored pending task record

        Raises:
            SerializationError: if ``task`` cannot be encoded; nothing is stored
            StorageError: if the backend fails
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        payload = serialize_payload(task)

        if scheduled_for is not None:
            scheduled_for = as_utc(scheduled_for)

        record = await self._storage.enqueue(
            task_type, payload, scheduled_for, max_attempts
        )

        logger.debug(
            "Task enqueued",
            extra={
                "task_id": record.id,
                "task_type": task_type,
                "scheduled_for": (
                    scheduled_for.isoformat() if scheduled_for else None
                ),
                "max_attempts": max_attempts,
            },
        )

        return record

    async def enqueue_task(self, task: Task, **options: Any) -> TaskRecord:
        """Enqueue a typed task under its own ``task_type``."""
        return await self.enqueue_with_options(task.task_type, task, **options)

    async def find_pending(self, limit: int) -> list[TaskRecord]:
        return await self._storage.find_pending(limit)

    async def mark_processing(self, task_id: str) -> TaskRecord:
        return await self._storage.mark_processing(task_id)

    async def mark_completed(self, task_id: str) -> TaskRecord:
        return await self._storage.mark_completed(task_id)

    async def mark_failed(
        self, task_id: str, error: str, retry_at: datetime | None = None
    ) -> TaskRecord:
        return await self._storage.mark_failed(task_id, error, retry_at)

    async def get_task(self, task_id: str) -> TaskRecord | None:
        return await self._storage.get_task(task_id)

    async def count_by_status(self) -> dict[str, int]:
        return await self._storage.count_by_status()
