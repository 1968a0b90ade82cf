"""
In-memory task storage.

Process-local and non-persistent; intended for development and tests.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from background_jobs.core.exceptions import InvalidTransitionError, TaskNotFoundError
from background_jobs.tasks.models import TaskStatus
from background_jobs.tasks.schemas import DEFAULT_MAX_ATTEMPTS, TaskRecord
from background_jobs.tasks.storage import Clock, TaskStorage, check_limit

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Asyncio lock allowing concurrent readers or a single writer."""

    def __init__(self):
        self._condition = asyncio.Condition()
        self._readers = 0
        self._writer = False

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(lambda: not self._writer)
            self._readers += 1
        try:
            yield
        finally:
            async with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(
                lambda: not self._writer and self._readers == 0
            )
            self._writer = True
        try:
            yield
        finally:
            async with self._condition:
                self._writer = False
                self._condition.notify_all()


class InMemoryStorage(TaskStorage):
    """Task storage backed by an ordered dict guarded by a read/write lock."""

    def __init__(self, clock: Clock | None = None):
        super().__init__(clock)
        self._tasks: dict[str, TaskRecord] = {}
        self._lock = ReadWriteLock()

    async def enqueue(
        self,
        task_type: str,
        payload: Any,
        scheduled_for: datetime | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> TaskRecord:
        now = self.clock()
        task = TaskRecord(
            id=str(uuid.uuid4()),
            task_type=task_type,
            payload=payload,
            status=TaskStatus.PENDING,
            attempts=0,
            max_attempts=max_attempts,
            scheduled_for=scheduled_for,
            created_at=now,
            updated_at=now,
        )

        async with self._lock.write():
            self._tasks[task.id] = task

        return task.model_copy(deep=True)

    async def find_pending(self, limit: int) -> list[TaskRecord]:
        check_limit(limit)
        now = self.clock()
        async with self._lock.read():
            ready = [task for task in self._tasks.values() if task.is_ready(now)]

        # sorted() is stable, so equal timestamps keep insertion order
        ready = sorted(ready, key=lambda task: task.created_at)
        return [task.model_copy(deep=True) for task in ready[:limit]]

    async def mark_processing(self, task_id: str) -> TaskRecord:
        async with self._lock.write():
            task = self._require(task_id, TaskStatus.PENDING, TaskStatus.PROCESSING)
            now = self.clock()
            task.status = TaskStatus.PROCESSING
            task.started_at = now
            task.attempts += 1
            task.updated_at = now
            return task.model_copy(deep=True)

    async def mark_completed(self, task_id: str) -> TaskRecord:
        async with self._lock.write():
            task = self._require(task_id, TaskStatus.PROCESSING, TaskStatus.COMPLETED)
            now = self.clock()
            task.status = TaskStatus.COMPLETED
            task.completed_at = now
            task.updated_at = now
            return task.model_copy(deep=True)

    async def mark_failed(
        self, task_id: str, error: str, retry_at: datetime | None = None
    ) -> TaskRecord:
        async with self._lock.write():
            task = self._require(task_id, TaskStatus.PROCESSING, TaskStatus.FAILED)
            task.error = error
            task.updated_at = self.clock()

            if task.attempts >= task.max_attempts:
                task.status = TaskStatus.FAILED
            else:
                task.status = TaskStatus.PENDING
                if retry_at is not None:
                    task.scheduled_for = retry_at

            return task.model_copy(deep=True)

    async def get_task(self, task_id: str) -> TaskRecord | None:
        async with self._lock.read():
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task else None

    async def count_by_status(self) -> dict[str, int]:
        async with self._lock.read():
            counts: dict[str, int] = {}
            for task in self._tasks.values():
                counts[task.status.value] = counts.get(task.status.value, 0) + 1
            return counts

    def _require(
        self, task_id: str, expected: TaskStatus, target: TaskStatus
    ) -> TaskRecord:
        """Look up a task for a transition; caller must hold the write lock."""
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.status != expected:
            logger.debug(
                "Rejected task transition",
                extra={
                    "task_id": task_id,
                    "current": task.status.value,
                    "target": target.value,
                },
            )
            raise InvalidTransitionError(task_id, task.status.value, target.value)
        return task
