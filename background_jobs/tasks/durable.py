"""
Relational task storage built on SQLAlchemy's async ORM.

Every transition is one conditional UPDATE guarded by the expected prior
status, so concurrent workers polling the same table cannot both claim a
task: the loser's UPDATE matches no row and surfaces as
``InvalidTransitionError``.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import and_, case, func, literal, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from background_jobs.core.exceptions import (
    InvalidTransitionError,
    StorageError,
    TaskNotFoundError,
)
from background_jobs.infra.database import Base
from background_jobs.tasks.models import BackgroundTask, TaskStatus
from background_jobs.tasks.schemas import DEFAULT_MAX_ATTEMPTS, TaskRecord
from background_jobs.tasks.storage import Clock, TaskStorage, check_limit

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _to_record(row: BackgroundTask) -> TaskRecord:
    return TaskRecord(
        id=str(row.id),
        task_type=row.task_type,
        payload=row.payload,
        status=TaskStatus(row.status),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        error=row.error,
        scheduled_for=_as_utc(row.scheduled_for),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
        started_at=_as_utc(row.started_at),
        completed_at=_as_utc(row.completed_at),
    )


def _parse_id(task_id: str) -> int | None:
    try:
        return int(task_id)
    except (TypeError, ValueError):
        return None


class DurableStorage(TaskStorage):
    """Task storage persisted in the ``background_tasks`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
    ):
        super().__init__(clock)
        self.session_factory = session_factory

    async def create_schema(self) -> None:
        """Create the tasks table for development databases."""
        try:
            async with self.session_factory() as session:
                connection = await session.connection()
                await connection.run_sync(
                    Base.metadata.create_all, tables=[BackgroundTask.__table__]
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create task schema: {e}") from e

    async def enqueue(
        self,
        task_type: str,
        payload: Any,
        scheduled_for: datetime | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> TaskRecord:
        now = self.clock()
        row = BackgroundTask(
            task_type=task_type,
            payload=payload,
            status=TaskStatus.PENDING.value,
            attempts=0,
            max_attempts=max_attempts,
            error=None,
            scheduled_for=scheduled_for,
            created_at=now,
            updated_at=now,
        )

        try:
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
                return _to_record(row)
        except SQLAlchemyError as e:
            logger.exception("Failed to enqueue task", extra={"task_type": task_type})
            raise StorageError(f"Failed to enqueue task: {e}") from e

    async def find_pending(self, limit: int) -> list[TaskRecord]:
        check_limit(limit)
        now = self.clock()
        query = (
            select(BackgroundTask)
            .where(
                and_(
                    BackgroundTask.status == TaskStatus.PENDING.value,
                    or_(
                        BackgroundTask.scheduled_for.is_(None),
                        BackgroundTask.scheduled_for <= now,
                    ),
                )
            )
            .order_by(BackgroundTask.created_at, BackgroundTask.id)
            .limit(limit)
        )

        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return [_to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to query pending tasks: {e}") from e

    async def mark_processing(self, task_id: str) -> TaskRecord:
        now = self.clock()
        return await self._transition(
            task_id,
            expected=TaskStatus.PENDING,
            target=TaskStatus.PROCESSING,
            values={
                "status": TaskStatus.PROCESSING.value,
                "started_at": now,
                "attempts": BackgroundTask.attempts + 1,
                "updated_at": now,
            },
        )

    async def mark_completed(self, task_id: str) -> TaskRecord:
        now = self.clock()
        return await self._transition(
            task_id,
            expected=TaskStatus.PROCESSING,
            target=TaskStatus.COMPLETED,
            values={
                "status": TaskStatus.COMPLETED.value,
                "completed_at": now,
                "updated_at": now,
            },
        )

    async def mark_failed(
        self, task_id: str, error: str, retry_at: datetime | None = None
    ) -> TaskRecord:
        exhausted = BackgroundTask.attempts >= BackgroundTask.max_attempts
        values: dict[str, Any] = {
            "error": error,
            "updated_at": self.clock(),
            "status": case(
                (exhausted, TaskStatus.FAILED.value),
                else_=TaskStatus.PENDING.value,
            ),
        }
        if retry_at is not None:
            values["scheduled_for"] = case(
                (exhausted, BackgroundTask.scheduled_for),
                else_=literal(retry_at, BackgroundTask.scheduled_for.type),
            )

        return await self._transition(
            task_id,
            expected=TaskStatus.PROCESSING,
            target=TaskStatus.FAILED,
            values=values,
        )

    async def get_task(self, task_id: str) -> TaskRecord | None:
        pk = _parse_id(task_id)
        if pk is None:
            return None

        try:
            async with self.session_factory() as session:
                row = await session.get(BackgroundTask, pk)
                return _to_record(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load task {task_id}: {e}") from e

    async def count_by_status(self) -> dict[str, int]:
        query = select(BackgroundTask.status, func.count(BackgroundTask.id)).group_by(
            BackgroundTask.status
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return {status: count for status, count in result.all()}
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to count tasks: {e}") from e

    async def _transition(
        self,
        task_id: str,
        expected: TaskStatus,
        target: TaskStatus,
        values: dict[str, Any],
    ) -> TaskRecord:
        """Apply ``values`` only if the task is still in ``expected`` status."""
        pk = _parse_id(task_id)
        if pk is None:
            raise TaskNotFoundError(task_id)

        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(BackgroundTask)
                    .where(
                        and_(
                            BackgroundTask.id == pk,
                            BackgroundTask.status == expected.value,
                        )
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                updated = result.rowcount
                await session.commit()

                row = await session.get(BackgroundTask, pk, populate_existing=True)
        except SQLAlchemyError as e:
            logger.exception(
                "Task transition failed",
                extra={"task_id": task_id, "target": target.value},
            )
            raise StorageError(f"Failed to update task {task_id}: {e}") from e

        if row is None:
            raise TaskNotFoundError(task_id)
        if updated == 0:
            raise InvalidTransitionError(task_id, row.status, target.value)

        return _to_record(row)
