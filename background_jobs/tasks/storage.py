"""
Storage contract shared by the in-memory and durable backends.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from background_jobs.tasks.schemas import DEFAULT_MAX_ATTEMPTS, TaskRecord

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def check_limit(limit: int) -> None:
    if limit < 1:
        raise ValueError("limit must be at least 1")


class TaskStorage(ABC):
    """
    Persistence of task records.

    Every operation is a single atomic step. Transitions are only allowed
    along ``pending -> processing -> (completed | pending | failed)``;
    anything else raises ``InvalidTransitionError`` and leaves the record as
    it was.
    """

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or utcnow

    @abstractmethod
    async def enqueue(
        self,
        task_type: str,
        payload: Any,
        scheduled_for: datetime | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> TaskRecord:
        """Create a pending task with zero attempts."""

    @abstractmethod
    async def find_pending(self, limit: int) -> list[TaskRecord]:
        """
        Up to ``limit`` ready tasks, oldest ``created_at`` first.

        Raises:
            ValueError: if ``limit`` is less than 1
        """

    @abstractmethod
    async def mark_processing(self, task_id: str) -> TaskRecord:
        """Claim a pending task and count the attempt."""

    @abstractmethod
    async def mark_completed(self, task_id: str) -> TaskRecord:
        """Finish a processing task."""

    @abstractmethod
    async def mark_failed(
        self, task_id: str, error: str, retry_at: datetime | None = None
    ) -> TaskRecord:
        """
        Record a failed attempt.

        The task becomes terminally failed once ``attempts >= max_attempts``;
        otherwise it returns to pending, not before ``retry_at`` when given.
        """

    @abstractmethod
    async def get_task(self, task_id: str) -> TaskRecord | None:
        """Read-only lookup."""

    @abstractmethod
    async def count_by_status(self) -> dict[str, int]:
        """Number of tasks per status."""
