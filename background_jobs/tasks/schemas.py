"""
Pydantic schemas for background tasks.
"""

from datetime import datetime
from typing import Any, ClassVar

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from background_jobs.tasks.models import TaskStatus

DEFAULT_MAX_ATTEMPTS = 3


class TaskRecord(BaseModel):
    """One unit of enqueued work and its execution state."""

    id: str
    task_type: str
    payload: Any = None
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    error: str | None = None
    scheduled_for: datetime | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def is_ready(self, now: datetime) -> bool:
        """Pending and past its not-before time."""
        return self.status == TaskStatus.PENDING and (
            self.scheduled_for is None or self.scheduled_for <= now
        )

    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def can_retry(self) -> bool:
        """Whether another failed attempt would send the task back to pending."""
        return self.attempts < self.max_attempts


class Task(BaseModel):
    """
    Base class for typed task values.

    Subclasses set ``task_type`` and declare their fields; the queue stores
    the JSON form of the instance as the payload.
    """

    task_type: ClassVar[str]


class TaskEnqueueRequest(BaseModel):
    """Schema for enqueueing tasks via API."""

    task_type: str = Field(..., min_length=1, description="Task type")
    payload: Any = Field(default_factory=dict, description="Task payload")
    scheduled_for: AwareDatetime | None = Field(
        default=None, description="Earliest time to run the task, with a UTC offset"
    )
    max_attempts: int = Field(
        default=DEFAULT_MAX_ATTEMPTS, ge=1, le=100, description="Attempt ceiling"
    )


class TaskStatsResponse(BaseModel):
    """Schema for queue statistics."""

    by_status: dict[str, int]
    queue_depth: int  # pending + processing

    model_config = ConfigDict(frozen=True)
