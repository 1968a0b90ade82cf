"""
Persistence models for background tasks.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, TIMESTAMP, CheckConstraint, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from background_jobs.infra.database import Base


class TaskStatus(str, Enum):
    """Task status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        """Completed and failed tasks never change again."""
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class BackgroundTask(Base):
    """
    Durable task row.

    The composite (status, scheduled_for) index backs the worker polling
    query: ``status = 'pending' AND (scheduled_for IS NULL OR scheduled_for <= now)``.
    """

    __tablename__ = "background_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_type: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Task type used to route to a processor"
    )
    payload: Mapped[Any] = mapped_column(
        JSON, nullable=False, comment="Opaque task payload"
    )

    # Task state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=TaskStatus.PENDING.value,
        comment="Task status: pending|processing|completed|failed",
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Processing attempts started"
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3, comment="Attempt ceiling"
    )
    error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last failure message"
    )
    scheduled_for: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="Not-before timestamp"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    started_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="background_tasks_status_check",
        ),
        Index("idx_background_tasks_status_scheduled", "status", "scheduled_for"),
    )
