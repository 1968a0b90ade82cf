"""add background_tasks table

Revision ID: 3b9e1f0a7c52
Revises:
Create Date: 2026-10-19 09:12:40.518204

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b9e1f0a7c52"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "background_tasks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "task_type",
            sa.Text,
            nullable=False,
            comment="Task type used to route to a processor",
        ),
        sa.Column("payload", sa.JSON, nullable=False, comment="Opaque task payload"),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="pending",
            comment="Task status: pending|processing|completed|failed",
        ),
        sa.Column(
            "attempts",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Processing attempts started",
        ),
        sa.Column(
            "max_attempts",
            sa.Integer,
            nullable=False,
            server_default="3",
            comment="Attempt ceiling",
        ),
        sa.Column("error", sa.Text, nullable=True, comment="Last failure message"),
        sa.Column(
            "scheduled_for",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="Not-before timestamp",
        ),
        # Timestamps
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        # Constraints
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="background_tasks_status_check",
        ),
    )

    # Backs the worker polling query on (status, scheduled_for)
    op.create_index(
        "idx_background_tasks_status_scheduled",
        "background_tasks",
        ["status", "scheduled_for"],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(
        "idx_background_tasks_status_scheduled", table_name="background_tasks"
    )
    op.drop_table("background_tasks")
