"""Task model: user-visible follow-up work."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from followupx.db.session import Base
from followupx.models.base import TimestampMixin, UTCDateTime, new_uuid


class TaskStatus(enum.StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RecurrenceFrequency(enum.StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Task(Base, TimestampMixin):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_user_status_due", "user_id", "status", "due_date"),
        Index("ix_tasks_status_due_overdue", "status", "due_date", "overdue_notified"),
        Index("ix_tasks_parent_due", "parent_task_id", "due_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    lead_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(20), default="follow_up")
    description: Mapped[str | None] = mapped_column(Text)
    priority: Mapped[str] = mapped_column(String(10), default="medium")
    due_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[TaskStatus] = mapped_column(
        Enum(TaskStatus, values_callable=lambda e: [m.value for m in e]),
        default=TaskStatus.PENDING,
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    # Reminders
    reminder_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    overdue_notified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_job_id: Mapped[str | None] = mapped_column(String(36))

    # Recurrence
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurrence_frequency: Mapped[RecurrenceFrequency | None] = mapped_column(
        Enum(RecurrenceFrequency, values_callable=lambda e: [m.value for m in e])
    )
    recurrence_interval: Mapped[int | None] = mapped_column(Integer)
    recurrence_end_date: Mapped[datetime | None] = mapped_column(UTCDateTime)
    recurrence_last_created: Mapped[datetime | None] = mapped_column(UTCDateTime)
    parent_task_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("tasks.id", ondelete="SET NULL")
    )

    def __repr__(self) -> str:
        return f"<Task {self.id!r} status={self.status!r}>"
