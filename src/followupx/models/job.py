"""ScheduledJob model: durable records of pending and recurring triggers."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import JSON, Enum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from followupx.db.session import Base
from followupx.models.base import TimestampMixin, UTCDateTime, new_uuid


class JobState(enum.StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


FINISHED_STATES = (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)


class ScheduledJob(Base, TimestampMixin):
    __tablename__ = "scheduled_jobs"
    __table_args__ = (
        Index("ix_scheduled_jobs_due", "state", "scheduled_at"),
        Index("ix_scheduled_jobs_unique_key_state", "unique_key", "state"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    data: Mapped[dict] = mapped_column(JSON, default=dict)
    unique_key: Mapped[str | None] = mapped_column(String(255))
    # Mirrors unique_key only while pending; NULLs never collide.
    pending_key: Mapped[str | None] = mapped_column(String(255), unique=True)
    state: Mapped[JobState] = mapped_column(
        Enum(JobState, values_callable=lambda e: [m.value for m in e]),
        default=JobState.PENDING,
        nullable=False,
    )
    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    occurrence_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    locked_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    lock_token: Mapped[str | None] = mapped_column(String(36))
    last_run_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    last_finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    fail_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    fail_reason: Mapped[str | None] = mapped_column(Text)
    recurrence_rule: Mapped[str | None] = mapped_column(String(100))
    timezone: Mapped[str] = mapped_column(String(50), default="UTC")
    next_run_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rule)

    def __repr__(self) -> str:
        return f"<ScheduledJob {self.name!r} id={self.id!r} state={self.state!r}>"
