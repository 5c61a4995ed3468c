"""Notification model: in-app alerts produced by handlers."""

import enum
from datetime import datetime

from sqlalchemy import JSON, Boolean, Enum, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from followupx.db.session import Base
from followupx.models.base import UTCDateTime, new_uuid, utcnow


class NotificationType(enum.StrEnum):
    TASK_REMINDER = "task_reminder"
    TASK_OVERDUE = "task_overdue"
    TASK_ASSIGNED = "task_assigned"
    AI_RECOVERY = "ai_recovery"
    LEAD_ASSIGNED = "lead_assigned"
    TEAM_ACTIVITY = "team_activity"
    DEAL_WON = "deal_won"
    DEAL_LOST = "deal_lost"
    SYSTEM = "system"
    WELCOME = "welcome"
    PLAN_EXPIRY = "plan_expiry"


class NotificationPriority(enum.StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read_created", "user_id", "read", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, values_callable=lambda e: [m.value for m in e]), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    action_url: Mapped[str | None] = mapped_column(String(255))
    action_text: Mapped[str | None] = mapped_column(String(50))
    lead_id: Mapped[str | None] = mapped_column(String(36))
    task_id: Mapped[str | None] = mapped_column(String(36))
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    priority: Mapped[NotificationPriority] = mapped_column(
        Enum(NotificationPriority, values_callable=lambda e: [m.value for m in e]),
        default=NotificationPriority.NORMAL,
    )
    extra: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Notification {self.type!r} user={self.user_id!r}>"
