"""User model: only the fields the scheduler reads."""

from datetime import datetime

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from followupx.db.session import Base
from followupx.models.base import TimestampMixin, UTCDateTime, new_uuid


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[str | None] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    timezone: Mapped[str] = mapped_column(String(50), default="Asia/Kolkata")

    # Notification preferences. NULL means the user never opted in.
    email_reminders: Mapped[bool | None] = mapped_column(Boolean)
    daily_summary: Mapped[bool | None] = mapped_column(Boolean)
    weekly_report: Mapped[bool | None] = mapped_column(Boolean)

    # Occurrence markers written by the periodic handlers
    last_daily_summary_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    last_weekly_report_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    last_recovery_alert_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    def __repr__(self) -> str:
        return f"<User {self.email!r}>"
