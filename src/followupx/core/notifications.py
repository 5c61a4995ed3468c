"""Notification service: the only write path for notification content."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from followupx.config import Settings, get_settings
from followupx.db.repository import Repository
from followupx.models.base import utcnow
from followupx.models.notification import Notification, NotificationPriority, NotificationType

logger = logging.getLogger(__name__)

_ACTION_TEXT = {
    NotificationType.TASK_REMINDER: "View Task",
    NotificationType.TASK_OVERDUE: "View Task",
    NotificationType.TASK_ASSIGNED: "View Task",
    NotificationType.AI_RECOVERY: "Review Leads",
    NotificationType.LEAD_ASSIGNED: "View Lead",
    NotificationType.DEAL_WON: "View Details",
    NotificationType.DEAL_LOST: "View Details",
}


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


class NotificationService:
    """Creates notifications and manages their read state."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(Notification, session)

    async def notify(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        *,
        action_url: str | None = None,
        lead_id: str | None = None,
        task_id: str | None = None,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        extra: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> Notification:
        """Create a notification with the default action text for its type."""
        now = now or utcnow()
        notification = await self.repo.insert_one(
            user_id=user_id,
            type=type,
            title=title[:200],
            message=message[:500],
            action_url=action_url,
            action_text=_ACTION_TEXT.get(type, "View"),
            lead_id=lead_id,
            task_id=task_id,
            priority=priority,
            extra=extra or {},
            created_at=now,
            expires_at=now + timedelta(days=self.settings.notification_ttl_days),
        )
        logger.debug("Notification %s (%s) created for user %s", notification.id, type, user_id)
        return notification

    async def unread(self, user_id: str, limit: int = 50) -> list[Notification]:
        return await self.repo.find(
            Notification.user_id == user_id,
            Notification.read.is_(False),
            order_by=Notification.created_at.desc(),
            limit=limit,
        )

    async def unread_count(self, user_id: str) -> int:
        return await self.repo.count(Notification.user_id == user_id, Notification.read.is_(False))

    async def mark_read(self, notification_id: str, now: datetime | None = None) -> bool:
        return await self.repo.update_one(
            [Notification.id == notification_id, Notification.read.is_(False)],
            {"read": True, "read_at": now or utcnow()},
        )

    async def mark_all_read(self, user_id: str, now: datetime | None = None) -> int:
        return await self.repo.update_many(
            [Notification.user_id == user_id, Notification.read.is_(False)],
            {"read": True, "read_at": now or utcnow()},
        )

    async def purge_expired(self, now: datetime | None = None) -> int:
        return await self.repo.delete_many(Notification.expires_at < (now or utcnow()))
