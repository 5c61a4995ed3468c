"""Scheduled message lifecycle.

A message starts ``pending`` and moves only along these edges::

    pending -> sent | failed | cancelled
    failed  -> pending            (retry, while retry_count < message_max_retries)

Every transition is a conditional update on the current status, so two
writers racing on the same message cannot both win.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from followupx.config import Settings, get_settings
from followupx.db.repository import Repository
from followupx.errors import InvalidTransitionError, RecordNotFoundError
from followupx.models.base import utcnow
from followupx.models.scheduled_message import MessageChannel, MessageStatus, ScheduledMessage

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = {"content", "scheduled_time", "recipient_name", "recipient_phone", "recipient_email"}


class MessageService:
    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(ScheduledMessage, session)

    async def create(
        self,
        user_id: str,
        lead_id: str,
        channel: MessageChannel,
        content: str,
        scheduled_time: datetime,
        **recipient: Any,
    ) -> ScheduledMessage:
        if not content or not content.strip():
            raise ValueError("Message content must not be empty")
        message = await self.repo.insert_one(
            user_id=user_id,
            lead_id=lead_id,
            channel=channel,
            content=content[:1000],
            scheduled_time=scheduled_time,
            status=MessageStatus.PENDING,
            **recipient,
        )
        logger.info("Scheduled %s message %s for %s", channel, message.id, scheduled_time)
        return message

    async def get(self, message_id: str) -> ScheduledMessage:
        message = await self.repo.find_by_id(message_id)
        if message is None:
            raise RecordNotFoundError(f"Scheduled message {message_id} not found")
        return message

    async def _transition(
        self,
        message_id: str,
        allowed_from: tuple[MessageStatus, ...],
        target: MessageStatus,
        patch: dict[str, Any],
        *extra_criteria: Any,
    ) -> None:
        hit = await self.repo.update_one(
            [
                ScheduledMessage.id == message_id,
                ScheduledMessage.status.in_(allowed_from),
                *extra_criteria,
            ],
            patch,
        )
        if hit:
            return
        message = await self.get(message_id)
        await self.session.refresh(message)
        raise InvalidTransitionError("message", str(message.status), str(target))

    async def update(self, message_id: str, **changes: Any) -> ScheduledMessage:
        """Edit content, time or recipient. Only pending messages are editable."""
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot edit fields: {', '.join(sorted(unknown))}")
        patch = {k: v for k, v in changes.items() if v is not None}
        if not patch:
            patch = {"status": MessageStatus.PENDING}
        await self._transition(message_id, (MessageStatus.PENDING,), MessageStatus.PENDING, patch)
        message = await self.get(message_id)
        await self.session.refresh(message)
        return message

    async def reschedule(self, message_id: str, scheduled_time: datetime) -> ScheduledMessage:
        return await self.update(message_id, scheduled_time=scheduled_time)

    async def cancel(self, message_id: str) -> None:
        await self._transition(
            message_id,
            (MessageStatus.PENDING,),
            MessageStatus.CANCELLED,
            {"status": MessageStatus.CANCELLED},
        )

    async def mark_sent(self, message_id: str, now: datetime | None = None) -> None:
        await self._transition(
            message_id,
            (MessageStatus.PENDING,),
            MessageStatus.SENT,
            {"status": MessageStatus.SENT, "sent_at": now or utcnow(), "failure_reason": None},
        )

    async def mark_failed(self, message_id: str, reason: str) -> None:
        await self._transition(
            message_id,
            (MessageStatus.PENDING,),
            MessageStatus.FAILED,
            {
                "status": MessageStatus.FAILED,
                "failure_reason": reason[:500],
                "retry_count": ScheduledMessage.retry_count + 1,
            },
        )

    async def retry(self, message_id: str) -> None:
        """Put a failed message back to pending if it has retries left."""
        await self._transition(
            message_id,
            (MessageStatus.FAILED,),
            MessageStatus.PENDING,
            {"status": MessageStatus.PENDING},
            ScheduledMessage.retry_count < self.settings.message_max_retries,
        )
