"""Scheduled message sweep."""

from __future__ import annotations

import logging

from followupx.core.messages import MessageService
from followupx.db.repository import Repository
from followupx.errors import InvalidTransitionError
from followupx.models.scheduled_message import MessageStatus, ScheduledMessage
from followupx.scheduler.registry import JobContext

logger = logging.getLogger(__name__)

JOB_NAME = "scheduled-message-sweep"


async def scheduled_message_sweep(ctx: JobContext) -> None:
    """Deliver pending messages whose time has come, and retry failed ones.

    Only channels the delivery service supports are picked up; the rest stay
    pending for the user to send by hand. A failed delivery is recorded on the
    message itself and does not fail the sweep.
    """
    channels = list(ctx.delivery.channels)
    if not channels:
        return
    limit = ctx.settings.message_sweep_batch_size

    async with ctx.session_factory() as session:
        repo = Repository(ScheduledMessage, session)
        retryable = await repo.find(
            ScheduledMessage.status == MessageStatus.FAILED,
            ScheduledMessage.retry_count < ctx.settings.message_max_retries,
            ScheduledMessage.channel.in_(channels),
            order_by=ScheduledMessage.scheduled_time,
            limit=limit,
        )
        for message in retryable:
            await MessageService(session, ctx.settings).retry(message.id)
        await session.commit()

        due = await repo.find(
            ScheduledMessage.status == MessageStatus.PENDING,
            ScheduledMessage.scheduled_time <= ctx.now,
            ScheduledMessage.channel.in_(channels),
            order_by=ScheduledMessage.scheduled_time,
            limit=limit,
        )
        due_ids = [m.id for m in due]

    sent = failed = 0
    for message_id in due_ids:
        async with ctx.session_factory() as session:
            service = MessageService(session, ctx.settings)
            message = await service.get(message_id)
            if message.status != MessageStatus.PENDING:
                continue
            error: str | None = None
            try:
                await ctx.delivery.send_scheduled_message(message)
            except Exception as exc:
                logger.warning("Delivery of message %s failed: %s", message_id, exc)
                error = f"{type(exc).__name__}: {exc}"
            try:
                if error is None:
                    await service.mark_sent(message_id, ctx.now)
                    sent += 1
                else:
                    await service.mark_failed(message_id, error)
                    failed += 1
            except InvalidTransitionError:
                # Cancelled while we were sending.
                logger.warning("Message %s changed state during delivery", message_id)
                await session.rollback()
                continue
            await session.commit()

    if due_ids:
        logger.info("Message sweep: %d sent, %d failed", sent, failed)
