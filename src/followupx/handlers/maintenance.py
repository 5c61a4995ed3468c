"""Housekeeping handler."""

from __future__ import annotations

import logging
from datetime import timedelta

from followupx.core.notifications import NotificationService
from followupx.scheduler.registry import JobContext

logger = logging.getLogger(__name__)

JOB_NAME = "notification-cleanup"


async def notification_cleanup(ctx: JobContext) -> None:
    """Delete expired notifications and finished jobs past retention."""
    async with ctx.session_factory() as session:
        notifications = await NotificationService(session, ctx.settings).purge_expired(ctx.now)
        await session.commit()

    jobs = 0
    if ctx.store is not None:
        retention = timedelta(days=ctx.settings.scheduler_job_retention_days)
        jobs = await ctx.store.purge_finished(ctx.now - retention)

    logger.info("Cleanup removed %d notification(s) and %d job(s)", notifications, jobs)
