"""Daily overdue scan."""

from __future__ import annotations

import logging

from followupx.core.dates import today_start
from followupx.core.notifications import NotificationService, plural
from followupx.db.repository import Repository
from followupx.models.notification import NotificationType
from followupx.models.task import Task, TaskStatus
from followupx.scheduler.registry import JobContext

logger = logging.getLogger(__name__)

JOB_NAME = "daily-overdue-scan"


async def daily_overdue_scan(ctx: JobContext) -> None:
    """Tell each owner how many of their pending tasks became overdue.

    A task is overdue once its due date falls before the start of today in
    the scheduler timezone. Each task is counted in at most one notification:
    the ``overdue_notified`` flags are flipped in the same transaction as the
    notification insert, one owner at a time.
    """
    cutoff = today_start(ctx.now, ctx.settings.scheduler_timezone)
    overdue = [
        Task.due_date < cutoff,
        Task.status == TaskStatus.PENDING,
        Task.overdue_notified.is_not(True),
    ]

    async with ctx.session_factory() as session:
        owners = await Repository(Task, session).distinct(Task.user_id, *overdue)

    notified = 0
    for user_id in owners:
        async with ctx.session_factory() as session:
            tasks = Repository(Task, session)
            task_ids = [t.id for t in await tasks.find(*overdue, Task.user_id == user_id)]
            if not task_ids:
                continue
            flagged = await tasks.update_many(
                [*overdue, Task.id.in_(task_ids)], {"overdue_notified": True}
            )
            if not flagged:
                await session.rollback()
                continue
            await NotificationService(session, ctx.settings).notify(
                user_id,
                NotificationType.TASK_OVERDUE,
                "Overdue Tasks",
                f"You have {plural(flagged, 'overdue task')} that need attention",
                action_url="/tasks?filter=overdue",
                extra={"task_ids": task_ids[:50]},
                now=ctx.now,
            )
            await session.commit()
            notified += 1

    logger.info("Overdue scan notified %d of %d owner(s)", notified, len(owners))
