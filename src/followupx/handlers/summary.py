"""Daily summary and weekly report handlers."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfoNotFoundError

from sqlalchemy.ext.asyncio import AsyncSession

from followupx.core.dates import day_bounds
from followupx.db.repository import Repository
from followupx.models.lead import Lead, LeadStatus
from followupx.models.task import Task, TaskStatus
from followupx.models.user import User
from followupx.scheduler.registry import JobContext

logger = logging.getLogger(__name__)

DAILY_SUMMARY = "daily-summary"
WEEKLY_REPORT = "weekly-report"


def _already_done(marker: datetime | None, occurrence_at: datetime) -> bool:
    return marker is not None and marker >= occurrence_at


async def _opted_in(ctx: JobContext, preference: Any) -> list[str]:
    async with ctx.session_factory() as session:
        users = await Repository(User, session).find(
            preference.is_(True), User.is_active.is_(True), order_by=User.id
        )
        return [u.id for u in users]


async def daily_stats(
    session: AsyncSession, user: User, now: datetime, fallback_timezone: str = "UTC"
) -> dict[str, int]:
    try:
        start, end = day_bounds(now, user.timezone or fallback_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(
            "User %s has unknown timezone %r; using %s", user.id, user.timezone, fallback_timezone
        )
        start, end = day_bounds(now, fallback_timezone)
    tasks = Repository(Task, session)
    mine = [Task.user_id == user.id, Task.status == TaskStatus.PENDING]
    return {
        "today_tasks": await tasks.count(*mine, Task.due_date >= start, Task.due_date < end),
        "overdue_tasks": await tasks.count(*mine, Task.due_date < start),
    }


async def weekly_stats(session: AsyncSession, user: User, now: datetime) -> dict[str, int]:
    since = now - timedelta(days=7)
    leads = Repository(Lead, session)
    return {
        "leads_added": await leads.count(
            Lead.user_id == user.id, Lead.is_deleted.is_(False), Lead.created_at >= since
        ),
        "tasks_completed": await Repository(Task, session).count(
            Task.user_id == user.id,
            Task.status == TaskStatus.COMPLETED,
            Task.completed_at >= since,
        ),
        "deals_won": await leads.count(
            Lead.user_id == user.id, Lead.status == LeadStatus.WON, Lead.won_at >= since
        ),
    }


async def daily_summary(ctx: JobContext) -> None:
    """Send each opted-in user their tasks due today and overdue.

    Users with nothing due are skipped. ``last_daily_summary_at`` records the
    occurrence a user was handled for, so a retried or reclaimed run picks up
    where the previous attempt stopped.
    """
    sent = 0
    for user_id in await _opted_in(ctx, User.daily_summary):
        async with ctx.session_factory() as session:
            user = await Repository(User, session).find_by_id(user_id)
            if user is None or _already_done(user.last_daily_summary_at, ctx.occurrence_at):
                continue
            stats = await daily_stats(session, user, ctx.now, ctx.settings.scheduler_timezone)
            if stats["today_tasks"] or stats["overdue_tasks"]:
                await ctx.delivery.send_daily_summary(user, stats)
                sent += 1
            user.last_daily_summary_at = ctx.occurrence_at
            await session.commit()
    logger.info("Daily summary sent to %d user(s)", sent)


async def weekly_report(ctx: JobContext) -> None:
    """Send each opted-in user their activity over the trailing seven days."""
    sent = 0
    for user_id in await _opted_in(ctx, User.weekly_report):
        async with ctx.session_factory() as session:
            user = await Repository(User, session).find_by_id(user_id)
            if user is None or _already_done(user.last_weekly_report_at, ctx.occurrence_at):
                continue
            stats = await weekly_stats(session, user, ctx.now)
            await ctx.delivery.send_weekly_report(user, stats)
            user.last_weekly_report_at = ctx.occurrence_at
            await session.commit()
            sent += 1
    logger.info("Weekly report sent to %d user(s)", sent)
