"""Tests for the daily-overdue-scan handler."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from followupx.handlers.overdue import daily_overdue_scan
from followupx.models import Notification, NotificationType, Task, TaskStatus


async def notifications_for(session_factory, user_id):
    async with session_factory() as session:
        result = await session.execute(select(Notification).where(Notification.user_id == user_id))
        return list(result.scalars().all())


async def overdue_flag(session_factory, task_id):
    async with session_factory() as session:
        return (await session.get(Task, task_id)).overdue_notified


@pytest.mark.asyncio
async def test_single_overdue_task(factory, make_ctx, session_factory, now):
    user = await factory.user()
    lead = await factory.lead(user)
    task = await factory.task(user, lead, due_date=now - timedelta(days=2))

    await daily_overdue_scan(make_ctx("daily-overdue-scan"))

    [notification] = await notifications_for(session_factory, user.id)
    assert notification.type == NotificationType.TASK_OVERDUE
    assert notification.message == "You have 1 overdue task that need attention"
    assert notification.action_url == "/tasks?filter=overdue"
    assert await overdue_flag(session_factory, task.id) is True


@pytest.mark.asyncio
async def test_overdue_tasks_aggregate_per_owner(factory, make_ctx, session_factory, now):
    user = await factory.user()
    other = await factory.user()
    lead = await factory.lead(user)
    other_lead = await factory.lead(other)
    a = await factory.task(user, lead, due_date=now - timedelta(days=1))
    b = await factory.task(user, lead, due_date=now - timedelta(days=3))
    c = await factory.task(other, other_lead, due_date=now - timedelta(days=1))

    await daily_overdue_scan(make_ctx("daily-overdue-scan"))

    [mine] = await notifications_for(session_factory, user.id)
    assert mine.message == "You have 2 overdue tasks that need attention"
    assert len(await notifications_for(session_factory, other.id)) == 1
    for task in (a, b, c):
        assert await overdue_flag(session_factory, task.id) is True


@pytest.mark.asyncio
async def test_overdue_scan_is_idempotent(factory, make_ctx, session_factory, now):
    user = await factory.user()
    lead = await factory.lead(user)
    await factory.task(user, lead, due_date=now - timedelta(days=2))

    ctx = make_ctx("daily-overdue-scan")
    await daily_overdue_scan(ctx)
    await daily_overdue_scan(ctx)

    assert len(await notifications_for(session_factory, user.id)) == 1


@pytest.mark.asyncio
async def test_tasks_due_today_are_not_overdue(factory, make_ctx, session_factory, now):
    user = await factory.user()
    lead = await factory.lead(user)
    # Earlier today in Asia/Kolkata (now is 10:00 IST)
    task = await factory.task(user, lead, due_date=now - timedelta(hours=3))

    await daily_overdue_scan(make_ctx("daily-overdue-scan"))

    assert await notifications_for(session_factory, user.id) == []
    assert await overdue_flag(session_factory, task.id) is False


@pytest.mark.asyncio
async def test_completed_and_already_notified_tasks_are_ignored(factory, make_ctx, session_factory, now):
    user = await factory.user()
    lead = await factory.lead(user)
    await factory.task(user, lead, due_date=now - timedelta(days=2), status=TaskStatus.COMPLETED)
    await factory.task(user, lead, due_date=now - timedelta(days=2), overdue_notified=True)

    await daily_overdue_scan(make_ctx("daily-overdue-scan"))

    assert await notifications_for(session_factory, user.id) == []


@pytest.mark.asyncio
async def test_newly_overdue_task_notified_next_day(factory, make_ctx, session_factory, now):
    user = await factory.user()
    lead = await factory.lead(user)
    await factory.task(user, lead, due_date=now - timedelta(days=2))
    await daily_overdue_scan(make_ctx("daily-overdue-scan"))

    await factory.task(user, lead, due_date=now + timedelta(hours=1))
    await daily_overdue_scan(make_ctx("daily-overdue-scan", now=now + timedelta(days=1)))

    messages = sorted(n.message for n in await notifications_for(session_factory, user.id))
    assert messages == [
        "You have 1 overdue task that need attention",
        "You have 1 overdue task that need attention",
    ]
