"""Tests for the daily-summary and weekly-report handlers."""

from __future__ import annotations

from datetime import timedelta

import pytest

from followupx.handlers.summary import daily_summary, weekly_report
from followupx.models import LeadStatus, TaskStatus, User


async def reload_user(session_factory, user_id):
    async with session_factory() as session:
        return await session.get(User, user_id)


@pytest.mark.asyncio
async def test_daily_summary_counts_today_and_overdue(factory, make_ctx, delivery, session_factory, now):
    user = await factory.user(daily_summary=True)
    lead = await factory.lead(user)
    await factory.task(user, lead, due_date=now + timedelta(hours=2))
    await factory.task(user, lead, due_date=now - timedelta(days=2))
    await factory.task(user, lead, due_date=now + timedelta(days=3))
    await factory.task(user, lead, due_date=now, status=TaskStatus.COMPLETED)

    await daily_summary(make_ctx("daily-summary"))

    assert delivery.summaries == [(user.id, {"today_tasks": 1, "overdue_tasks": 1})]
    assert (await reload_user(session_factory, user.id)).last_daily_summary_at == now


@pytest.mark.asyncio
async def test_daily_summary_unknown_timezone_uses_scheduler_timezone(factory, make_ctx, delivery, now):
    broken = await factory.user(daily_summary=True, timezone="Mars/Olympus_Mons")
    healthy = await factory.user(daily_summary=True)
    for user in (broken, healthy):
        await factory.task(user, await factory.lead(user), due_date=now + timedelta(hours=2))

    await daily_summary(make_ctx("daily-summary"))

    assert sorted(delivery.summaries) == sorted(
        [
            (broken.id, {"today_tasks": 1, "overdue_tasks": 0}),
            (healthy.id, {"today_tasks": 1, "overdue_tasks": 0}),
        ]
    )


@pytest.mark.asyncio
async def test_daily_summary_skips_users_with_nothing_due(factory, make_ctx, delivery, session_factory, now):
    user = await factory.user(daily_summary=True)

    await daily_summary(make_ctx("daily-summary"))

    assert delivery.summaries == []
    assert (await reload_user(session_factory, user.id)).last_daily_summary_at == now


@pytest.mark.asyncio
@pytest.mark.parametrize("fields", [{"daily_summary": None}, {"daily_summary": False}, {"daily_summary": True, "is_active": False}])
async def test_daily_summary_requires_active_opt_in(factory, make_ctx, delivery, now, fields):
    user = await factory.user(**fields)
    lead = await factory.lead(user)
    await factory.task(user, lead, due_date=now + timedelta(hours=1))

    await daily_summary(make_ctx("daily-summary"))

    assert delivery.summaries == []


@pytest.mark.asyncio
async def test_daily_summary_once_per_occurrence(factory, make_ctx, delivery, now):
    user = await factory.user(daily_summary=True)
    lead = await factory.lead(user)
    await factory.task(user, lead, due_date=now + timedelta(hours=1))

    ctx = make_ctx("daily-summary")
    await daily_summary(ctx)
    await daily_summary(ctx)
    assert len(delivery.summaries) == 1

    tomorrow = now + timedelta(days=1)
    await daily_summary(make_ctx("daily-summary", now=tomorrow))
    assert len(delivery.summaries) == 2


@pytest.mark.asyncio
async def test_daily_summary_resumes_after_partial_run(factory, make_ctx, delivery, now):
    first = await factory.user(daily_summary=True)
    second = await factory.user(daily_summary=True)
    for user in (first, second):
        lead = await factory.lead(user)
        await factory.task(user, lead, due_date=now + timedelta(hours=1))

    calls = 0
    original = delivery.send_daily_summary

    async def flaky(user, stats):
        nonlocal calls
        calls += 1
        if calls == 2:
            raise ConnectionError("smtp reset")
        await original(user, stats)

    delivery.send_daily_summary = flaky
    ctx = make_ctx("daily-summary")
    with pytest.raises(ConnectionError):
        await daily_summary(ctx)
    await daily_summary(ctx)

    assert sorted(uid for uid, _ in delivery.summaries) == sorted([first.id, second.id])


@pytest.mark.asyncio
async def test_weekly_report_stats(factory, make_ctx, delivery, session_factory, now):
    user = await factory.user(weekly_report=True)
    await factory.lead(user, created_at=now - timedelta(days=1))
    await factory.lead(user, created_at=now - timedelta(days=10))
    await factory.lead(
        user,
        status=LeadStatus.WON,
        won_at=now - timedelta(days=2),
        created_at=now - timedelta(days=30),
    )
    lead = await factory.lead(user, created_at=now - timedelta(days=30))
    await factory.task(
        user, lead, status=TaskStatus.COMPLETED, completed_at=now - timedelta(days=3)
    )
    await factory.task(
        user, lead, status=TaskStatus.COMPLETED, completed_at=now - timedelta(days=8)
    )

    await weekly_report(make_ctx("weekly-report"))

    assert delivery.reports == [
        (user.id, {"leads_added": 1, "tasks_completed": 1, "deals_won": 1})
    ]
    assert (await reload_user(session_factory, user.id)).last_weekly_report_at == now


@pytest.mark.asyncio
async def test_weekly_report_always_sent(factory, make_ctx, delivery):
    user = await factory.user(weekly_report=True)
    await factory.user(weekly_report=None)

    await weekly_report(make_ctx("weekly-report"))

    assert delivery.reports == [
        (user.id, {"leads_added": 0, "tasks_completed": 0, "deals_won": 0})
    ]


@pytest.mark.asyncio
async def test_weekly_report_once_per_occurrence(factory, make_ctx, delivery):
    await factory.user(weekly_report=True)
    ctx = make_ctx("weekly-report")
    await weekly_report(ctx)
    await weekly_report(ctx)
    assert len(delivery.reports) == 1
