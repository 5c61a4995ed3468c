"""Tests for the send-task-reminder handler."""

from __future__ import annotations

import dataclasses
from datetime import timedelta

import pytest
from sqlalchemy import select

from followupx.core.tasks import TaskService
from followupx.handlers.reminders import send_task_reminder
from followupx.scheduler.service import Scheduler
from followupx.models import Notification, NotificationType, Task, TaskStatus


async def all_notifications(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(Notification))
        return list(result.scalars().all())


async def reload_task(session_factory, task_id):
    async with session_factory() as session:
        return await session.get(Task, task_id)


@pytest.mark.asyncio
async def test_reminder_creates_notification_and_flips_flag(factory, make_ctx, session_factory, delivery):
    user = await factory.user(email_reminders=True)
    lead = await factory.lead(user, name="Rahul Verma")
    task = await factory.task(user, lead, title="Send proposal")

    await send_task_reminder(
        make_ctx("send-task-reminder", {"task_id": task.id, "user_id": user.id, "lead_id": lead.id})
    )

    [notification] = await all_notifications(session_factory)
    assert notification.type == NotificationType.TASK_REMINDER
    assert notification.user_id == user.id
    assert notification.message == "Reminder: Send proposal for Rahul Verma"
    assert notification.action_url == f"/tasks/{task.id}"
    assert notification.action_text == "View Task"
    assert notification.task_id == task.id
    assert delivery.reminders == [(user.id, task.id)]
    assert (await reload_task(session_factory, task.id)).reminder_sent is True


@pytest.mark.asyncio
async def test_reminder_fired_twice_notifies_once(factory, make_ctx, session_factory, delivery):
    user = await factory.user(email_reminders=True)
    lead = await factory.lead(user)
    task = await factory.task(user, lead)
    ctx = make_ctx("send-task-reminder", {"task_id": task.id})

    await send_task_reminder(ctx)
    await send_task_reminder(ctx)

    assert len(await all_notifications(session_factory)) == 1
    assert len(delivery.reminders) == 1


@pytest.mark.asyncio
async def test_reminder_skips_completed_task(factory, make_ctx, session_factory, delivery):
    user = await factory.user(email_reminders=True)
    lead = await factory.lead(user)
    task = await factory.task(user, lead, status=TaskStatus.COMPLETED)

    await send_task_reminder(make_ctx("send-task-reminder", {"task_id": task.id}))

    assert await all_notifications(session_factory) == []
    assert delivery.reminders == []


@pytest.mark.asyncio
async def test_reminder_for_missing_task_is_noop(make_ctx, session_factory, delivery):
    await send_task_reminder(make_ctx("send-task-reminder", {"task_id": "gone"}))
    await send_task_reminder(make_ctx("send-task-reminder", {}))
    assert await all_notifications(session_factory) == []
    assert delivery.reminders == []


@pytest.mark.asyncio
@pytest.mark.parametrize("preference", [None, False])
async def test_reminder_email_requires_opt_in(factory, make_ctx, session_factory, delivery, preference):
    user = await factory.user(email_reminders=preference)
    lead = await factory.lead(user)
    task = await factory.task(user, lead)

    await send_task_reminder(make_ctx("send-task-reminder", {"task_id": task.id}))

    assert len(await all_notifications(session_factory)) == 1
    assert delivery.reminders == []


@pytest.mark.asyncio
async def test_delivery_failure_leaves_reminder_retryable(factory, make_ctx, session_factory, delivery):
    user = await factory.user(email_reminders=True)
    lead = await factory.lead(user)
    task = await factory.task(user, lead)
    ctx = make_ctx("send-task-reminder", {"task_id": task.id})

    delivery.fail_with = ConnectionError("smtp unreachable")
    with pytest.raises(ConnectionError):
        await send_task_reminder(ctx)
    assert await all_notifications(session_factory) == []
    assert (await reload_task(session_factory, task.id)).reminder_sent is False

    delivery.fail_with = None
    await send_task_reminder(ctx)
    assert len(await all_notifications(session_factory)) == 1
    assert (await reload_task(session_factory, task.id)).reminder_sent is True


@pytest.mark.asyncio
async def test_reminder_moved_during_delivery_still_fires(
    factory, make_ctx, session_factory, settings, delivery, now
):
    user = await factory.user(email_reminders=True)
    lead = await factory.lead(user)
    task = await factory.task(user, lead)
    tasks = TaskService(session_factory, Scheduler(session_factory, delivery, settings))
    moved_to = now + timedelta(hours=3)
    new_job_ids = []
    send = delivery.send_reminder

    async def send_and_move(user, task):
        await send(user, task)
        if not new_job_ids:
            new_job_ids.append(await tasks.reschedule_reminder(task.id, moved_to))

    delivery.send_reminder = send_and_move
    ctx = make_ctx("send-task-reminder", {"task_id": task.id})

    await send_task_reminder(ctx)

    stored = await reload_task(session_factory, task.id)
    assert stored.reminder_sent is False
    assert stored.reminder_job_id == new_job_ids[0]
    assert await all_notifications(session_factory) == []

    await send_task_reminder(dataclasses.replace(ctx, job_id=new_job_ids[0], now=moved_to))

    assert len(delivery.reminders) == 2
    assert len(await all_notifications(session_factory)) == 1
    assert (await reload_task(session_factory, task.id)).reminder_sent is True


@pytest.mark.asyncio
async def test_reminder_owned_by_another_job_is_skipped(factory, make_ctx, session_factory, delivery):
    user = await factory.user(email_reminders=True)
    lead = await factory.lead(user)
    task = await factory.task(user, lead, reminder_job_id="newer-job")

    await send_task_reminder(make_ctx("send-task-reminder", {"task_id": task.id}))

    assert delivery.reminders == []
    assert (await reload_task(session_factory, task.id)).reminder_sent is False
