"""Tests for followupx.delivery (SMTP email and log-only delivery)."""

from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from followupx.config import Settings
from followupx.models import MessageChannel


def smtp_settings(**kwargs):
    defaults = {
        "email_smtp_host": "smtp.example.com",
        "email_smtp_port": 587,
        "email_username": "bot@example.com",
        "email_password": "secret",
    }
    defaults.update(kwargs)
    return Settings(**defaults)


def make_user():
    return SimpleNamespace(id="u1", email="asha@example.com", display_name="Asha")


def make_task():
    return SimpleNamespace(
        id="t1",
        title="Send proposal",
        due_date=datetime(2026, 3, 10, 9, 0, tzinfo=UTC),
        priority="high",
        description=None,
    )


def test_get_delivery_picks_implementation():
    from followupx.delivery import LogDelivery, get_delivery
    from followupx.delivery.email import EmailDelivery

    assert isinstance(get_delivery(Settings(email_smtp_host=None, email_username=None)), LogDelivery)
    assert isinstance(get_delivery(smtp_settings()), EmailDelivery)


def test_channels():
    from followupx.delivery import LogDelivery
    from followupx.delivery.email import EmailDelivery

    assert EmailDelivery.channels == frozenset({MessageChannel.EMAIL})
    assert LogDelivery.channels == frozenset()


def test_render_reminder_template():
    from followupx.delivery.email import EmailDelivery

    body = EmailDelivery(smtp_settings()).render("task_reminder.txt", user=make_user(), task=make_task())
    assert "Hi Asha," in body
    assert "Send proposal" in body
    assert "10 Mar 2026 09:00" in body
    assert "/tasks/t1" in body
    assert "FollowUpX" in body


@pytest.mark.asyncio
async def test_send_reminder_over_smtp():
    from followupx.delivery.email import EmailDelivery

    server = MagicMock()
    with patch("followupx.delivery.email.smtplib.SMTP") as smtp_cls:
        smtp_cls.return_value.__enter__.return_value = server
        await EmailDelivery(smtp_settings()).send_reminder(make_user(), make_task())

    smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=30.0)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("bot@example.com", "secret")
    from_addr, to_addr, raw = server.sendmail.call_args.args
    assert to_addr == "asha@example.com"
    assert "Subject: Reminder: Send proposal" in raw


@pytest.mark.asyncio
async def test_send_daily_summary_subject():
    from followupx.delivery.email import EmailDelivery

    delivery = EmailDelivery(smtp_settings())
    with patch.object(delivery, "send") as send:
        await delivery.send_daily_summary(make_user(), {"today_tasks": 2, "overdue_tasks": 1})
    to, subject, body = send.call_args.args
    assert to == "asha@example.com"
    assert subject == "Your day: 3 follow-ups waiting"
    assert "Due today: 2" in body


@pytest.mark.asyncio
async def test_send_weekly_report_body():
    from followupx.delivery.email import EmailDelivery

    delivery = EmailDelivery(smtp_settings())
    with patch.object(delivery, "send") as send:
        await delivery.send_weekly_report(
            make_user(), {"leads_added": 4, "tasks_completed": 9, "deals_won": 1}
        )
    _, subject, body = send.call_args.args
    assert subject == "Your weekly FollowUpX report"
    assert "Tasks completed: 9" in body


@pytest.mark.asyncio
async def test_send_requires_configuration():
    from followupx.delivery.email import EmailDelivery

    delivery = EmailDelivery(Settings(email_smtp_host=None, email_username=None))
    with pytest.raises(RuntimeError, match="not configured"):
        await delivery.send("a@example.com", "s", "b")


@pytest.mark.asyncio
async def test_scheduled_message_requires_email_channel():
    from followupx.delivery.email import EmailDelivery

    delivery = EmailDelivery(smtp_settings())
    whatsapp = SimpleNamespace(id="m1", channel=MessageChannel.WHATSAPP, recipient_email=None, content="hi")
    with pytest.raises(ValueError, match="not deliverable"):
        await delivery.send_scheduled_message(whatsapp)
    no_recipient = SimpleNamespace(id="m2", channel=MessageChannel.EMAIL, recipient_email=None, content="hi")
    with pytest.raises(ValueError, match="no recipient"):
        await delivery.send_scheduled_message(no_recipient)


@pytest.mark.asyncio
async def test_scheduled_email_message_sent():
    from followupx.delivery.email import EmailDelivery

    delivery = EmailDelivery(smtp_settings())
    message = SimpleNamespace(
        id="m1", channel=MessageChannel.EMAIL, recipient_email="lead@example.com", content="Checking in"
    )
    with patch.object(delivery, "send") as send:
        await delivery.send_scheduled_message(message)
    send.assert_awaited_once_with("lead@example.com", "Message from FollowUpX", "Checking in")


@pytest.mark.asyncio
async def test_log_delivery_never_raises():
    from followupx.delivery import LogDelivery

    delivery = LogDelivery()
    await delivery.send_reminder(make_user(), make_task())
    await delivery.send_daily_summary(make_user(), {"today_tasks": 0})
    await delivery.send_weekly_report(make_user(), {})
    await delivery.send_scheduled_message(
        SimpleNamespace(id="m1", channel=MessageChannel.SMS, lead_id="l1")
    )
