"""Shared fixtures: a throwaway SQLite database and record factories."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

os.environ.setdefault("DB_PASSWORD", "test-password")

from followupx.config import Settings  # noqa: E402
from followupx.db.session import create_all, create_engine, make_session_factory  # noqa: E402
from followupx.delivery.base import DeliveryService  # noqa: E402
from followupx.models import (  # noqa: E402
    Lead,
    LeadStatus,
    MessageChannel,
    ScheduledMessage,
    Task,
    TaskStatus,
    User,
)
from followupx.scheduler.registry import JobContext  # noqa: E402
from followupx.scheduler.store import JobStore  # noqa: E402

# 2026-03-10 10:00 in Asia/Kolkata
NOW = datetime(2026, 3, 10, 4, 30, tzinfo=UTC)


class RecordingDelivery(DeliveryService):
    """Delivery double that records every call and can be told to fail."""

    channels = frozenset(MessageChannel)

    def __init__(self) -> None:
        self.reminders: list[tuple[str, str]] = []
        self.summaries: list[tuple[str, dict]] = []
        self.reports: list[tuple[str, dict]] = []
        self.messages: list[str] = []
        self.fail_with: Exception | None = None

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def send_reminder(self, user, task) -> None:
        self._maybe_fail()
        self.reminders.append((user.id, task.id))

    async def send_daily_summary(self, user, stats) -> None:
        self._maybe_fail()
        self.summaries.append((user.id, dict(stats)))

    async def send_weekly_report(self, user, stats) -> None:
        self._maybe_fail()
        self.reports.append((user.id, dict(stats)))

    async def send_scheduled_message(self, message) -> None:
        self._maybe_fail()
        self.messages.append(message.id)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        scheduler_timezone="Asia/Kolkata",
        scheduler_tick_seconds=0.01,
        scheduler_lease_seconds=600,
        scheduler_handler_timeout_seconds=5.0,
        scheduler_max_attempts=3,
        scheduler_retry_backoff_seconds=60,
        scheduler_shutdown_grace_seconds=1.0,
        email_smtp_host=None,
        email_username=None,
    )


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'followupx.db'}")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def store(session_factory, settings) -> JobStore:
    return JobStore(session_factory, settings)


class Factory:
    """Inserts domain records with sensible defaults."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory
        self._seq = 0

    async def _add(self, obj: Any) -> Any:
        async with self.session_factory() as session:
            session.add(obj)
            await session.commit()
        return obj

    async def user(self, **fields: Any) -> User:
        self._seq += 1
        fields.setdefault("email", f"user{self._seq}@example.com")
        fields.setdefault("full_name", f"User {self._seq}")
        fields.setdefault("is_active", True)
        fields.setdefault("timezone", "Asia/Kolkata")
        return await self._add(User(**fields))

    async def lead(self, user: User, **fields: Any) -> Lead:
        fields.setdefault("name", "Priya Sharma")
        fields.setdefault("status", LeadStatus.NEW)
        fields.setdefault("is_deleted", False)
        return await self._add(Lead(user_id=user.id, **fields))

    async def task(self, user: User, lead: Lead, **fields: Any) -> Task:
        fields.setdefault("title", "Call back")
        fields.setdefault("due_date", NOW + timedelta(hours=2))
        fields.setdefault("status", TaskStatus.PENDING)
        fields.setdefault("reminder_sent", False)
        fields.setdefault("overdue_notified", False)
        fields.setdefault("is_recurring", False)
        return await self._add(Task(user_id=user.id, lead_id=lead.id, **fields))

    async def message(self, user: User, lead: Lead, **fields: Any) -> ScheduledMessage:
        fields.setdefault("channel", MessageChannel.EMAIL)
        fields.setdefault("content", "Hi, following up on our call.")
        fields.setdefault("scheduled_time", NOW - timedelta(minutes=1))
        fields.setdefault("recipient_email", "lead@example.com")
        fields.setdefault("retry_count", 0)
        return await self._add(ScheduledMessage(user_id=user.id, lead_id=lead.id, **fields))


@pytest.fixture
def factory(session_factory) -> Factory:
    return Factory(session_factory)


@pytest.fixture
def make_ctx(session_factory, delivery, settings, store):
    def _make(
        name: str,
        data: dict | None = None,
        now: datetime = NOW,
        occurrence_at: datetime | None = None,
    ) -> JobContext:
        return JobContext(
            job_id="job-under-test",
            name=name,
            data=data or {},
            now=now,
            occurrence_at=occurrence_at or now,
            session_factory=session_factory,
            delivery=delivery,
            settings=settings,
            store=store,
        )

    return _make


@pytest.fixture
def now() -> datetime:
    return NOW
