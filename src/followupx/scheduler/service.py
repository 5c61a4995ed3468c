"""Scheduler facade: what the rest of the application talks to."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from followupx.config import Settings, get_settings
from followupx.delivery.base import DeliveryService
from followupx.handlers import REMINDER_JOB, periodic_jobs, register_default_handlers
from followupx.models.job import ScheduledJob
from followupx.scheduler.alerts import OperationalAlerts
from followupx.scheduler.dispatcher import Dispatcher
from followupx.scheduler.registry import HandlerRegistry, JobContext
from followupx.scheduler.store import JobStore

logger = logging.getLogger(__name__)


def reminder_key(task_id: str) -> str:
    return f"{REMINDER_JOB}:{task_id}"


class Scheduler:
    """Owns the job store, handler registry and dispatcher for one process.

    Everything is injected; there is no module-level instance. With no
    ``registry`` given, the built-in handlers are registered.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        delivery: DeliveryService,
        settings: Settings | None = None,
        registry: HandlerRegistry | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.delivery = delivery
        self.alerts = OperationalAlerts(session_factory, self.settings)
        self.store = JobStore(session_factory, self.settings, alerts=self.alerts)
        if registry is None:
            registry = register_default_handlers(
                HandlerRegistry(self.settings.scheduler_default_concurrency)
            )
        self.registry = registry
        self.dispatcher = Dispatcher(self.store, self.registry, self.context_for, self.settings)

    def context_for(self, job: ScheduledJob, now: datetime) -> JobContext:
        return JobContext(
            job_id=job.id,
            name=job.name,
            data=dict(job.data or {}),
            now=now,
            occurrence_at=job.occurrence_at,
            session_factory=self.session_factory,
            delivery=self.delivery,
            settings=self.settings,
            store=self.store,
        )

    async def schedule_reminder(
        self, task_id: str, user_id: str, lead_id: str | None, at: datetime
    ) -> str:
        """Schedule (or move) the reminder for a task. Returns the job id.

        Any pending reminder for the same task is replaced.
        """
        job = await self.store.enqueue(
            REMINDER_JOB,
            {"task_id": task_id, "user_id": user_id, "lead_id": lead_id},
            scheduled_at=at,
            unique_key=reminder_key(task_id),
        )
        logger.info("Reminder for task %s scheduled at %s (job %s)", task_id, at.isoformat(), job.id)
        return job.id

    async def cancel_reminder(self, job_id: str | None) -> bool:
        if not job_id:
            return False
        return await self.store.cancel(job_id)

    async def ensure_periodic_jobs(self) -> list[ScheduledJob]:
        tz = self.settings.scheduler_timezone
        jobs = []
        for name, expression in periodic_jobs(self.settings).items():
            if name in self.registry:
                jobs.append(await self.store.every(name, expression, tz))
        return jobs

    async def start(self) -> None:
        await self.ensure_periodic_jobs()
        await self.dispatcher.start()

    async def stop(self, grace: float | None = None) -> None:
        await self.dispatcher.stop(grace)
