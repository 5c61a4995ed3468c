"""Task lifecycle operations that touch the scheduler."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from followupx.core.recurrence import RecurringTaskEngine
from followupx.db.repository import Repository
from followupx.errors import InvalidTransitionError, RecordNotFoundError
from followupx.models.base import utcnow
from followupx.models.task import Task, TaskStatus

if TYPE_CHECKING:
    from followupx.scheduler.service import Scheduler

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scheduler: Scheduler,
        engine: RecurringTaskEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.scheduler = scheduler
        self.engine = engine or RecurringTaskEngine()

    async def complete_task(self, task_id: str, now: datetime | None = None) -> Task | None:
        """Mark a pending task completed and roll its recurrence forward.

        Returns the spawned occurrence, if any. Completing a task that is no
        longer pending does nothing.
        """
        now = now or utcnow()
        async with self._session_factory() as session:
            tasks = Repository(Task, session)
            done = await tasks.update_one(
                [Task.id == task_id, Task.status == TaskStatus.PENDING],
                {"status": TaskStatus.COMPLETED, "completed_at": now},
            )
            if not done:
                if await tasks.find_by_id(task_id) is None:
                    raise RecordNotFoundError(f"Task {task_id} not found")
                logger.info("Task %s is not pending; completion ignored", task_id)
                return None
            task = await tasks.find_by_id(task_id)
            await session.refresh(task)
            child = await self.engine.spawn_next(session, task, now)
            await session.commit()
            reminder_job_id = task.reminder_job_id

        await self.scheduler.cancel_reminder(reminder_job_id)
        if child is not None and child.reminder_at is not None and child.reminder_at > now:
            await self.reschedule_reminder(child.id, child.reminder_at)
        return child

    async def reschedule_reminder(self, task_id: str, at: datetime | None) -> str | None:
        """Point the task's reminder at ``at`` (or clear it when None).

        The reminder job is replaced, never duplicated, and ``reminder_sent``
        is re-armed so the new time fires.
        """
        async with self._session_factory() as session:
            tasks = Repository(Task, session)
            task = await tasks.find_by_id(task_id)
            if task is None:
                raise RecordNotFoundError(f"Task {task_id} not found")
            if task.status != TaskStatus.PENDING:
                raise InvalidTransitionError("task", str(task.status), "reminder")

            if at is None:
                await self.scheduler.cancel_reminder(task.reminder_job_id)
                job_id = None
            else:
                job_id = await self.scheduler.schedule_reminder(task.id, task.user_id, task.lead_id, at)
            await tasks.update_one(
                [Task.id == task_id],
                {"reminder_at": at, "reminder_sent": False, "reminder_job_id": job_id},
            )
            await session.commit()
        return job_id
