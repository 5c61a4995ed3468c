"""Recurring task engine."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta
from sqlalchemy.ext.asyncio import AsyncSession

from followupx.db.repository import Repository
from followupx.models.base import utcnow
from followupx.models.task import RecurrenceFrequency, Task, TaskStatus

logger = logging.getLogger(__name__)

# Fields a spawned occurrence inherits from the recurring template.
_TEMPLATE_FIELDS = (
    "user_id",
    "lead_id",
    "title",
    "type",
    "description",
    "priority",
    "is_recurring",
    "recurrence_frequency",
    "recurrence_interval",
    "recurrence_end_date",
)


def next_due_date(due: datetime, frequency: RecurrenceFrequency | str, interval: int = 1) -> datetime:
    """Advance ``due`` by ``interval`` periods.

    Monthly steps keep the day of month where it exists and clamp to the last
    day otherwise (Jan 31 -> Feb 28).
    """
    if interval < 1:
        raise ValueError("Recurrence interval must be at least 1")
    frequency = RecurrenceFrequency(frequency)
    if frequency == RecurrenceFrequency.DAILY:
        return due + timedelta(days=interval)
    if frequency == RecurrenceFrequency.WEEKLY:
        return due + timedelta(weeks=interval)
    return due + relativedelta(months=interval)


class RecurringTaskEngine:
    """Creates the next occurrence of a recurring task when one is completed.

    Occurrences form a flat chain: every spawned task points at the original
    template through ``parent_task_id``. The template's
    ``recurrence_last_created`` records when the newest occurrence was
    spawned; a new one is only created once a full period has elapsed since
    then. The stamp is advanced with a conditional update against the value
    read, so two completions racing yield a single child.
    """

    async def spawn_next(
        self, session: AsyncSession, task: Task, now: datetime | None = None
    ) -> Task | None:
        now = now or utcnow()
        tasks = Repository(Task, session)
        template = task
        if task.parent_task_id:
            template = await tasks.find_by_id(task.parent_task_id) or task

        if not template.is_recurring or template.recurrence_frequency is None:
            return None

        frequency = template.recurrence_frequency
        interval = template.recurrence_interval or 1
        last_created = template.recurrence_last_created
        if last_created is not None and next_due_date(last_created, frequency, interval) > now:
            logger.info(
                "Recurring task %s spawned an occurrence at %s; next one not due yet",
                template.id,
                last_created.isoformat(),
            )
            return None

        due = next_due_date(task.due_date, frequency, interval)
        if template.recurrence_end_date is not None and due > template.recurrence_end_date:
            logger.info("Recurring task %s reached its end date", template.id)
            return None

        if await tasks.find_one(Task.parent_task_id == template.id, Task.due_date == due):
            logger.info("Occurrence of %s due %s already exists", template.id, due.isoformat())
            return None

        if last_created is None:
            unchanged = Task.recurrence_last_created.is_(None)
        else:
            unchanged = Task.recurrence_last_created == last_created
        advanced = await tasks.update_one(
            [Task.id == template.id, unchanged], {"recurrence_last_created": now}
        )
        if not advanced:
            return None

        fields = {name: getattr(template, name) for name in _TEMPLATE_FIELDS}
        reminder_at = None
        if task.reminder_at is not None:
            reminder_at = task.reminder_at + (due - task.due_date)
        child = await tasks.insert_one(
            **fields,
            due_date=due,
            status=TaskStatus.PENDING,
            reminder_at=reminder_at,
            reminder_sent=False,
            overdue_notified=False,
            parent_task_id=template.id,
        )
        logger.info("Spawned occurrence %s of recurring task %s due %s", child.id, template.id, due)
        return child
