"""Task reminder handler."""

from __future__ import annotations

import logging

from sqlalchemy import or_

from followupx.core.notifications import NotificationService
from followupx.db.repository import Repository
from followupx.models.lead import Lead
from followupx.models.notification import NotificationType
from followupx.models.task import Task, TaskStatus
from followupx.models.user import User
from followupx.scheduler.registry import JobContext

logger = logging.getLogger(__name__)

JOB_NAME = "send-task-reminder"


async def send_task_reminder(ctx: JobContext) -> None:
    """Notify the owner that a pending task is coming up.

    The reminder is delivered at most once per task: ``reminder_sent`` is
    flipped in the same transaction that creates the notification, and only
    if it was still false. External delivery happens first, so a crash between
    delivery and commit can repeat the email but never the notification.

    A task whose reminder has been moved to another job belongs to that job;
    this run then leaves the flag alone so the new reminder still fires.
    """
    task_id = ctx.data.get("task_id")
    if not task_id:
        logger.warning("Reminder job %s has no task_id; nothing to do", ctx.job_id)
        return

    owned = or_(Task.reminder_job_id.is_(None), Task.reminder_job_id == ctx.job_id)

    async with ctx.session_factory() as session:
        tasks = Repository(Task, session)
        task = await tasks.find_by_id(task_id)
        if task is None:
            logger.info("Task %s no longer exists; skipping reminder", task_id)
            return
        if task.status != TaskStatus.PENDING:
            logger.info("Task %s is %s; skipping reminder", task_id, task.status)
            return
        if task.reminder_job_id is not None and task.reminder_job_id != ctx.job_id:
            logger.info(
                "Reminder for task %s moved to job %s; skipping", task_id, task.reminder_job_id
            )
            return
        if task.reminder_sent:
            logger.info("Reminder for task %s already sent", task_id)
            return

        lead = await Repository(Lead, session).find_by_id(task.lead_id)
        lead_name = lead.name if lead else "your lead"
        user = await Repository(User, session).find_by_id(task.user_id)

        if user is not None and user.email_reminders is True:
            await ctx.delivery.send_reminder(user, task)

        claimed = await tasks.update_one(
            [Task.id == task_id, Task.reminder_sent.is_(False), owned], {"reminder_sent": True}
        )
        if not claimed:
            await session.rollback()
            logger.info("Reminder for task %s was sent or rescheduled concurrently", task_id)
            return

        await NotificationService(session, ctx.settings).notify(
            task.user_id,
            NotificationType.TASK_REMINDER,
            "Task Reminder",
            f"Reminder: {task.title} for {lead_name}",
            action_url=f"/tasks/{task_id}",
            lead_id=task.lead_id,
            task_id=task_id,
            now=ctx.now,
        )
        await session.commit()
        logger.info("Sent reminder for task %s", task_id)
