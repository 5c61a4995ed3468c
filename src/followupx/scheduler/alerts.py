"""Operational alerts for jobs that exhausted their retry budget."""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from followupx.config import Settings, get_settings
from followupx.core.notifications import NotificationService
from followupx.models.job import ScheduledJob
from followupx.models.notification import NotificationPriority, NotificationType
from followupx.models.user import User

logger = structlog.get_logger(__name__)


class OperationalAlerts:
    """Surfaces permanently failed jobs.

    Always logs at error level; when the job payload names a user that still
    exists, that user also gets a high-priority ``system`` notification.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.settings = settings or get_settings()

    async def job_failed(self, job: ScheduledJob, reason: str, attempts: int) -> None:
        logger.error(
            "job_permanently_failed",
            job_id=job.id,
            job_name=job.name,
            attempts=attempts,
            reason=reason,
            recurring=job.is_recurring,
        )
        user_id = (job.data or {}).get("user_id")
        if not user_id:
            return
        try:
            async with self._session_factory() as session:
                if await session.get(User, user_id) is None:
                    return
                await NotificationService(session, self.settings).notify(
                    user_id,
                    NotificationType.SYSTEM,
                    "Scheduled action failed",
                    f"A scheduled {job.name.replace('-', ' ')} could not be completed "
                    f"after {attempts} attempts.",
                    priority=NotificationPriority.HIGH,
                    task_id=(job.data or {}).get("task_id"),
                    extra={"job_id": job.id, "reason": reason[:200]},
                )
                await session.commit()
        except Exception:
            logger.exception("alert_notification_failed", job_id=job.id)
