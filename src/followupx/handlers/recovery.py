"""Lead recovery scan."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from followupx.core.notifications import NotificationService, plural
from followupx.db.repository import Repository
from followupx.models.lead import Lead
from followupx.models.notification import NotificationType
from followupx.models.user import User
from followupx.scheduler.registry import JobContext

logger = logging.getLogger(__name__)

JOB_NAME = "ai-recovery-scan"


async def at_risk_leads(
    session: AsyncSession, user_id: str, now: datetime, settings
) -> tuple[list[Lead], list[Lead]]:
    """Leads that went cold (no contact) and leads stuck in a mid-funnel status.

    The two groups are counted separately; a lead can appear in both.
    """
    leads = Repository(Lead, session)
    cold = await leads.find(
        Lead.user_id == user_id,
        Lead.is_deleted.is_(False),
        Lead.status.not_in(settings.recovery_terminal_statuses),
        Lead.last_contacted_at < now - timedelta(days=settings.recovery_cold_after_days),
        order_by=Lead.last_contacted_at,
    )
    stuck = await leads.find(
        Lead.user_id == user_id,
        Lead.is_deleted.is_(False),
        Lead.status.in_(settings.recovery_stuck_statuses),
        Lead.updated_at < now - timedelta(days=settings.recovery_stuck_after_days),
        order_by=Lead.updated_at,
    )
    return cold, stuck


async def ai_recovery_scan(ctx: JobContext) -> None:
    """Notify active users about leads that need re-engagement.

    The notification and the ``last_recovery_alert_at`` marker commit
    together, so each user gets at most one alert per occurrence.
    """
    async with ctx.session_factory() as session:
        users = await Repository(User, session).find(User.is_active.is_(True), order_by=User.id)
        user_ids = [u.id for u in users]

    alerted = 0
    for user_id in user_ids:
        async with ctx.session_factory() as session:
            user = await Repository(User, session).find_by_id(user_id)
            marker = user.last_recovery_alert_at if user else None
            if user is None or (marker is not None and marker >= ctx.occurrence_at):
                continue
            cold, stuck = await at_risk_leads(session, user_id, ctx.now, ctx.settings)
            total = len(cold) + len(stuck)
            if total:
                lead_ids = list(dict.fromkeys(lead.id for lead in cold + stuck))
                await NotificationService(session, ctx.settings).notify(
                    user_id,
                    NotificationType.AI_RECOVERY,
                    "Leads Need Attention",
                    f"{plural(total, 'lead')} may need your attention. "
                    "Check AI Recovery for suggestions.",
                    action_url="/ai-recovery",
                    extra={"cold": len(cold), "stuck": len(stuck), "lead_ids": lead_ids[:50]},
                    now=ctx.now,
                )
                alerted += 1
            user.last_recovery_alert_at = ctx.occurrence_at
            await session.commit()
    logger.info("Recovery scan alerted %d of %d user(s)", alerted, len(user_ids))
