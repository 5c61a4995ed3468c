"""SMTP email delivery."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from followupx.config import Settings, get_settings
from followupx.delivery.base import DeliveryService
from followupx.models.scheduled_message import MessageChannel

if TYPE_CHECKING:
    from followupx.models.scheduled_message import ScheduledMessage
    from followupx.models.task import Task
    from followupx.models.user import User

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


class EmailDelivery(DeliveryService):
    """Renders jinja2 text templates and sends them over SMTP.

    smtplib is blocking, so each send runs in the default executor and is
    bounded by ``email_timeout_seconds``.
    """

    channels = frozenset({MessageChannel.EMAIL})

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template_name: str, **context: Any) -> str:
        context.setdefault("app_name", self.settings.app_name)
        context.setdefault("base_url", self.settings.app_base_url)
        return self._env.get_template(template_name).render(**context)

    async def send_reminder(self, user: User, task: Task) -> None:
        body = self.render("task_reminder.txt", user=user, task=task)
        await self.send(user.email, f"Reminder: {task.title}", body)

    async def send_daily_summary(self, user: User, stats: dict[str, Any]) -> None:
        body = self.render("daily_summary.txt", user=user, stats=stats)
        total = stats.get("today_tasks", 0) + stats.get("overdue_tasks", 0)
        await self.send(user.email, f"Your day: {total} follow-ups waiting", body)

    async def send_weekly_report(self, user: User, stats: dict[str, Any]) -> None:
        body = self.render("weekly_report.txt", user=user, stats=stats)
        await self.send(user.email, "Your weekly FollowUpX report", body)

    async def send_scheduled_message(self, message: ScheduledMessage) -> None:
        if message.channel != MessageChannel.EMAIL:
            raise ValueError(f"Channel {message.channel} is not deliverable by email")
        if not message.recipient_email:
            raise ValueError(f"Scheduled message {message.id} has no recipient email")
        subject = f"Message from {self.settings.app_name}"
        await self.send(message.recipient_email, subject, message.content)

    async def send(self, to: str, subject: str, text: str) -> None:
        s = self.settings
        if not s.email_configured:
            raise RuntimeError("Email delivery is not configured (EMAIL_SMTP_HOST/EMAIL_USERNAME)")

        msg = MIMEText(text)
        msg["Subject"] = subject
        msg["From"] = s.email_from
        msg["To"] = to

        loop = asyncio.get_running_loop()
        await asyncio.wait_for(
            loop.run_in_executor(None, self._smtp_send, msg, to),
            timeout=s.email_timeout_seconds,
        )
        logger.info("Email sent to %s: %s", to, subject)

    def _smtp_send(self, msg: MIMEText, to: str) -> None:
        s = self.settings
        with smtplib.SMTP(s.email_smtp_host, s.email_smtp_port, timeout=s.email_timeout_seconds) as server:
            server.starttls()
            server.login(s.email_username, s.email_password or "")
            server.sendmail(s.email_username, to, msg.as_string())
