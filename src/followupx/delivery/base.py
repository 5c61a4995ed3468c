"""Delivery collaborator contract."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from followupx.models.scheduled_message import MessageChannel

if TYPE_CHECKING:
    from followupx.models.scheduled_message import ScheduledMessage
    from followupx.models.task import Task
    from followupx.models.user import User

logger = logging.getLogger(__name__)


class DeliveryService(ABC):
    """Sends user-facing messages outside the app.

    Implementations raise on failure; the scheduler turns that into a failed
    job run and retries it.
    """

    #: Scheduled-message channels this service can actually deliver.
    channels: frozenset[MessageChannel] = frozenset()

    @abstractmethod
    async def send_reminder(self, user: User, task: Task) -> None: ...

    @abstractmethod
    async def send_daily_summary(self, user: User, stats: dict[str, Any]) -> None: ...

    @abstractmethod
    async def send_weekly_report(self, user: User, stats: dict[str, Any]) -> None: ...

    @abstractmethod
    async def send_scheduled_message(self, message: ScheduledMessage) -> None: ...


class LogDelivery(DeliveryService):
    """Delivery that only logs. Used when no outbound channel is configured.

    It claims no scheduled-message channel, so the sweep leaves those messages
    pending instead of recording a send that never happened.
    """

    channels: frozenset[MessageChannel] = frozenset()

    async def send_reminder(self, user: User, task: Task) -> None:
        logger.info("[DELIVERY reminder] user=%s task=%s | %s", user.id, task.id, task.title)

    async def send_daily_summary(self, user: User, stats: dict[str, Any]) -> None:
        logger.info("[DELIVERY daily-summary] user=%s | %s", user.id, stats)

    async def send_weekly_report(self, user: User, stats: dict[str, Any]) -> None:
        logger.info("[DELIVERY weekly-report] user=%s | %s", user.id, stats)

    async def send_scheduled_message(self, message: ScheduledMessage) -> None:
        logger.info(
            "[DELIVERY %s] message=%s lead=%s", message.channel, message.id, message.lead_id
        )
