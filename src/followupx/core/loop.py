"""FollowUpX daemon: runs the scheduler until signalled."""

from __future__ import annotations

import asyncio
import signal
import time

import structlog
from sqlalchemy import text

from followupx.config import Settings, get_settings
from followupx.db.session import get_session_factory
from followupx.delivery import get_delivery
from followupx.scheduler.service import Scheduler

logger = structlog.get_logger(__name__)


class FollowUpXLoop:
    """
    The FollowUpX scheduler daemon.

    On startup:
      1. Verifies the database is reachable
      2. Ensures the periodic jobs exist and starts the dispatcher
      3. Waits for SIGTERM/SIGINT, then drains in-flight jobs
    """

    def __init__(self, scheduler: Scheduler | None = None, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.scheduler = scheduler or Scheduler(
            get_session_factory(), get_delivery(self.settings), self.settings
        )
        self._stop = asyncio.Event()
        self._start_time: float = 0.0

    async def start(self) -> None:
        logger.info("FollowUpX scheduler is starting")
        self._start_time = time.monotonic()

        await self._verify_database()
        await self.scheduler.start()
        logger.info(
            "FollowUpX scheduler is online",
            delivery=type(self.scheduler.delivery).__name__,
            timezone=self.settings.scheduler_timezone,
        )
        try:
            await self._stop.wait()
        finally:
            await self.shutdown()

    async def _verify_database(self) -> None:
        async with self.scheduler.session_factory() as session:
            await session.execute(text("SELECT 1"))
        logger.info("DB connection verified")

    @property
    def uptime_seconds(self) -> float:
        if not self._start_time:
            return 0.0
        return time.monotonic() - self._start_time

    async def shutdown(self) -> None:
        logger.info("FollowUpX scheduler is shutting down", in_flight=self.scheduler.dispatcher.in_flight())
        await self.scheduler.stop()
        logger.info("FollowUpX scheduler offline", uptime_seconds=round(self.uptime_seconds, 1))

    def handle_signal(self, sig: int) -> None:
        logger.info("Received signal, shutting down gracefully", signal=sig)
        self._stop.set()


async def run_daemon() -> None:
    loop_obj = FollowUpXLoop()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: loop_obj.handle_signal(s))
    await loop_obj.start()
