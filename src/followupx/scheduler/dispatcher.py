"""Dispatcher: polls the job store and runs due jobs under concurrency ceilings."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from followupx.config import Settings, get_settings
from followupx.models.base import utcnow
from followupx.models.job import ScheduledJob
from followupx.scheduler.registry import HandlerRegistry, JobContext
from followupx.scheduler.store import JobStore

logger = structlog.get_logger(__name__)

ContextFactory = Callable[[ScheduledJob, datetime], JobContext]


class Dispatcher:
    """Tick-based poll loop.

    Each tick claims, per job type, only as many jobs as that type (and the
    global pool) has free slots for. Claimed jobs run as independent asyncio
    tasks, so a slow handler never delays the next tick, and every in-flight
    job holds its slot until it has been completed or failed in the store.
    """

    def __init__(
        self,
        store: JobStore,
        registry: HandlerRegistry,
        context_factory: ContextFactory,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.context_factory = context_factory
        self.settings = settings or get_settings()
        self._in_flight: dict[str, set[asyncio.Task]] = {}
        self._running = False
        self._loop_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Capacity
    # ------------------------------------------------------------------

    def in_flight(self, name: str | None = None) -> int:
        if name is not None:
            return len(self._in_flight.get(name, ()))
        return sum(len(tasks) for tasks in self._in_flight.values())

    def _spare(self, name: str) -> int:
        global_spare = self.settings.scheduler_global_concurrency - self.in_flight()
        type_spare = self.registry.concurrency(name) - self.in_flight(name)
        return max(0, min(global_spare, type_spare))

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def tick(self, now: datetime | None = None) -> list[asyncio.Task]:
        """Claim due jobs and launch them. Returns the launched tasks."""
        now = now or utcnow()
        launched: list[asyncio.Task] = []
        for name in self.registry.names():
            spare = self._spare(name)
            if spare <= 0:
                continue
            jobs = await self.store.claim_due(now, spare, names=[name])
            for job in jobs:
                launched.append(self._launch(job, now))
        if launched:
            logger.info("dispatch_tick", claimed=len(launched), in_flight=self.in_flight())
        return launched

    def _launch(self, job: ScheduledJob, now: datetime) -> asyncio.Task:
        task = asyncio.create_task(self.run_job(job, now), name=f"job:{job.name}:{job.id}")
        bucket = self._in_flight.setdefault(job.name, set())
        bucket.add(task)
        task.add_done_callback(bucket.discard)
        return task

    async def run_job(self, job: ScheduledJob, now: datetime | None = None) -> None:
        """Execute one claimed job and record its outcome. Never raises."""
        now = now or utcnow()
        started = asyncio.get_running_loop().time()
        log = logger.bind(job_id=job.id, job_name=job.name)
        handler = self.registry.get(job.name)
        reason: str | None = None
        if handler is None:
            reason = f"No handler registered for job {job.name!r}"
        else:
            timeout = self.settings.scheduler_handler_timeout_seconds
            try:
                ctx = self.context_factory(job, now)
                await asyncio.wait_for(handler(ctx), timeout=timeout)
            except TimeoutError:
                reason = f"Handler timed out after {timeout:g}s"
            except asyncio.CancelledError:
                # Shutdown interrupted the run; the lease will expire and the job is reclaimed.
                log.warning("job_cancelled_mid_run")
                raise
            except Exception as exc:
                log.exception("job_handler_error")
                reason = f"{type(exc).__name__}: {exc}"

        finished_at = now + timedelta(seconds=asyncio.get_running_loop().time() - started)
        try:
            if reason is None:
                await self.store.complete(job.id, job.lock_token, now=finished_at)
                log.info("job_completed")
            else:
                outcome = await self.store.fail(job.id, job.lock_token, reason, now=finished_at)
                log.warning(
                    "job_failed",
                    reason=reason,
                    permanent=outcome.permanent if outcome else None,
                )
        except Exception:
            log.exception("job_state_update_failed")

    async def drain(self) -> None:
        """Wait for every in-flight job to finish."""
        tasks = [t for bucket in self._in_flight.values() for t in bucket]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._loop_task and not self._loop_task.done():
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._run_forever(), name="dispatcher")
        logger.info(
            "dispatcher_started",
            tick_seconds=self.settings.scheduler_tick_seconds,
            handlers=self.registry.names(),
        )

    async def _run_forever(self) -> None:
        while self._running:
            try:
                await self.tick()
            except Exception:
                logger.exception("dispatch_tick_failed")
            await asyncio.sleep(self.settings.scheduler_tick_seconds)

    async def stop(self, grace: float | None = None) -> None:
        """Stop polling, then give in-flight jobs ``grace`` seconds to finish."""
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        grace = self.settings.scheduler_shutdown_grace_seconds if grace is None else grace
        tasks = [t for bucket in self._in_flight.values() for t in bucket]
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=grace)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning("dispatcher_abandoned_jobs", count=len(pending))
        logger.info("dispatcher_stopped")

    @property
    def running(self) -> bool:
        return self._running
