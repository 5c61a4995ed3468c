"""Job store: durable state machine over ScheduledJob records.

State machine::

    pending -> running -> completed
                       -> pending (retry, after backoff)
                       -> failed (attempts exhausted)
    pending -> cancelled

Every transition is a single-row compare-and-set keyed by job id (and, once
claimed, by the claim's ``lock_token``), so a dispatcher that lost its lease
can never overwrite the work of the one that reclaimed the job.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from followupx.config import Settings, get_settings
from followupx.errors import UnknownJobError
from followupx.models.base import utcnow
from followupx.models.job import FINISHED_STATES, JobState, ScheduledJob
from followupx.scheduler.cron import next_fire_time

if TYPE_CHECKING:
    from followupx.scheduler.alerts import OperationalAlerts

logger = logging.getLogger(__name__)


@dataclass
class FailOutcome:
    """Result of :meth:`JobStore.fail`."""

    job: ScheduledJob
    permanent: bool
    retry_at: datetime | None = None


class JobStore:
    """Persists and transitions scheduled jobs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        alerts: OperationalAlerts | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.settings = settings or get_settings()
        self.alerts = alerts

    @property
    def lease(self) -> timedelta:
        return timedelta(seconds=self.settings.scheduler_lease_seconds)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        name: str,
        data: dict[str, Any] | None = None,
        scheduled_at: datetime | None = None,
        *,
        unique_key: str | None = None,
    ) -> ScheduledJob:
        """Insert a pending job.

        With a ``unique_key``, any pending job holding the same key is cancelled
        in the same transaction, so a rescheduled reminder replaces its
        predecessor instead of duplicating it.
        """
        scheduled_at = scheduled_at or utcnow()
        try:
            job, replaced = await self._insert_replacing(name, data, scheduled_at, unique_key)
        except IntegrityError:
            # A concurrent enqueue for the same key won the insert; replace it in turn.
            job, replaced = await self._insert_replacing(name, data, scheduled_at, unique_key)
        if replaced:
            logger.info("Replaced %d pending %s job(s) for key %s", replaced, name, unique_key)
        logger.debug("Enqueued %s job %s at %s", name, job.id, scheduled_at.isoformat())
        return job

    async def _insert_replacing(
        self,
        name: str,
        data: dict[str, Any] | None,
        scheduled_at: datetime,
        unique_key: str | None,
    ) -> tuple[ScheduledJob, int]:
        async with self._session_factory() as session:
            replaced = 0
            if unique_key:
                replaced = await self._cancel_pending_key(session, unique_key, utcnow())
            job = ScheduledJob(
                name=name,
                data=data or {},
                unique_key=unique_key,
                pending_key=unique_key,
                state=JobState.PENDING,
                scheduled_at=scheduled_at,
                occurrence_at=scheduled_at,
                fail_count=0,
            )
            session.add(job)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise
        return job, replaced

    async def every(
        self,
        name: str,
        expression: str,
        timezone: str,
        data: dict[str, Any] | None = None,
    ) -> ScheduledJob:
        """Ensure exactly one recurring job named ``name`` exists with this rule.

        An unchanged rule keeps its current schedule, so restarting the process
        neither refires nor skips the next occurrence.
        """
        now = utcnow()
        next_run = next_fire_time(expression, timezone, now)
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScheduledJob)
                .where(
                    ScheduledJob.name == name,
                    ScheduledJob.unique_key == name,
                    ScheduledJob.recurrence_rule.is_not(None),
                    ScheduledJob.state != JobState.CANCELLED,
                )
                .order_by(ScheduledJob.created_at)
                .limit(1)
            )
            job = result.scalar_one_or_none()
            if job is None:
                job = ScheduledJob(
                    name=name,
                    data=data or {},
                    unique_key=name,
                    pending_key=name,
                    state=JobState.PENDING,
                    scheduled_at=next_run,
                    occurrence_at=next_run,
                    next_run_at=next_run,
                    recurrence_rule=expression,
                    timezone=timezone,
                    fail_count=0,
                )
                session.add(job)
                logger.info("Scheduled recurring job %s (%s %s)", name, expression, timezone)
            elif job.recurrence_rule != expression or job.timezone != timezone:
                job.recurrence_rule = expression
                job.timezone = timezone
                job.next_run_at = next_run
                if job.state == JobState.PENDING:
                    job.scheduled_at = next_run
                    job.occurrence_at = next_run
                logger.info("Updated recurring job %s (%s %s)", name, expression, timezone)
            await session.commit()
        return job

    # ------------------------------------------------------------------
    # Claiming
    # ------------------------------------------------------------------

    def _claimable(self, now: datetime):
        return or_(
            and_(ScheduledJob.state == JobState.PENDING, ScheduledJob.scheduled_at <= now),
            and_(
                ScheduledJob.state == JobState.RUNNING,
                ScheduledJob.locked_at <= now - self.lease,
            ),
        )

    async def claim_due(
        self,
        now: datetime,
        limit: int,
        names: list[str] | None = None,
    ) -> list[ScheduledJob]:
        """Atomically claim up to ``limit`` due (or lease-expired) jobs."""
        if limit <= 0:
            return []
        criteria = [self._claimable(now)]
        if names:
            criteria.append(ScheduledJob.name.in_(names))

        claimed: list[str] = []
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScheduledJob.id, ScheduledJob.state)
                .where(*criteria)
                .order_by(ScheduledJob.scheduled_at)
                .limit(limit)
            )
            candidates = result.all()
            for job_id, state in candidates:
                token = str(uuid.uuid4())
                hit = await session.execute(
                    update(ScheduledJob)
                    .where(ScheduledJob.id == job_id, self._claimable(now))
                    .values(
                        state=JobState.RUNNING,
                        locked_at=now,
                        lock_token=token,
                        last_run_at=now,
                        pending_key=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                if hit.rowcount != 1:
                    logger.debug("Lost claim race for job %s", job_id)
                    continue
                if state == JobState.RUNNING:
                    logger.warning("Reclaimed job %s after lease expiry", job_id)
                claimed.append(job_id)
            await session.commit()

            if not claimed:
                return []
            result = await session.execute(
                select(ScheduledJob)
                .where(ScheduledJob.id.in_(claimed))
                .order_by(ScheduledJob.scheduled_at)
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Finishing
    # ------------------------------------------------------------------

    async def _load_owned(
        self, session: AsyncSession, job_id: str, lock_token: str
    ) -> ScheduledJob | None:
        job = await session.get(ScheduledJob, job_id)
        if job is None:
            logger.warning("Job %s vanished before it could be finished", job_id)
            return None
        if job.state != JobState.RUNNING or job.lock_token != lock_token:
            logger.warning(
                "Job %s is no longer held by this claim (state=%s); ignoring result",
                job_id,
                job.state,
            )
            return None
        return job

    def _owned(self, job_id: str, lock_token: str):
        return and_(
            ScheduledJob.id == job_id,
            ScheduledJob.state == JobState.RUNNING,
            ScheduledJob.lock_token == lock_token,
        )

    def _next_occurrence(self, job: ScheduledJob, now: datetime) -> datetime:
        after = max(now, job.occurrence_at)
        return next_fire_time(job.recurrence_rule, job.timezone or "UTC", after)

    async def complete(
        self, job_id: str, lock_token: str, now: datetime | None = None
    ) -> ScheduledJob | None:
        """Close the current run. Recurring jobs are re-armed at their next occurrence."""
        now = now or utcnow()
        async with self._session_factory() as session:
            job = await self._load_owned(session, job_id, lock_token)
            if job is None:
                return None
            if job.is_recurring:
                next_run = self._next_occurrence(job, now)
                values = {
                    "state": JobState.PENDING,
                    "pending_key": job.unique_key,
                    "scheduled_at": next_run,
                    "occurrence_at": next_run,
                    "next_run_at": next_run,
                    "fail_count": 0,
                    "fail_reason": None,
                }
            else:
                values = {"state": JobState.COMPLETED}
            values.update(locked_at=None, lock_token=None, last_finished_at=now)
            hit = await session.execute(
                update(ScheduledJob)
                .where(self._owned(job_id, lock_token))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if hit.rowcount != 1:
                await session.rollback()
                return None
            await session.commit()
            await session.refresh(job)
        logger.debug("Completed job %s (%s)", job_id, job.state)
        return job

    async def fail(
        self,
        job_id: str,
        lock_token: str,
        reason: str,
        now: datetime | None = None,
    ) -> FailOutcome | None:
        """Record a failed run; retry with backoff or fail permanently."""
        now = now or utcnow()
        reason = (reason or "unknown error")[:2000]
        async with self._session_factory() as session:
            job = await self._load_owned(session, job_id, lock_token)
            if job is None:
                return None
            name, unique_key = job.name, job.unique_key
            fail_count = job.fail_count + 1
            retry_at: datetime | None = None
            permanent = fail_count >= self.settings.scheduler_max_attempts
            values: dict[str, Any] = {
                "locked_at": None,
                "lock_token": None,
                "last_finished_at": now,
                "fail_reason": reason,
            }
            if permanent and job.is_recurring:
                # This occurrence is lost; the series carries on.
                next_run = self._next_occurrence(job, now)
                values.update(
                    state=JobState.PENDING,
                    pending_key=job.unique_key,
                    fail_count=0,
                    scheduled_at=next_run,
                    occurrence_at=next_run,
                    next_run_at=next_run,
                )
            elif permanent:
                values.update(state=JobState.FAILED, fail_count=fail_count)
            else:
                backoff = self.settings.scheduler_retry_backoff_seconds * 2 ** (fail_count - 1)
                retry_at = now + timedelta(seconds=backoff)
                values.update(
                    state=JobState.PENDING,
                    pending_key=job.unique_key,
                    fail_count=fail_count,
                    scheduled_at=retry_at,
                )
            try:
                hit = await session.execute(
                    update(ScheduledJob)
                    .where(self._owned(job_id, lock_token))
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
            except IntegrityError:
                # A newer pending job took over this key while we were running.
                await session.rollback()
                hit = await session.execute(
                    update(ScheduledJob)
                    .where(self._owned(job_id, lock_token))
                    .values(
                        state=JobState.CANCELLED,
                        pending_key=None,
                        locked_at=None,
                        lock_token=None,
                        last_finished_at=now,
                        fail_count=fail_count,
                        fail_reason=reason,
                    )
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                permanent, retry_at = False, None
                logger.info("Job %s superseded by a newer job for key %s", job_id, unique_key)
            if hit.rowcount != 1:
                return None
            await session.refresh(job)

        outcome = FailOutcome(job=job, permanent=permanent, retry_at=retry_at)
        if permanent:
            logger.error(
                "Job %s (%s) permanently failed after %d attempts: %s",
                job_id,
                job.name,
                fail_count,
                reason,
            )
            if self.alerts is not None:
                await self.alerts.job_failed(job, reason, attempts=fail_count)
        else:
            logger.warning("Job %s (%s) failed (attempt %d): %s", job_id, job.name, fail_count, reason)
        return outcome

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    async def _cancel_pending_key(self, session: AsyncSession, key: str, now: datetime) -> int:
        result = await session.execute(
            update(ScheduledJob)
            .where(ScheduledJob.pending_key == key, ScheduledJob.state == JobState.PENDING)
            .values(state=JobState.CANCELLED, pending_key=None, last_finished_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def cancel(self, job_id: str) -> bool:
        """Cancel a pending job. Running or finished jobs are left alone."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(ScheduledJob)
                .where(ScheduledJob.id == job_id, ScheduledJob.state == JobState.PENDING)
                .values(state=JobState.CANCELLED, pending_key=None, last_finished_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        cancelled = result.rowcount == 1
        if cancelled:
            logger.info("Cancelled job %s", job_id)
        else:
            logger.debug("Cancel of job %s ignored (not pending)", job_id)
        return cancelled

    async def requeue(self, job_id: str, now: datetime | None = None) -> bool:
        """Put a permanently failed job back in the queue with a fresh attempt budget.

        Raises UnknownJobError when no job has this id.
        """
        now = now or utcnow()
        async with self._session_factory() as session:
            job = await session.get(ScheduledJob, job_id)
            if job is None:
                raise UnknownJobError(f"No scheduled job with id {job_id}")
            if job.state != JobState.FAILED:
                return False
            unique_key = job.unique_key
            try:
                result = await session.execute(
                    update(ScheduledJob)
                    .where(ScheduledJob.id == job_id, ScheduledJob.state == JobState.FAILED)
                    .values(
                        state=JobState.PENDING,
                        pending_key=unique_key,
                        fail_count=0,
                        scheduled_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.warning("Cannot requeue job %s: key %s already pending", job_id, unique_key)
                return False
        return result.rowcount == 1

    async def get(self, job_id: str) -> ScheduledJob | None:
        async with self._session_factory() as session:
            return await session.get(ScheduledJob, job_id)

    async def list_jobs(
        self,
        state: JobState | None = None,
        name: str | None = None,
        unique_key: str | None = None,
        limit: int = 100,
    ) -> list[ScheduledJob]:
        stmt = select(ScheduledJob)
        if state is not None:
            stmt = stmt.where(ScheduledJob.state == state)
        if name is not None:
            stmt = stmt.where(ScheduledJob.name == name)
        if unique_key is not None:
            stmt = stmt.where(ScheduledJob.unique_key == unique_key)
        stmt = stmt.order_by(ScheduledJob.scheduled_at).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def purge_finished(self, before: datetime) -> int:
        """Delete finished jobs whose last run ended before ``before``."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ScheduledJob).where(
                    ScheduledJob.state.in_(FINISHED_STATES),
                    ScheduledJob.last_finished_at < before,
                )
            )
            await session.commit()
        return result.rowcount or 0
