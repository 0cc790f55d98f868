import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from launchpad.config.database import DatabaseConnectionManager
from launchpad.core.errors import NotFoundError, StateConflictError
from launchpad.core.models import AutomationJob, JobStatus, JobType, Token, TriggerType
from launchpad.core.models.base import utcnow
from launchpad.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.RUNNING)

# Child result columns rolled up onto the parent CLAIM
ROLLUP_FIELDS = ('burned_tokens', 'lp_tokens_added', 'dividends_paid')


class JobStore:
    """
    Persistence for automation jobs.

    The table is the source of truth for "is work already in flight for this
    token and job type". Enqueue is a check-and-insert serialized per
    (token, job type) in process, and backed by a partial unique index
    across processes.
    """

    def __init__(self, db: DatabaseConnectionManager):
        self.db = db
        self._enqueue_locks = KeyedLock()

    @staticmethod
    def _job_query():
        return select(AutomationJob).options(
            selectinload(AutomationJob.token).selectinload(Token.tax_config)
        )

    async def _find_active(self, session: AsyncSession, token_id: int, job_type: JobType) -> Optional[AutomationJob]:
        result = await session.execute(
            self._job_query().where(
                AutomationJob.token_id == token_id,
                AutomationJob.job_type == job_type,
                AutomationJob.status.in_(ACTIVE_STATUSES)
            )
        )
        return result.scalars().first()

    async def enqueue(
        self,
        token_id: int,
        job_type: JobType,
        trigger: TriggerType,
        amount_lamports: Optional[int] = None,
        parent_job_id: Optional[int] = None
    ) -> Tuple[AutomationJob, bool]:
        """
        Insert a PENDING job unless one is already in flight.

        Returns (job, created); when created is False the job is the existing
        PENDING or RUNNING one for the same (token, job type).
        """
        async with self._enqueue_locks.hold((token_id, JobType(job_type))):
            try:
                async with self.db.get_session() as session:
                    existing = await self._find_active(session, token_id, job_type)
                    if existing:
                        logger.debug(f"{job_type} already in flight for token {token_id}: job {existing.id}")
                        return existing, False

                    job = AutomationJob(
                        token_id=token_id,
                        job_type=job_type,
                        trigger_type=trigger,
                        status=JobStatus.PENDING,
                        retry_count=0,
                        scheduled_for=utcnow(),
                        amount_lamports=amount_lamports,
                        parent_job_id=parent_job_id,
                    )
                    session.add(job)
                    await session.flush()
                    job_id = job.id
            except IntegrityError:
                # Another process won the insert; the index guarantees one exists
                async with self.db.get_session() as session:
                    existing = await self._find_active(session, token_id, job_type)
                if existing is None:
                    raise
                logger.info(f"Lost enqueue race for {job_type} on token {token_id}, using job {existing.id}")
                return existing, False

        logger.info(f"Enqueued {job_type} job {job_id} for token {token_id} ({trigger})")
        return await self.get(job_id), True

    async def get(self, job_id: int) -> AutomationJob:
        async with self.db.get_session() as session:
            result = await session.execute(self._job_query().where(AutomationJob.id == job_id))
            job = result.scalar_one_or_none()
        if job is None:
            raise NotFoundError("Job not found")
        return job

    async def mark_running(self, job_id: int) -> Optional[AutomationJob]:
        """PENDING -> RUNNING compare-and-set; None when the job was not PENDING"""
        async with self.db.get_session() as session:
            result = await session.execute(
                update(AutomationJob)
                .where(AutomationJob.id == job_id, AutomationJob.status == JobStatus.PENDING)
                .values(status=JobStatus.RUNNING, started_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
        return await self.get(job_id)

    async def complete(
        self,
        job_id: int,
        fields: Optional[Dict] = None,
        token_totals: Optional[Dict[str, int]] = None
    ) -> None:
        """Mark COMPLETED and add token_totals onto the token in the same transaction"""
        async with self.db.get_session() as session:
            job = await session.get(AutomationJob, job_id)
            if job is None:
                raise NotFoundError("Job not found")
            for key, value in (fields or {}).items():
                setattr(job, key, value)
            job.status = JobStatus.COMPLETED
            job.completed_at = utcnow()
            job.error_message = None
            job.error_kind = None

            if token_totals:
                values = {
                    column: getattr(Token, column) + amount
                    for column, amount in token_totals.items()
                }
                values['last_automation_run'] = utcnow()
                await session.execute(
                    update(Token)
                    .where(Token.id == job.token_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )

    async def record_progress(self, job_id: int, **fields) -> None:
        """Persist intermediate results on a RUNNING job"""
        async with self.db.get_session() as session:
            job = await session.get(AutomationJob, job_id)
            if job is None:
                raise NotFoundError("Job not found")
            for key, value in fields.items():
                setattr(job, key, value)

    async def fail(self, job_id: int, message: str, kind: str) -> None:
        async with self.db.get_session() as session:
            job = await session.get(AutomationJob, job_id)
            if job is None:
                raise NotFoundError("Job not found")
            job.status = JobStatus.FAILED
            job.completed_at = utcnow()
            job.error_message = message
            job.error_kind = kind
            job.retry_count = (job.retry_count or 0) + 1

    async def reset_for_retry(self, job_id: int) -> AutomationJob:
        """
        FAILED -> PENDING; anything else is left untouched.

        Shares the enqueue lock of the job's (token, job type) so a retry
        can never put a second job in flight next to one enqueued since.
        """
        job = await self.get(job_id)
        job_type = JobType(job.job_type)

        async with self._enqueue_locks.hold((job.token_id, job_type)):
            try:
                async with self.db.get_session() as session:
                    job = await session.get(AutomationJob, job_id)
                    if job is None:
                        raise NotFoundError("Job not found")
                    if job.status != JobStatus.FAILED:
                        raise StateConflictError("Can only retry failed jobs")

                    active = await self._find_active(session, job.token_id, job_type)
                    if active:
                        raise StateConflictError(
                            f"{job_type} job {active.id} is already in flight for this token"
                        )

                    job.status = JobStatus.PENDING
                    job.error_message = None
                    job.error_kind = None
                    job.started_at = None
                    job.completed_at = None
                    job.scheduled_for = utcnow()
            except IntegrityError:
                # Another process enqueued the same job type first
                logger.info(f"Retry of job {job_id} lost to an in-flight {job_type} job")
                raise StateConflictError(f"A {job_type} job is already in flight for this token")
        return await self.get(job_id)

    async def cancel(self, job_id: int) -> None:
        """Delete a job that has not started"""
        async with self.db.get_session() as session:
            job = await session.get(AutomationJob, job_id)
            if job is None:
                raise NotFoundError("Job not found")
            if job.status != JobStatus.PENDING:
                raise StateConflictError(f"Only pending jobs can be cancelled (job is {job.status})")
            await session.delete(job)
        logger.info(f"Cancelled pending job {job_id}")

    async def rollup(self, parent_id: int) -> None:
        """Recompute a CLAIM's distribution totals from its completed children"""
        async with self.db.get_session() as session:
            parent = await session.get(AutomationJob, parent_id)
            if parent is None:
                return
            sums = await session.execute(
                select(*[
                    func.coalesce(func.sum(getattr(AutomationJob, name)), 0)
                    for name in ROLLUP_FIELDS
                ]).where(
                    AutomationJob.parent_job_id == parent_id,
                    AutomationJob.status == JobStatus.COMPLETED
                )
            )
            for name, total in zip(ROLLUP_FIELDS, sums.one()):
                setattr(parent, name, int(total or 0))

    async def list_pending(self, limit: int = 50) -> List[AutomationJob]:
        async with self.db.get_session() as session:
            result = await session.execute(
                self._job_query()
                .where(AutomationJob.status.in_(ACTIVE_STATUSES))
                .order_by(AutomationJob.created_at.asc(), AutomationJob.id.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def list_failed(self, limit: int = 50) -> List[AutomationJob]:
        async with self.db.get_session() as session:
            result = await session.execute(
                self._job_query()
                .where(AutomationJob.status == JobStatus.FAILED)
                .order_by(AutomationJob.completed_at.desc(), AutomationJob.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def history(self, token_id: int, limit: int = 50) -> List[AutomationJob]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(AutomationJob)
                .where(AutomationJob.token_id == token_id)
                .order_by(AutomationJob.created_at.desc(), AutomationJob.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def cleanup_completed(self, older_than: datetime) -> int:
        async with self.db.get_session() as session:
            stale = select(AutomationJob.id).where(
                AutomationJob.status == JobStatus.COMPLETED,
                AutomationJob.completed_at < older_than
            )
            # Detach surviving children before their parents go
            await session.execute(
                update(AutomationJob)
                .where(AutomationJob.parent_job_id.in_(stale))
                .values(parent_job_id=None)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(
                delete(AutomationJob)
                .where(
                    AutomationJob.status == JobStatus.COMPLETED,
                    AutomationJob.completed_at < older_than
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    @staticmethod
    def retention_cutoff(days: int) -> datetime:
        return utcnow() - timedelta(days=days)
