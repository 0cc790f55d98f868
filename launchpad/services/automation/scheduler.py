import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional

from sqlalchemy import select

from launchpad.config.database import DatabaseConnectionManager
from launchpad.core.errors import (
    ExternalProviderError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from launchpad.core.models import AutomationJob, JobStatus, JobType, Token, TokenStatus, TriggerType
from launchpad.core.models.enums import DISTRIBUTION_JOB_TYPES
from launchpad.services.automation.job_store import JobStore
from launchpad.services.monitoring.performance import measure_performance, timed
from launchpad.services.providers.base import LaunchProvider
from launchpad.services.tax.validator import TaxConfig, ensure_valid, split_amount
from launchpad.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

# Handler method per job type; every JobType must have one
JOB_HANDLERS: Dict[JobType, str] = {
    JobType.CLAIM: '_handle_claim',
    JobType.BURN: '_handle_burn',
    JobType.ADD_LIQUIDITY: '_handle_add_liquidity',
    JobType.PAY_DIVIDENDS: '_handle_pay_dividends',
    JobType.MIGRATE_LIQUIDITY: '_handle_migrate_liquidity',
}

_unhandled = set(JobType) - set(JOB_HANDLERS)
if _unhandled:
    raise RuntimeError(f"No automation handler for job types: {sorted(str(t) for t in _unhandled)}")

ERROR_KIND_INVARIANT = 'INVARIANT'
ERROR_KIND_INTERNAL = 'INTERNAL'


@dataclass
class JobOutcome:
    """What a handler hands back for the COMPLETED transition"""
    fields: Dict[str, Any] = field(default_factory=dict)
    token_totals: Dict[str, int] = field(default_factory=dict)
    follow_up_job_ids: List[int] = field(default_factory=list)


class AutomationScheduler:
    """
    Runs automation jobs against the launch provider.

    A CLAIM collects fees, splits them with the token's validated tax
    configuration and fans out BURN / ADD_LIQUIDITY / PAY_DIVIDENDS child jobs.
    Jobs of one token never run concurrently; jobs of different tokens run in
    a bounded pool during a cycle.
    """

    def __init__(
        self,
        db: DatabaseConnectionManager,
        provider: LaunchProvider,
        settings: Any,
        job_store: Optional[JobStore] = None
    ):
        self.db = db
        self.provider = provider
        self.store = job_store or JobStore(db)
        self.call_timeout = float(settings.provider_config['timeout'])
        self.max_workers = max(int(settings.max_workers), 1)
        self.job_retention_days = settings.job_retention_days
        self._token_locks = KeyedLock()

    async def _call(self, awaitable: Awaitable, operation: str):
        """Await a provider call, converting a timeout into a classified provider error"""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.call_timeout)
        except asyncio.TimeoutError:
            raise ExternalProviderError(
                f"{operation} timed out after {self.call_timeout}s",
                kind=ExternalProviderError.TIMEOUT,
                operation=operation
            )

    # Enqueue / execute

    async def enqueue(
        self,
        token_id: int,
        job_type: JobType,
        trigger: TriggerType = TriggerType.SCHEDULED,
        amount_lamports: Optional[int] = None,
        parent_job_id: Optional[int] = None
    ):
        return await self.store.enqueue(token_id, job_type, trigger, amount_lamports, parent_job_id)

    async def execute(self, job_id: int) -> AutomationJob:
        """
        Run one PENDING job to a terminal state.

        A job that is no longer PENDING (cancelled, already picked up) is
        returned as is. Follow-up jobs (CLAIM children) run after the parent
        is COMPLETED and outside the token lock; one failing does not stop
        the rest.
        """
        job = await self.store.get(job_id)
        outcome: Optional[JobOutcome] = None

        async with self._token_locks.hold(job.token_id):
            job = await self.store.mark_running(job_id)
            if job is None:
                logger.info(f"Job {job_id} is no longer pending, skipping")
                return await self.store.get(job_id)

            handler = getattr(self, JOB_HANDLERS[JobType(job.job_type)])
            try:
                outcome = await handler(job)
                await self.store.complete(job.id, outcome.fields, outcome.token_totals)
                logger.info(f"Job {job.id} ({job.job_type}) completed for token {job.token_id}")
            except ExternalProviderError as e:
                logger.error(f"Job {job.id} ({job.job_type}) failed [{e.kind}]: {e.message}")
                await self.store.fail(job.id, e.message, e.kind)
            except InvariantViolation as e:
                logger.error(f"Job {job.id} ({job.job_type}) rejected: {e.message}")
                await self.store.fail(job.id, e.message, ERROR_KIND_INVARIANT)
            except Exception as e:
                logger.error(f"Job {job.id} ({job.job_type}) crashed: {e}", exc_info=True)
                await self.store.fail(job.id, str(e) or type(e).__name__, ERROR_KIND_INTERNAL)

        if outcome and outcome.follow_up_job_ids:
            async with timed(f"claim {job.id} distribution ({len(outcome.follow_up_job_ids)} jobs)"):
                for child_id in outcome.follow_up_job_ids:
                    await self.execute(child_id)
                await self.store.rollup(job.id)

        return await self.store.get(job_id)

    # Handlers

    async def _handle_claim(self, job: AutomationJob) -> JobOutcome:
        token = job.token
        # Fails before the provider is called
        config = ensure_valid(TaxConfig.from_model(token.tax_config))

        claim = await self._call(self.provider.claim_fees(token), 'claim_fees')
        claimed = int(claim.claimed_lamports)
        if claimed < 0:
            raise ExternalProviderError(f"Provider reported a negative claim: {claimed}", operation='claim_fees')

        # Persist the claim before fanning out so it survives a crash mid-split
        await self.store.record_progress(job.id, claimed_lamports=claimed, tx_signature=claim.signature)

        split = split_amount(config, claimed)
        unallocated = split.custom_total + split.retained
        children: List[int] = []

        for job_type, share in (
            (JobType.BURN, split.burn),
            (JobType.ADD_LIQUIDITY, split.lp),
            (JobType.PAY_DIVIDENDS, split.dividends),
        ):
            if share <= 0:
                continue
            child, created = await self.store.enqueue(
                token.id, job_type, TriggerType(job.trigger_type),
                amount_lamports=share, parent_job_id=job.id
            )
            if not created:
                logger.warning(
                    f"{job_type} job {child.id} already in flight for token {token.id}; "
                    f"{share} lamports from claim {job.id} left unallocated"
                )
                unallocated += share
                continue
            children.append(child.id)

        logger.info(
            f"Claim {job.id} for {token.mint}: {claimed} lamports, burn={split.burn}, "
            f"lp={split.lp}, dividends={split.dividends}, unallocated={unallocated}"
        )
        return JobOutcome(
            fields={'unallocated_lamports': unallocated},
            token_totals={'total_fees_collected': claimed},
            follow_up_job_ids=children,
        )

    @staticmethod
    def _amount(job: AutomationJob) -> int:
        if not job.amount_lamports or job.amount_lamports <= 0:
            raise InvariantViolation(f"{job.job_type} job {job.id} has no amount to distribute")
        return int(job.amount_lamports)

    async def _handle_burn(self, job: AutomationJob) -> JobOutcome:
        amount = self._amount(job)
        result = await self._call(self.provider.burn(job.token, amount), 'burn')
        return JobOutcome(
            fields={'burned_tokens': int(result.burned_tokens), 'tx_signature': result.signature},
            token_totals={'total_burned': amount},
        )

    async def _handle_add_liquidity(self, job: AutomationJob) -> JobOutcome:
        amount = self._amount(job)
        result = await self._call(self.provider.add_liquidity(job.token, amount), 'add_liquidity')
        return JobOutcome(
            fields={'lp_tokens_added': int(result.lp_tokens_added), 'tx_signature': result.signature},
            token_totals={'total_to_lp': amount},
        )

    async def _handle_pay_dividends(self, job: AutomationJob) -> JobOutcome:
        amount = self._amount(job)
        result = await self._call(self.provider.pay_dividends(job.token, amount), 'pay_dividends')
        return JobOutcome(
            fields={'dividends_paid': int(result.dividends_paid), 'tx_signature': result.signature},
            token_totals={'total_dividends_paid': amount},
        )

    async def _handle_migrate_liquidity(self, job: AutomationJob) -> JobOutcome:
        result = await self._call(self.provider.migrate_liquidity(job.token), 'migrate_liquidity')
        return JobOutcome(fields={'tx_signature': result.signature})

    # Entry points

    @measure_performance("automation_cycle")
    async def run_cycle(self) -> Dict[str, int]:
        """Enqueue and run a scheduled CLAIM for every ACTIVE token"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Token.id).where(Token.status == TokenStatus.ACTIVE).order_by(Token.id)
            )
            token_ids = list(result.scalars().all())

        logger.info(f"Automation cycle: processing {len(token_ids)} tokens")
        semaphore = asyncio.Semaphore(self.max_workers)

        async def process(token_id: int) -> str:
            async with semaphore:
                try:
                    job, created = await self.store.enqueue(token_id, JobType.CLAIM, TriggerType.SCHEDULED)
                    if not created:
                        return 'skipped'
                    job = await self.execute(job.id)
                    return 'completed' if job.status == JobStatus.COMPLETED else 'failed'
                except Exception as e:
                    logger.error(f"Automation failed for token {token_id}: {e}", exc_info=True)
                    return 'failed'

        outcomes = await asyncio.gather(*(process(token_id) for token_id in token_ids))
        summary = {
            'tokens': len(token_ids),
            'completed': outcomes.count('completed'),
            'failed': outcomes.count('failed'),
            'skipped': outcomes.count('skipped'),
        }
        logger.info(f"Automation cycle complete: {summary}")
        return summary

    async def _resolve_token(self, token_id: Optional[int], token_mint: Optional[str]) -> Token:
        async with self.db.get_session() as session:
            if token_id is not None:
                token = await session.get(Token, token_id)
            else:
                result = await session.execute(select(Token).where(Token.mint == token_mint))
                token = result.scalar_one_or_none()
        if token is None:
            raise NotFoundError("Token not found")
        return token

    async def trigger(
        self,
        token_id: Optional[int] = None,
        token_mint: Optional[str] = None,
        job_type: JobType = JobType.CLAIM,
        amount_lamports: Optional[int] = None
    ) -> AutomationJob:
        """Manual trigger: enqueue (or join the in-flight job) and run it now"""
        if token_id is None and not token_mint:
            raise ValidationError("tokenId or tokenMint is required")
        job_type = JobType(job_type)
        if job_type in DISTRIBUTION_JOB_TYPES and (not amount_lamports or amount_lamports <= 0):
            raise ValidationError(f"amountLamports is required for {job_type} jobs")

        token = await self._resolve_token(token_id, token_mint)
        job, created = await self.store.enqueue(
            token.id, job_type, TriggerType.MANUAL,
            amount_lamports=amount_lamports if job_type in DISTRIBUTION_JOB_TYPES else None
        )
        if not created:
            logger.info(f"Manual {job_type} for token {token.id} joined in-flight job {job.id}")
        if job.status == JobStatus.PENDING:
            return await self.execute(job.id)
        return job

    async def retry(self, job_id: int) -> AutomationJob:
        job = await self.store.reset_for_retry(job_id)
        logger.info(f"Retrying job {job.id} ({job.job_type}), attempt {job.retry_count + 1}")
        job = await self.execute(job.id)
        if job.parent_job_id:
            await self.store.rollup(job.parent_job_id)
        return job

    async def cancel(self, job_id: int) -> None:
        await self.store.cancel(job_id)

    async def cleanup_old_jobs(self, days: Optional[int] = None) -> int:
        days = self.job_retention_days if days is None else days
        deleted = await self.store.cleanup_completed(JobStore.retention_cutoff(days))
        logger.info(f"Deleted {deleted} completed jobs older than {days} days")
        return deleted

    async def list_pending(self, limit: int = 50) -> List[AutomationJob]:
        return await self.store.list_pending(limit)

    async def list_failed(self, limit: int = 50) -> List[AutomationJob]:
        return await self.store.list_failed(limit)

    async def job_history(self, token_id: int, limit: int = 50) -> List[AutomationJob]:
        return await self.store.history(token_id, limit)
