import logging
from datetime import timedelta
from typing import Any, Dict

from sqlalchemy import func, select

from launchpad.config.database import DatabaseConnectionManager
from launchpad.core.models import AutomationJob, JobStatus, JobType, Staker, Token, TokenStatus
from launchpad.core.models.base import isoformat, utcnow
from launchpad.services.staking import tiers

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 50
RECENT_JOBS = 10


def _token_summary(token: Token) -> Dict[str, Any]:
    return {
        'mint': token.mint,
        'name': token.name,
        'symbol': token.symbol,
        'imageUrl': token.image_url,
        'status': str(token.status),
        'currentPriceSol': token.current_price_sol,
        'marketCapUsd': token.market_cap_usd,
        'totalVolumeSol': token.total_volume_sol,
        'totalVolumeUsd': token.total_volume_usd,
        'holderCount': token.holder_count,
        'launchedAt': isoformat(token.launched_at),
    }


class StatsAggregator:
    """Platform, creator and automation rollups, recomputed on every read"""

    def __init__(self, db: DatabaseConnectionManager):
        self.db = db

    async def platform_stats(self) -> Dict[str, Any]:
        async with self.db.get_session() as session:
            status_rows = await session.execute(
                select(Token.status, func.count(Token.id)).group_by(Token.status)
            )
            by_status = {TokenStatus(status): count for status, count in status_rows.all()}

            volume_sol, volume_usd, fees, burned = (await session.execute(
                select(
                    func.coalesce(func.sum(Token.total_volume_sol), 0.0),
                    func.coalesce(func.sum(Token.total_volume_usd), 0.0),
                    func.coalesce(func.sum(Token.total_fees_collected), 0),
                    func.coalesce(func.sum(Token.total_burned), 0),
                )
            )).one()

            unique_creators = await session.scalar(
                select(func.count(func.distinct(Token.creator_wallet)))
            )
            stakers, total_staked = (await session.execute(
                select(
                    func.count(Staker.id),
                    func.coalesce(func.sum(Staker.staked_amount), 0.0),
                ).where(Staker.staked_amount > 0)
            )).one()

        return {
            'totalTokensLaunched': sum(by_status.values()),
            'activeTokens': by_status.get(TokenStatus.ACTIVE, 0),
            'graduatedTokens': by_status.get(TokenStatus.GRADUATED, 0),
            'bannedTokens': by_status.get(TokenStatus.BANNED, 0),
            'totalVolumeSol': float(volume_sol),
            'totalVolumeUsd': float(volume_usd),
            'totalFeesCollectedLamports': int(fees),
            'totalBurnedLamports': int(burned),
            'totalStaked': float(total_staked),
            'uniqueCreators': unique_creators or 0,
            'uniqueStakers': stakers or 0,
        }

    async def creator_stats(self, wallet: str) -> Dict[str, Any]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Token)
                .where(Token.creator_wallet == wallet)
                .order_by(Token.launched_at.desc(), Token.id.desc())
            )
            tokens = list(result.scalars().all())
            staker = (await session.execute(
                select(Staker).where(Staker.wallet == wallet)
            )).scalar_one_or_none()

        tier = staker.tier if staker else tiers.classify(0)
        return {
            'wallet': wallet,
            'tokensLaunched': len(tokens),
            'totalVolumeUsd': sum(t.total_volume_usd or 0.0 for t in tokens),
            'totalFeesGenerated': sum(t.total_fees_collected or 0 for t in tokens),
            'staked': staker.staked_amount if staker else 0.0,
            'discountTier': str(tier),
            'feeDiscount': tiers.discount(tier),
            'tokens': [_token_summary(t) for t in tokens],
        }

    async def trending(self, limit: int = 10) -> Dict[str, Any]:
        limit = min(max(limit, 1), MAX_LIST_LIMIT)
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Token)
                .where(Token.status.in_((TokenStatus.ACTIVE, TokenStatus.GRADUATED)))
                .order_by(Token.total_volume_usd.desc(), Token.id.desc())
                .limit(limit)
            )
            tokens = list(result.scalars().all())
        return {'tokens': [_token_summary(t) for t in tokens]}

    async def new_tokens(self, limit: int = 10, hours: int = 24) -> Dict[str, Any]:
        limit = min(max(limit, 1), MAX_LIST_LIMIT)
        since = utcnow() - timedelta(hours=max(hours, 1))
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Token)
                .where(Token.status == TokenStatus.ACTIVE, Token.launched_at >= since)
                .order_by(Token.launched_at.desc(), Token.id.desc())
                .limit(limit)
            )
            tokens = list(result.scalars().all())
        return {'tokens': [_token_summary(t) for t in tokens]}

    async def automation_stats(self) -> Dict[str, Any]:
        async with self.db.get_session() as session:
            status_rows = await session.execute(
                select(AutomationJob.status, func.count(AutomationJob.id)).group_by(AutomationJob.status)
            )
            by_status = {JobStatus(status): count for status, count in status_rows.all()}

            # Claims carry the claimed amount, children carry what each step produced
            completed = AutomationJob.status == JobStatus.COMPLETED
            claimed = await session.scalar(
                select(func.coalesce(func.sum(AutomationJob.claimed_lamports), 0))
                .where(completed, AutomationJob.job_type == JobType.CLAIM)
            )
            burned = await session.scalar(
                select(func.coalesce(func.sum(AutomationJob.burned_tokens), 0))
                .where(completed, AutomationJob.job_type == JobType.BURN)
            )
            lp_added = await session.scalar(
                select(func.coalesce(func.sum(AutomationJob.lp_tokens_added), 0))
                .where(completed, AutomationJob.job_type == JobType.ADD_LIQUIDITY)
            )
            dividends = await session.scalar(
                select(func.coalesce(func.sum(AutomationJob.dividends_paid), 0))
                .where(completed, AutomationJob.job_type == JobType.PAY_DIVIDENDS)
            )
            recent = await session.execute(
                select(AutomationJob)
                .where(completed)
                .order_by(AutomationJob.completed_at.desc(), AutomationJob.id.desc())
                .limit(RECENT_JOBS)
            )
            recent_jobs = list(recent.scalars().all())

        total = sum(by_status.values())
        done = by_status.get(JobStatus.COMPLETED, 0)
        return {
            'totalJobs': total,
            'pendingJobs': by_status.get(JobStatus.PENDING, 0),
            'runningJobs': by_status.get(JobStatus.RUNNING, 0),
            'completedJobs': done,
            'failedJobs': by_status.get(JobStatus.FAILED, 0),
            'successRate': (done / total * 100) if total else 0.0,
            'totals': {
                'claimedLamports': int(claimed or 0),
                'burnedTokens': int(burned or 0),
                'lpTokensAdded': int(lp_added or 0),
                'dividendsPaid': int(dividends or 0),
            },
            'recentJobs': [
                {
                    **job.to_dict(),
                    'token': {'mint': job.token.mint, 'name': job.token.name, 'symbol': job.token.symbol},
                }
                for job in recent_jobs
            ],
        }

    async def health_counts(self) -> Dict[str, int]:
        async with self.db.get_session() as session:
            tokens = await session.scalar(select(func.count(Token.id)))
            pending = await session.scalar(
                select(func.count(AutomationJob.id))
                .where(AutomationJob.status.in_((JobStatus.PENDING, JobStatus.RUNNING)))
            )
            stakers = await session.scalar(select(func.count(Staker.id)))
        return {'tokens': tokens or 0, 'pendingJobs': pending or 0, 'stakers': stakers or 0}
