import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from launchpad.config.database import DatabaseConnectionManager
from launchpad.core.errors import NotFoundError, StateConflictError, ValidationError
from launchpad.core.models import Staker, StakingTier
from launchpad.core.models.base import ensure_utc, isoformat, utcnow
from launchpad.services.staking import tiers

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365
MAX_APY_PERCENT = 1000.0


class StakingService:
    """
    Staking ledger for the platform token.

    Owns Staker rows: stake, unstake, reward accrual and claims. Tier
    classification is delegated to the pure tier engine and always uses the
    lock-weighted stake.
    """

    def __init__(
        self,
        db: DatabaseConnectionManager,
        settings: Any,
        clock: Callable[[], datetime] = utcnow
    ):
        self.db = db
        self.reward_rate = settings.staking_reward_rate
        self.rewards_pool = settings.staking_rewards_pool
        self.clock = clock

    async def _get_staker(self, session: AsyncSession, wallet: str) -> Optional[Staker]:
        result = await session.execute(select(Staker).where(Staker.wallet == wallet))
        return result.scalar_one_or_none()

    async def _total_weighted(self, session: AsyncSession) -> float:
        total = await session.scalar(select(func.coalesce(func.sum(Staker.weighted_stake), 0.0)))
        return float(total or 0.0)

    async def _accrue(self, session: AsyncSession, staker: Staker, now: datetime) -> None:
        """Add the staker's share of the daily pool emission since the last checkpoint"""
        checkpoint = ensure_utc(staker.last_accrual_time or staker.created_at)
        staker.last_accrual_time = now
        if checkpoint is None or not staker.weighted_stake:
            return

        elapsed_days = max((now - checkpoint).total_seconds(), 0.0) / 86400
        total_weighted = await self._total_weighted(session)
        if total_weighted <= 0 or elapsed_days <= 0:
            return

        share = staker.weighted_stake / total_weighted
        daily_emission = self.rewards_pool / DAYS_PER_YEAR
        staker.pending_rewards = (staker.pending_rewards or 0.0) + daily_emission * share * elapsed_days

    @staticmethod
    def _serialize(staker: Staker) -> Dict[str, Any]:
        return {
            'wallet': staker.wallet,
            'stakedAmount': staker.staked_amount,
            'weightedStake': staker.weighted_stake,
            'tier': str(staker.tier),
            'lockDurationDays': staker.lock_duration_days,
            'lockEndTime': isoformat(staker.lock_end_time),
            'pendingRewards': staker.pending_rewards,
            'totalRewardsClaimed': staker.total_rewards_claimed,
            'lastClaimTime': isoformat(staker.last_claim_time),
            'feeDiscount': tiers.discount(staker.tier),
        }

    async def get_status(self, wallet: str) -> Dict[str, Any]:
        async with self.db.get_session() as session:
            staker = await self._get_staker(session, wallet)
            if not staker:
                return {
                    'wallet': wallet,
                    'stakedAmount': 0.0,
                    'weightedStake': 0.0,
                    'tier': str(StakingTier.NONE),
                    'lockDurationDays': 0,
                    'lockEndTime': None,
                    'pendingRewards': 0.0,
                    'totalRewardsClaimed': 0.0,
                    'lastClaimTime': None,
                    'feeDiscount': 0,
                }
            await self._accrue(session, staker, self.clock())
            return self._serialize(staker)

    async def get_tier(self, session: AsyncSession, wallet: str) -> StakingTier:
        """Tier currently held by a wallet; NONE when it never staked"""
        staker = await self._get_staker(session, wallet)
        return StakingTier(staker.tier) if staker else StakingTier.NONE

    async def get_pool_info(self) -> Dict[str, Any]:
        async with self.db.get_session() as session:
            total_staked = await session.scalar(
                select(func.coalesce(func.sum(Staker.staked_amount), 0.0))
            )
            rows = await session.execute(
                select(Staker.tier, func.count(Staker.id))
                .where(Staker.staked_amount > 0)
                .group_by(Staker.tier)
            )
            counts = {StakingTier(tier): count for tier, count in rows.all()}

        total_staked = float(total_staked or 0.0)
        config = tiers.DEFAULT_TIER_CONFIG
        return {
            'totalStaked': total_staked,
            'totalStakers': sum(counts.values()),
            'rewardsPool': self.rewards_pool,
            'apy': self.calculate_apy(total_staked),
            'tiers': [
                {
                    'name': str(tier),
                    'minStake': threshold,
                    'discount': config.discounts[tier],
                    'rewardMultiplier': config.reward_multipliers[tier],
                    'count': counts.get(tier, 0),
                }
                for tier, threshold in sorted(config.thresholds.items(), key=lambda item: item[1])
            ],
            'lockOptions': tiers.lock_options(),
        }

    def calculate_apy(self, total_staked: float) -> float:
        """Pool emitted over a year against everything staked, capped at 1000%"""
        if total_staked <= 0:
            return 0.0
        return min(self.rewards_pool / total_staked * 100, MAX_APY_PERCENT)

    def calculate(self, amount: float, lock_days: int) -> Dict[str, Any]:
        """Calculator preview for a hypothetical stake"""
        weighted = tiers.weighted_stake(amount, lock_days)
        tier = tiers.classify(weighted)
        multiplier = tiers.reward_multiplier(tier)
        projection = tiers.projected_rewards(weighted, self.reward_rate, multiplier)
        return {
            'amount': amount,
            'lockDays': lock_days,
            'lockMultiplier': tiers.lock_multiplier(lock_days),
            'weightedStake': weighted,
            'tier': str(tier),
            'feeDiscount': tiers.discount(tier),
            'tierMultiplier': multiplier,
            'projectedRewards': projection.to_dict(),
        }

    async def stake(self, wallet: str, amount: float, lock_days: int = 0) -> Dict[str, Any]:
        if amount <= 0:
            raise ValidationError("Stake amount must be greater than 0")
        if lock_days < 0:
            raise ValidationError("Lock duration cannot be negative")

        now = self.clock()
        added_weight = tiers.weighted_stake(amount, lock_days)
        lock_end = now + timedelta(days=lock_days) if lock_days > 0 else None

        async with self.db.get_session() as session:
            staker = await self._get_staker(session, wallet)
            if staker is None:
                staker = Staker(
                    wallet=wallet,
                    staked_amount=0.0,
                    weighted_stake=0.0,
                    pending_rewards=0.0,
                    total_rewards_claimed=0.0,
                    lock_duration_days=0,
                    last_accrual_time=now,
                )
                session.add(staker)
            else:
                await self._accrue(session, staker, now)

            staker.staked_amount = (staker.staked_amount or 0.0) + amount
            staker.weighted_stake = (staker.weighted_stake or 0.0) + added_weight

            # Keep whichever lock ends later
            current_end = ensure_utc(staker.lock_end_time)
            if lock_end and (current_end is None or lock_end > current_end):
                staker.lock_end_time = lock_end
                staker.lock_duration_days = lock_days

            staker.tier = tiers.classify(staker.weighted_stake)
            await session.flush()

            logger.info(
                f"Staked {amount} for {wallet} (lock {lock_days}d), "
                f"total {staker.staked_amount}, tier {staker.tier}"
            )
            return self._serialize(staker)

    async def unstake(self, wallet: str, amount: float) -> Dict[str, Any]:
        if amount <= 0:
            raise ValidationError("Unstake amount must be greater than 0")

        now = self.clock()
        async with self.db.get_session() as session:
            staker = await self._get_staker(session, wallet)
            if staker is None:
                raise NotFoundError("Staker not found")

            lock_end = ensure_utc(staker.lock_end_time)
            if lock_end and lock_end > now:
                raise StateConflictError(f"Tokens locked until {lock_end.isoformat()}")
            if staker.staked_amount < amount:
                raise ValidationError("Insufficient staked balance")

            await self._accrue(session, staker, now)

            ratio = amount / staker.staked_amount
            staker.weighted_stake = staker.weighted_stake - staker.weighted_stake * ratio
            staker.staked_amount = staker.staked_amount - amount

            if staker.staked_amount <= 0:
                staker.staked_amount = 0.0
                staker.weighted_stake = 0.0
                staker.lock_end_time = None
                staker.lock_duration_days = 0

            staker.tier = tiers.classify(staker.weighted_stake)
            await session.flush()

            logger.info(f"Unstaked {amount} for {wallet}, remaining {staker.staked_amount}")
            return self._serialize(staker)

    async def claim(self, wallet: str) -> Dict[str, Any]:
        now = self.clock()
        async with self.db.get_session() as session:
            staker = await self._get_staker(session, wallet)
            if staker is None:
                raise NotFoundError("Staker not found")

            await self._accrue(session, staker, now)
            claimed = staker.pending_rewards or 0.0
            if claimed <= 0:
                raise StateConflictError("No rewards to claim")

            staker.total_rewards_claimed = (staker.total_rewards_claimed or 0.0) + claimed
            staker.pending_rewards = 0.0
            staker.last_claim_time = now
            await session.flush()

            logger.info(f"Claimed {claimed} staking rewards for {wallet}")
            result = self._serialize(staker)
            result['claimed'] = claimed
            return result
