import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from launchpad.core.errors import ValidationError
from launchpad.core.models.enums import StakingTier

logger = logging.getLogger(__name__)

# Lock duration (days) -> stake multiplier, ascending
LOCK_MULTIPLIERS: Tuple[Tuple[int, float], ...] = (
    (7, 1.0),
    (30, 1.25),
    (90, 1.5),
    (180, 2.0),
    (365, 3.0),
)

# Weighted stake per million, per day, before the tier multiplier
REWARD_UNIT = 1_000_000


@dataclass(frozen=True)
class TierConfig:
    """Thresholds and perks per tier; override thresholds to retune classification"""
    thresholds: Dict[StakingTier, float] = field(default_factory=lambda: {
        StakingTier.NONE: 0,
        StakingTier.HOLDER: 1_000,
        StakingTier.PREMIUM: 10_000,
        StakingTier.VIP: 100_000,
    })
    discounts: Dict[StakingTier, float] = field(default_factory=lambda: {
        StakingTier.NONE: 0,
        StakingTier.HOLDER: 10,
        StakingTier.PREMIUM: 25,
        StakingTier.VIP: 50,
    })
    reward_multipliers: Dict[StakingTier, float] = field(default_factory=lambda: {
        StakingTier.NONE: 1.0,
        StakingTier.HOLDER: 1.1,
        StakingTier.PREMIUM: 1.25,
        StakingTier.VIP: 1.5,
    })

    def ordered(self):
        """Tiers from the highest threshold down"""
        return sorted(self.thresholds.items(), key=lambda item: item[1], reverse=True)


DEFAULT_TIER_CONFIG = TierConfig()


@dataclass(frozen=True)
class RewardProjection:
    daily: float
    weekly: float
    monthly: float
    yearly: float

    def to_dict(self) -> Dict[str, float]:
        return {
            'daily': self.daily,
            'weekly': self.weekly,
            'monthly': self.monthly,
            'yearly': self.yearly,
        }


def _check_amount(amount: float, what: str = "Stake amount") -> None:
    if amount < 0:
        raise ValidationError(f"{what} cannot be negative")


def classify(amount: float, config: Optional[TierConfig] = None) -> StakingTier:
    _check_amount(amount)
    config = config or DEFAULT_TIER_CONFIG
    for tier, threshold in config.ordered():
        if amount >= threshold:
            return tier
    return StakingTier.NONE


def lock_multiplier(lock_days: int) -> float:
    """
    Multiplier of the nearest lower defined lock duration.

    Durations below the shortest lock get 1.0 and nothing past the longest
    lock is extrapolated.
    """
    if lock_days < 0:
        raise ValidationError("Lock duration cannot be negative")
    multiplier = 1.0
    for days, value in LOCK_MULTIPLIERS:
        if lock_days >= days:
            multiplier = value
        else:
            break
    return multiplier


def weighted_stake(amount: float, lock_days: int) -> float:
    _check_amount(amount)
    return amount * lock_multiplier(lock_days)


def tier_for_stake(amount: float, lock_days: int, config: Optional[TierConfig] = None) -> StakingTier:
    """Tier earned by a stake, classified on the lock-weighted amount"""
    return classify(weighted_stake(amount, lock_days), config)


def discount(tier: StakingTier, config: Optional[TierConfig] = None) -> float:
    """Fee discount for a tier, in percent"""
    config = config or DEFAULT_TIER_CONFIG
    return config.discounts[StakingTier(tier)]


def reward_multiplier(tier: StakingTier, config: Optional[TierConfig] = None) -> float:
    config = config or DEFAULT_TIER_CONFIG
    return config.reward_multipliers[StakingTier(tier)]


def effective_fee(tier: StakingTier, base_fee: float, config: Optional[TierConfig] = None) -> float:
    _check_amount(base_fee, "Base fee")
    return base_fee * (1 - discount(tier, config) / 100)


def projected_rewards(weighted: float, reward_rate: float, tier_multiplier: float = 1.0) -> RewardProjection:
    """Linear reward estimate from a daily base; not a ledger entry"""
    _check_amount(weighted, "Weighted stake")
    _check_amount(reward_rate, "Reward rate")
    daily = weighted / REWARD_UNIT * reward_rate * tier_multiplier
    return RewardProjection(
        daily=daily,
        weekly=daily * 7,
        monthly=daily * 30,
        yearly=daily * 365,
    )


def lock_options():
    return [{'days': days, 'multiplier': value} for days, value in LOCK_MULTIPLIERS]
