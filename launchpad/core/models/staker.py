from sqlalchemy import Column, DateTime, Enum, Float, Integer, String

from launchpad.core.models.base import BaseModel
from launchpad.core.models.enums import StakingTier


class Staker(BaseModel):
    """Platform token stake held by a wallet"""

    wallet = Column(String(64), unique=True, nullable=False, index=True)
    staked_amount = Column(Float, nullable=False, default=0.0)
    weighted_stake = Column(Float, nullable=False, default=0.0)
    tier = Column(Enum(StakingTier), nullable=False, default=StakingTier.NONE, index=True)

    # Lock
    lock_duration_days = Column(Integer, nullable=False, default=0)
    lock_end_time = Column(DateTime(timezone=True))

    # Rewards
    pending_rewards = Column(Float, nullable=False, default=0.0)
    total_rewards_claimed = Column(Float, nullable=False, default=0.0)
    last_claim_time = Column(DateTime(timezone=True))
    last_accrual_time = Column(DateTime(timezone=True))

    def __repr__(self):
        return f"<Staker(wallet={self.wallet}, staked={self.staked_amount}, tier={self.tier})>"
