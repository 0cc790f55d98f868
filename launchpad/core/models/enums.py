from enum import Enum


class TokenStatus(str, Enum):
    ACTIVE = "ACTIVE"        # Trading on the bonding curve
    GRADUATED = "GRADUATED"  # Liquidity migrated to an external pool
    BANNED = "BANNED"        # Removed by an admin

    def __str__(self):
        return self.value


class JobType(str, Enum):
    CLAIM = "CLAIM"
    BURN = "BURN"
    ADD_LIQUIDITY = "ADD_LIQUIDITY"
    PAY_DIVIDENDS = "PAY_DIVIDENDS"
    MIGRATE_LIQUIDITY = "MIGRATE_LIQUIDITY"

    def __str__(self):
        return self.value


# Job types that move a share of a fee claim
DISTRIBUTION_JOB_TYPES = (JobType.BURN, JobType.ADD_LIQUIDITY, JobType.PAY_DIVIDENDS)


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    def __str__(self):
        return self.value


class TriggerType(str, Enum):
    SCHEDULED = "SCHEDULED"
    MANUAL = "MANUAL"

    def __str__(self):
        return self.value


class StakingTier(str, Enum):
    NONE = "NONE"
    HOLDER = "HOLDER"
    PREMIUM = "PREMIUM"
    VIP = "VIP"

    def __str__(self):
        return self.value
