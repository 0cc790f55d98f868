from launchpad.core.models.base import BaseModel
from launchpad.core.models.enums import (
    JobStatus,
    JobType,
    StakingTier,
    TokenStatus,
    TriggerType,
)
from launchpad.core.models.token import (
    Token,
    TokenTaxConfig,
)
from launchpad.core.models.automation_job import AutomationJob
from launchpad.core.models.staker import Staker

__all__ = [
    # Base
    'BaseModel',

    # Enums
    'JobStatus',
    'JobType',
    'StakingTier',
    'TokenStatus',
    'TriggerType',

    # Token Models
    'Token',
    'TokenTaxConfig',

    # Automation
    'AutomationJob',

    # Staking
    'Staker',
]
