from typing import List, Optional

from pydantic import BaseModel

from launchpad.core.models.enums import JobType
from launchpad.services.pricing.trade_simulator import TradeDirection


class CustomAllocation(BaseModel):
    wallet: str
    percentage: int          # basis points
    label: Optional[str] = None


class TaxConfigRequest(BaseModel):
    """Tax split on the wire; every percentage is in basis points"""
    burnEnabled: bool = False
    burnPercentage: int = 0
    lpEnabled: bool = False
    lpPercentage: int = 0
    dividendsEnabled: bool = False
    dividendsPercentage: int = 0
    customAllocations: List[CustomAllocation] = []


class LaunchTokenRequest(BaseModel):
    name: str
    symbol: str
    creatorWallet: str
    description: Optional[str] = None
    imageUrl: Optional[str] = None
    supply: Optional[int] = None
    decimals: Optional[int] = None
    taxConfig: Optional[TaxConfigRequest] = None


class SimulateTradeRequest(BaseModel):
    direction: TradeDirection
    amount: float
    highImpactPercent: float = 5.0


class TriggerAutomationRequest(BaseModel):
    tokenId: Optional[int] = None
    tokenMint: Optional[str] = None
    jobType: JobType = JobType.CLAIM
    amountLamports: Optional[int] = None


class StakeRequest(BaseModel):
    wallet: str
    amount: float
    lockDurationDays: int = 0


class UnstakeRequest(BaseModel):
    wallet: str
    amount: float


class ClaimRewardsRequest(BaseModel):
    wallet: str
