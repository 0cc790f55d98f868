from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class LaunchRequest:
    name: str
    symbol: str
    creator_wallet: str
    total_supply: int
    decimals: int
    description: Optional[str] = None
    image_url: Optional[str] = None
    curve: Dict[str, float] = field(default_factory=dict)


@dataclass
class LaunchResult:
    mint: str
    config_key: Optional[str] = None
    pool_address: Optional[str] = None
    launch_url: Optional[str] = None


@dataclass
class ClaimResult:
    claimed_lamports: int
    signature: Optional[str] = None


@dataclass
class BurnResult:
    burned_tokens: int
    signature: Optional[str] = None


@dataclass
class LiquidityResult:
    lp_tokens_added: int
    signature: Optional[str] = None


@dataclass
class DividendResult:
    dividends_paid: int
    recipients: int = 0
    signature: Optional[str] = None


@dataclass
class MigrationResult:
    pool_address: Optional[str] = None
    signature: Optional[str] = None


class LaunchProvider(ABC):
    """
    External launch-and-liquidity provider.

    Every method either returns its result object or raises
    ExternalProviderError. Implementations receive Token rows (or objects
    with the same attributes) and must not mutate them.
    """

    @abstractmethod
    async def launch(self, request: LaunchRequest) -> LaunchResult:
        ...

    @abstractmethod
    async def claim_fees(self, token: Any) -> ClaimResult:
        ...

    @abstractmethod
    async def burn(self, token: Any, lamports: int) -> BurnResult:
        ...

    @abstractmethod
    async def add_liquidity(self, token: Any, lamports: int) -> LiquidityResult:
        ...

    @abstractmethod
    async def pay_dividends(self, token: Any, lamports: int) -> DividendResult:
        ...

    @abstractmethod
    async def migrate_liquidity(self, token: Any) -> MigrationResult:
        ...

    async def close(self) -> None:
        """Release network resources; optional"""


class MarketDataSource(ABC):
    """Read side used by the graduation monitor"""

    @abstractmethod
    async def get_circulating_supply(self, token: Any) -> float:
        ...

    @abstractmethod
    async def get_sol_usd_rate(self) -> float:
        ...
