import asyncio
import itertools
from typing import Any, Dict, List, Optional

import httpx
import pytest

from launchpad.api.app import create_app
from launchpad.config.database import DatabaseConnectionManager
from launchpad.config.settings import Settings
from launchpad.core.errors import ExternalProviderError
from launchpad.core.models import Token, TokenStatus, TokenTaxConfig
from launchpad.core.models.base import utcnow
from launchpad.main import LaunchpadApp
from launchpad.services.providers.base import (
    BurnResult,
    ClaimResult,
    DividendResult,
    LaunchProvider,
    LaunchRequest,
    LaunchResult,
    LiquidityResult,
    MarketDataSource,
    MigrationResult,
)
from launchpad.services.tax.validator import TaxConfig

ADMIN_KEY = 'test-admin-key'


class FakeLaunchProvider(LaunchProvider, MarketDataSource):
    """In-memory provider; failures and delays are scripted per operation"""

    def __init__(self):
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self.delays: Dict[str, float] = {}
        self.claim_lamports = 1_000_000
        self.circulating_supply = 0.0
        self.sol_usd = 150.0
        self.fixed_mint: Optional[str] = None
        self._mints = itertools.count(1)

    async def _op(self, name: str) -> None:
        self.calls.append(name)
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        error = self.failures.get(name)
        if error is not None:
            raise error

    def fail(self, name: str, message: str = "provider unavailable") -> None:
        self.failures[name] = ExternalProviderError(message, operation=name)

    def count(self, name: str) -> int:
        return self.calls.count(name)

    async def launch(self, request: LaunchRequest) -> LaunchResult:
        await self._op('launch')
        mint = self.fixed_mint or f"FakeMint{next(self._mints)}"
        return LaunchResult(
            mint=mint,
            config_key=f"cfg-{mint}",
            pool_address=f"pool-{mint}",
            launch_url=f"https://launch.test/{mint}",
        )

    async def claim_fees(self, token: Any) -> ClaimResult:
        await self._op('claim_fees')
        return ClaimResult(claimed_lamports=self.claim_lamports, signature='sig-claim')

    async def burn(self, token: Any, lamports: int) -> BurnResult:
        await self._op('burn')
        return BurnResult(burned_tokens=lamports * 10, signature='sig-burn')

    async def add_liquidity(self, token: Any, lamports: int) -> LiquidityResult:
        await self._op('add_liquidity')
        return LiquidityResult(lp_tokens_added=lamports // 2, signature='sig-lp')

    async def pay_dividends(self, token: Any, lamports: int) -> DividendResult:
        await self._op('pay_dividends')
        return DividendResult(dividends_paid=lamports, recipients=3, signature='sig-div')

    async def migrate_liquidity(self, token: Any) -> MigrationResult:
        await self._op('migrate_liquidity')
        return MigrationResult(pool_address=f"amm-{token.mint}", signature='sig-migrate')

    async def get_circulating_supply(self, token: Any) -> float:
        await self._op('get_circulating_supply')
        return self.circulating_supply

    async def get_sol_usd_rate(self) -> float:
        await self._op('get_sol_usd_rate')
        return self.sol_usd


@pytest.fixture
def settings(monkeypatch):
    monkeypatch.setenv('DATABASE_URL', 'sqlite+aiosqlite:///:memory:')
    monkeypatch.setenv('ADMIN_API_KEY', ADMIN_KEY)
    monkeypatch.setenv('PROVIDER_TIMEOUT', '0.5')
    monkeypatch.setenv('PROVIDER_MAX_RETRIES', '1')
    monkeypatch.setenv('MAX_WORKERS', '1')
    monkeypatch.setenv('ENABLE_SCHEDULER', 'false')
    monkeypatch.setenv('LOG_FILE', 'none')
    return Settings()


@pytest.fixture
async def db(settings):
    manager = DatabaseConnectionManager(settings.database_url)
    await manager.create_all()
    yield manager
    await manager.cleanup()


@pytest.fixture
def provider():
    return FakeLaunchProvider()


@pytest.fixture
def launchpad(settings, provider, db):
    return LaunchpadApp(settings, provider=provider, db=db)


@pytest.fixture
def scheduler(launchpad):
    return launchpad.scheduler


@pytest.fixture
def make_token(db, settings):
    counter = itertools.count(1)

    async def factory(tax: Optional[TaxConfig] = None, **overrides) -> Token:
        n = next(counter)
        curve = settings.curve_defaults
        fields = dict(
            mint=f"Mint{n}",
            name=f"Token {n}",
            symbol=f"TK{n}",
            creator_wallet='creator-1',
            total_supply=1_000_000_000,
            decimals=9,
            status=TokenStatus.ACTIVE,
            config_key=f"cfg-{n}",
            pool_address=f"pool-{n}",
            initial_price=curve.initial_price,
            curve_exponent=curve.curve_exponent,
            virtual_sol_reserve=curve.virtual_sol_reserve,
            virtual_token_reserve=curve.virtual_token_reserve,
            graduation_threshold_usd=curve.graduation_threshold_usd,
            launched_at=utcnow(),
        )
        fields.update(overrides)
        tax_fields = (tax or TaxConfig()).to_model_fields()
        async with db.get_session() as session:
            token = Token(**fields)
            token.tax_config = TokenTaxConfig(**tax_fields)
            session.add(token)
            await session.flush()
        return token

    return factory


@pytest.fixture
def load_token(db):
    async def loader(token_id: int) -> Token:
        async with db.get_session() as session:
            return await session.get(Token, token_id)

    return loader


@pytest.fixture
async def client(launchpad):
    api = create_app(launchpad)
    transport = httpx.ASGITransport(app=api, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url='http://test') as http:
        yield http


@pytest.fixture
def admin_headers():
    return {'X-API-Key': ADMIN_KEY}
