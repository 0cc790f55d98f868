import asyncio
import logging
import math
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select

from launchpad.config.database import DatabaseConnectionManager
from launchpad.core.errors import (
    ExternalProviderError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from launchpad.core.models import Token, TokenStatus, TokenTaxConfig
from launchpad.core.models.base import utcnow
from launchpad.services.automation.scheduler import AutomationScheduler
from launchpad.services.pricing import bonding_curve, trade_simulator
from launchpad.services.pricing.bonding_curve import CurveParams
from launchpad.services.providers.base import LaunchProvider, LaunchRequest, MarketDataSource
from launchpad.services.staking import tiers
from launchpad.services.staking.service import StakingService
from launchpad.services.tax.validator import TaxConfig, ensure_valid, from_bps

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
MAX_DECIMALS = 18


class LaunchpadService:
    """Token launch and the read side of launched tokens"""

    def __init__(
        self,
        db: DatabaseConnectionManager,
        provider: LaunchProvider,
        staking: StakingService,
        scheduler: AutomationScheduler,
        settings: Any,
        market_data: Optional[MarketDataSource] = None
    ):
        self.db = db
        self.provider = provider
        self.staking = staking
        self.scheduler = scheduler
        self.settings = settings
        self.market_data = market_data
        self.call_timeout = float(settings.provider_config['timeout'])

    def _validate_launch(self, name: str, symbol: str, supply: int, decimals: int) -> None:
        if not name or not name.strip():
            raise ValidationError("Token name is required")
        if len(name) > 32:
            raise ValidationError("Token name cannot exceed 32 characters")
        if not symbol or not symbol.strip():
            raise ValidationError("Token symbol is required")
        if len(symbol) > 10:
            raise ValidationError("Token symbol cannot exceed 10 characters")
        if supply is None or supply <= 0:
            raise ValidationError("Supply must be greater than 0")
        if decimals < 0 or decimals > MAX_DECIMALS:
            raise ValidationError(f"Decimals must be between 0 and {MAX_DECIMALS}")

    def platform_fee_for(self, discount_percent: float) -> int:
        """Launch fee in bps after the staking discount, rounded down"""
        return math.floor(self.settings.platform_fee_bps * (1 - discount_percent / 100))

    async def launch(
        self,
        name: str,
        symbol: str,
        creator_wallet: str,
        supply: Optional[int] = None,
        decimals: Optional[int] = None,
        description: Optional[str] = None,
        image_url: Optional[str] = None,
        tax_config: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Launch a token through the provider and record it.

        Everything is validated before the provider is called; the token row
        only exists once the provider has returned a mint.
        """
        supply = self.settings.default_token_supply if supply is None else supply
        decimals = self.settings.default_token_decimals if decimals is None else decimals
        if not creator_wallet:
            raise ValidationError("creatorWallet is required")
        self._validate_launch(name, symbol, supply, decimals)

        tax = ensure_valid(from_bps(tax_config))

        defaults = self.settings.curve_defaults
        params = CurveParams(
            initial_price=defaults.initial_price,
            curve_exponent=defaults.curve_exponent,
            total_supply=float(supply),
            virtual_sol_reserve=defaults.virtual_sol_reserve,
            virtual_token_reserve=defaults.virtual_token_reserve,
            graduation_threshold_usd=defaults.graduation_threshold_usd,
        )
        params.validate()

        async with self.db.get_session() as session:
            tier = await self.staking.get_tier(session, creator_wallet)
        discount = tiers.discount(tier)
        fee_bps = self.platform_fee_for(discount)

        logger.info(f"Launching {name} ({symbol}) for {creator_wallet}, tier {tier}, fee {fee_bps} bps")

        try:
            result = await asyncio.wait_for(
                self.provider.launch(LaunchRequest(
                    name=name,
                    symbol=symbol,
                    creator_wallet=creator_wallet,
                    total_supply=supply,
                    decimals=decimals,
                    description=description,
                    image_url=image_url,
                    curve=params.to_dict(),
                )),
                timeout=self.call_timeout
            )
        except asyncio.TimeoutError:
            raise ExternalProviderError(
                f"launch timed out after {self.call_timeout}s",
                kind=ExternalProviderError.TIMEOUT,
                operation='launch'
            )

        async with self.db.get_session() as session:
            existing = await session.scalar(select(Token.id).where(Token.mint == result.mint))
            if existing:
                raise StateConflictError(f"Token {result.mint} already exists")

            token = Token(
                mint=result.mint,
                name=name,
                symbol=symbol,
                description=description,
                image_url=image_url,
                decimals=decimals,
                total_supply=supply,
                creator_wallet=creator_wallet,
                status=TokenStatus.ACTIVE,
                config_key=result.config_key,
                pool_address=result.pool_address,
                launch_url=result.launch_url,
                initial_price=params.initial_price,
                curve_exponent=params.curve_exponent,
                virtual_sol_reserve=params.virtual_sol_reserve,
                virtual_token_reserve=params.virtual_token_reserve,
                graduation_threshold_usd=params.graduation_threshold_usd,
                current_supply=0.0,
                current_price_sol=params.initial_price,
                platform_fee_bps=fee_bps,
                platform_fee_discount=discount,
                launched_at=utcnow(),
            )
            token.tax_config = TokenTaxConfig(**tax.to_model_fields())
            session.add(token)
            await session.flush()
            token_id = token.id

        logger.info(f"Token launched: {result.mint} (id {token_id})")
        return {
            'tokenId': token_id,
            'mint': result.mint,
            'launchUrl': result.launch_url,
            'configKey': result.config_key,
            'poolAddress': result.pool_address,
            'platformFeeBps': fee_bps,
            'platformFeeDiscount': discount,
        }

    async def _get_by_mint(self, mint: str) -> Token:
        async with self.db.get_session() as session:
            result = await session.execute(select(Token).where(Token.mint == mint))
            token = result.scalar_one_or_none()
        if token is None:
            raise NotFoundError("Token not found")
        return token

    @staticmethod
    def format_token(token: Token) -> Dict[str, Any]:
        data = token.to_dict()
        data['taxConfig'] = TaxConfig.from_model(token.tax_config).to_dict()
        return data

    async def get_token(self, mint: str) -> Dict[str, Any]:
        return self.format_token(await self._get_by_mint(mint))

    async def list_tokens(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[TokenStatus] = None,
        creator: Optional[str] = None
    ) -> Dict[str, Any]:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        filters = []
        if status:
            filters.append(Token.status == TokenStatus(status))
        if creator:
            filters.append(Token.creator_wallet == creator)

        async with self.db.get_session() as session:
            total = await session.scalar(select(func.count(Token.id)).where(*filters))
            result = await session.execute(
                select(Token)
                .where(*filters)
                .order_by(Token.launched_at.desc(), Token.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            tokens = list(result.scalars().all())

        return {
            'tokens': [self.format_token(t) for t in tokens],
            'total': total or 0,
            'page': page,
            'limit': limit,
        }

    async def _sol_usd_rate(self, token: Token) -> float:
        """Live rate when available, otherwise the rate implied by the cached snapshot"""
        if self.market_data is not None:
            try:
                return float(await asyncio.wait_for(
                    self.market_data.get_sol_usd_rate(), timeout=self.call_timeout
                ))
            except (ExternalProviderError, asyncio.TimeoutError) as e:
                logger.warning(f"Live SOL/USD rate unavailable, using cached snapshot: {e}")
        if token.market_cap_sol:
            return (token.market_cap_usd or 0.0) / token.market_cap_sol
        return 0.0

    async def get_token_stats(self, mint: str) -> Dict[str, Any]:
        token = await self._get_by_mint(mint)
        params = CurveParams.from_token(token)
        supply = min(token.current_supply or 0.0, params.total_supply)
        sol_usd = await self._sol_usd_rate(token)

        if supply >= params.total_supply:
            price_sol = bonding_curve.price_at_limit(params)
        else:
            price_sol = bonding_curve.price(supply, params)
        market_cap_sol = price_sol * supply
        market_cap_usd = market_cap_sol * sol_usd
        if params.graduation_threshold_usd > 0:
            progress = min(market_cap_usd / params.graduation_threshold_usd * 100, 100.0)
        else:
            progress = 100.0

        return {
            'mint': token.mint,
            'currentSupply': supply,
            'priceSol': price_sol,
            'priceUsd': price_sol * sol_usd,
            'solUsdRate': sol_usd,
            'marketCapSol': market_cap_sol,
            'marketCapUsd': market_cap_usd,
            'graduationThresholdUsd': params.graduation_threshold_usd,
            'graduationProgress': progress,
            'isGraduated': token.status == TokenStatus.GRADUATED,
            'status': str(token.status),
            'totalVolumeSol': token.total_volume_sol,
            'totalVolumeUsd': token.total_volume_usd,
            'holderCount': token.holder_count,
        }

    async def job_history(self, mint: str, limit: int = 50) -> List[Dict[str, Any]]:
        token = await self._get_by_mint(mint)
        jobs = await self.scheduler.job_history(token.id, limit)
        return [job.to_dict() for job in jobs]

    async def simulate_trade(
        self,
        mint: str,
        direction: str,
        amount: float,
        high_impact_percent: float = trade_simulator.DEFAULT_HIGH_IMPACT_PERCENT
    ) -> Dict[str, Any]:
        try:
            direction = trade_simulator.TradeDirection(str(direction).upper())
        except ValueError:
            raise ValidationError("direction must be BUY or SELL")

        token = await self._get_by_mint(mint)
        if token.status != TokenStatus.ACTIVE:
            raise StateConflictError(f"Token is {token.status}; trading on the curve has ended")
        params = CurveParams.from_token(token)
        quote = trade_simulator.simulate(
            direction,
            amount,
            token.current_supply or 0.0,
            params,
            self.settings.trading_fee_bps
        )
        data = quote.to_dict()
        data['highImpact'] = trade_simulator.is_high_impact(quote, high_impact_percent)
        return data
