import asyncio
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select, update

from launchpad.config.database import DatabaseConnectionManager
from launchpad.core.errors import ExternalProviderError, InvalidCurveParameters
from launchpad.core.models import JobType, Token, TokenStatus, TriggerType
from launchpad.core.models.base import utcnow
from launchpad.services.automation.scheduler import AutomationScheduler
from launchpad.services.monitoring.performance import measure_performance
from launchpad.services.pricing import bonding_curve
from launchpad.services.pricing.bonding_curve import CurveParams
from launchpad.services.providers.base import MarketDataSource

logger = logging.getLogger(__name__)

GRADUATED = 'graduated'
BELOW_THRESHOLD = 'below_threshold'
SKIPPED = 'skipped'
ALREADY_GRADUATED = 'already_graduated'


class GraduationMonitor:
    """
    Moves tokens from ACTIVE to GRADUATED once their USD market cap reaches
    the graduation threshold.

    The status write is a compare-and-set, so concurrent checks graduate a
    token exactly once and only the winner requests the liquidity migration.
    A market data failure skips the token for this round.
    """

    def __init__(
        self,
        db: DatabaseConnectionManager,
        market_data: MarketDataSource,
        scheduler: AutomationScheduler,
        settings: Any
    ):
        self.db = db
        self.market_data = market_data
        self.scheduler = scheduler
        self.call_timeout = float(settings.provider_config['timeout'])

    async def _read(self, awaitable, operation: str):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.call_timeout)
        except asyncio.TimeoutError:
            raise ExternalProviderError(
                f"{operation} timed out after {self.call_timeout}s",
                kind=ExternalProviderError.TIMEOUT,
                operation=operation
            )

    @staticmethod
    def _snapshot(supply: float, params: CurveParams, sol_usd: float) -> Dict[str, float]:
        if supply >= params.total_supply:
            price = bonding_curve.price_at_limit(params)
        else:
            price = bonding_curve.price(supply, params)
        market_cap_sol = price * supply
        return {
            'current_supply': supply,
            'current_price_sol': price,
            'market_cap_sol': market_cap_sol,
            'market_cap_usd': market_cap_sol * sol_usd,
        }

    async def _mark_graduated(self, token_id: int) -> bool:
        """ACTIVE -> GRADUATED compare-and-set; True only for the caller that flipped it"""
        async with self.db.get_session() as session:
            result = await session.execute(
                update(Token)
                .where(Token.id == token_id, Token.status == TokenStatus.ACTIVE)
                .values(status=TokenStatus.GRADUATED, graduated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def _request_migration(self, token: Token) -> None:
        job, created = await self.scheduler.enqueue(token.id, JobType.MIGRATE_LIQUIDITY, TriggerType.SCHEDULED)
        if not created:
            logger.info(f"Migration job {job.id} already in flight for {token.mint}")
            return
        job = await self.scheduler.execute(job.id)
        if job.error_message:
            # Status stays GRADUATED; the failed job can be retried by an admin
            logger.error(f"Liquidity migration for {token.mint} failed: {job.error_message}")

    async def check_token(self, token: Token, sol_usd: float) -> str:
        if token.status != TokenStatus.ACTIVE:
            return ALREADY_GRADUATED

        try:
            supply = float(await self._read(
                self.market_data.get_circulating_supply(token), 'get_circulating_supply'
            ))
            params = CurveParams.from_token(token)
            snapshot = self._snapshot(supply, params, sol_usd)
        except ExternalProviderError as e:
            logger.warning(f"Skipping graduation check for {token.mint}: {e.message}")
            return SKIPPED
        except InvalidCurveParameters as e:
            logger.warning(f"Skipping graduation check for {token.mint}: {e.message}")
            return SKIPPED

        async with self.db.get_session() as session:
            row = await session.get(Token, token.id)
            for key, value in snapshot.items():
                setattr(row, key, value)

        if not bonding_curve.meets_threshold(snapshot['market_cap_usd'], params.graduation_threshold_usd):
            return BELOW_THRESHOLD

        if not await self._mark_graduated(token.id):
            logger.debug(f"{token.mint} was graduated by a concurrent check")
            return ALREADY_GRADUATED

        logger.info(
            f"Token {token.mint} graduated at ${snapshot['market_cap_usd']:,.2f} "
            f"(threshold ${params.graduation_threshold_usd:,.2f})"
        )
        await self._request_migration(token)
        return GRADUATED

    @measure_performance("graduation_check")
    async def check_all(self) -> Dict[str, int]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Token).where(Token.status == TokenStatus.ACTIVE).order_by(Token.id)
            )
            tokens = list(result.scalars().all())

        summary = {'checked': len(tokens), 'graduated': 0, 'skipped': 0}
        if not tokens:
            return summary

        sol_usd: Optional[float] = None
        try:
            sol_usd = float(await self._read(self.market_data.get_sol_usd_rate(), 'get_sol_usd_rate'))
        except ExternalProviderError as e:
            logger.warning(f"SOL/USD rate unavailable, skipping graduation checks: {e.message}")
            summary['skipped'] = len(tokens)
            return summary

        for token in tokens:
            try:
                outcome = await self.check_token(token, sol_usd)
            except Exception as e:
                logger.error(f"Graduation check failed for {token.mint}: {e}", exc_info=True)
                outcome = SKIPPED
            if outcome == GRADUATED:
                summary['graduated'] += 1
            elif outcome == SKIPPED:
                summary['skipped'] += 1

        logger.info(f"Graduation check complete: {summary}")
        return summary
