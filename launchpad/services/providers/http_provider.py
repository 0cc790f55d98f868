import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from launchpad.core.errors import ExternalProviderError
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

logger = logging.getLogger(__name__)

# Status codes worth another attempt on a read
RETRYABLE_STATUSES = {408, 429, 500, 502, 503, 504}

# Only reads are repeated; a mutation may already have executed on the provider
IDEMPOTENT_METHODS = {"GET", "HEAD"}


class HttpLaunchProvider(LaunchProvider, MarketDataSource):
    """
    JSON REST client for the launch provider.

    Requests carry a bearer token. Transient failures of market data reads
    (connection errors, timeouts, 5xx, 429) are retried with a linear backoff.
    Fund-moving POSTs get exactly one attempt: a timeout or 5xx there may
    follow an executed transfer, so it surfaces as ExternalProviderError and
    the job is left for a manual retry.
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None, config: Optional[Dict] = None):
        config = config or {}
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = float(config.get('timeout', 30))
        self.max_retries = int(config.get('max_retries', 3))
        self.retry_delay = float(config.get('retry_delay', 1.0))
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            async with self._lock:
                if self._session is None or self._session.closed:
                    headers = {"Content-Type": "application/json"}
                    if self.api_key:
                        headers["Authorization"] = f"Bearer {self.api_key}"
                    self._session = aiohttp.ClientSession(
                        headers=headers,
                        timeout=aiohttp.ClientTimeout(total=self.timeout)
                    )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, method: str, path: str, payload: Optional[Dict] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        last_error: Optional[ExternalProviderError] = None
        attempts = max(self.max_retries, 1) if method in IDEMPOTENT_METHODS else 1

        for attempt in range(1, attempts + 1):
            try:
                session = await self._get_session()
                async with session.request(method, url, json=payload) as response:
                    if response.status in RETRYABLE_STATUSES:
                        body = await response.text()
                        raise ExternalProviderError(
                            f"{method} {path} returned {response.status}: {body[:200]}",
                            operation=path
                        )
                    if response.status >= 400:
                        body = await response.text()
                        # Client errors are not retried
                        last_error = ExternalProviderError(
                            f"{method} {path} returned {response.status}: {body[:200]}",
                            operation=path
                        )
                        break
                    data = await response.json(content_type=None)
                    if isinstance(data, dict) and data.get('success') is False:
                        last_error = ExternalProviderError(
                            data.get('error') or f"{method} {path} failed",
                            operation=path
                        )
                        break
                    return data or {}

            except asyncio.TimeoutError:
                last_error = ExternalProviderError(
                    f"{method} {path} timed out after {self.timeout}s",
                    kind=ExternalProviderError.TIMEOUT,
                    operation=path
                )
            except aiohttp.ClientError as e:
                last_error = ExternalProviderError(f"{method} {path} failed: {e}", operation=path)
            except ExternalProviderError as e:
                last_error = e

            logger.warning(
                f"Provider call failed (attempt {attempt}/{attempts}): {last_error.message}"
            )
            if attempt < attempts:
                await asyncio.sleep(self.retry_delay * attempt)

        logger.error(f"All provider attempts failed for {method} {path}")
        raise last_error

    @staticmethod
    def _int(data: Dict[str, Any], key: str) -> int:
        try:
            return int(data.get(key) or 0)
        except (TypeError, ValueError):
            raise ExternalProviderError(f"Provider returned a non-numeric {key}: {data.get(key)!r}")

    async def launch(self, request: LaunchRequest) -> LaunchResult:
        data = await self._request("POST", "/tokens/create", {
            "name": request.name,
            "symbol": request.symbol,
            "description": request.description or "",
            "image": request.image_url,
            "creator": request.creator_wallet,
            "supply": request.total_supply,
            "decimals": request.decimals,
            "curve": request.curve,
        })
        mint = data.get("mint")
        if not mint:
            raise ExternalProviderError("Provider did not return a mint address", operation="launch")
        return LaunchResult(
            mint=mint,
            config_key=data.get("configKey"),
            pool_address=data.get("poolAddress"),
            launch_url=data.get("launchUrl"),
        )

    async def claim_fees(self, token: Any) -> ClaimResult:
        data = await self._request("POST", "/fees/claim", {
            "configKey": token.config_key,
            "mint": token.mint,
        })
        return ClaimResult(
            claimed_lamports=self._int(data, "claimedLamports"),
            signature=data.get("signature"),
        )

    async def burn(self, token: Any, lamports: int) -> BurnResult:
        data = await self._request("POST", f"/tokens/{token.mint}/burn", {"lamports": lamports})
        return BurnResult(
            burned_tokens=self._int(data, "burnedTokens"),
            signature=data.get("signature"),
        )

    async def add_liquidity(self, token: Any, lamports: int) -> LiquidityResult:
        data = await self._request("POST", f"/pools/{token.mint}/liquidity", {"lamports": lamports})
        return LiquidityResult(
            lp_tokens_added=self._int(data, "lpTokensAdded"),
            signature=data.get("signature"),
        )

    async def pay_dividends(self, token: Any, lamports: int) -> DividendResult:
        data = await self._request("POST", f"/tokens/{token.mint}/dividends", {"lamports": lamports})
        return DividendResult(
            dividends_paid=self._int(data, "dividendsPaid"),
            recipients=self._int(data, "recipients"),
            signature=data.get("signature"),
        )

    async def migrate_liquidity(self, token: Any) -> MigrationResult:
        data = await self._request("POST", f"/pools/{token.mint}/migrate", {
            "poolAddress": token.pool_address,
        })
        return MigrationResult(pool_address=data.get("poolAddress"), signature=data.get("signature"))

    async def get_circulating_supply(self, token: Any) -> float:
        data = await self._request("GET", f"/pools/{token.mint}")
        pool = data.get("pool", data)
        try:
            return float(pool["circulatingSupply"])
        except (KeyError, TypeError, ValueError):
            raise ExternalProviderError(
                f"Pool info for {token.mint} has no circulating supply",
                operation="get_circulating_supply"
            )

    async def get_sol_usd_rate(self) -> float:
        data = await self._request("GET", "/prices/sol")
        try:
            rate = float(data["priceUsd"])
        except (KeyError, TypeError, ValueError):
            raise ExternalProviderError("SOL price response has no priceUsd", operation="get_sol_usd_rate")
        if rate <= 0:
            raise ExternalProviderError(f"Invalid SOL price {rate}", operation="get_sol_usd_rate")
        return rate
