from .base import (
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
from .http_provider import HttpLaunchProvider

__all__ = [
    'BurnResult',
    'ClaimResult',
    'DividendResult',
    'HttpLaunchProvider',
    'LaunchProvider',
    'LaunchRequest',
    'LaunchResult',
    'LiquidityResult',
    'MarketDataSource',
    'MigrationResult',
]
