"""
Tax configuration rules.

A token opts into splitting its claimed trading fees between burn, liquidity,
dividends and up to five custom wallets. Percentages are whole-claim
percentages (10 means 10% of the claim). Disabled categories always count as 0.
"""
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from launchpad.core.errors import InvariantViolation

logger = logging.getLogger(__name__)

MAX_TOTAL_TAX = 25.0
MAX_CATEGORY_TAX = 10.0
MAX_CUSTOM_WALLET_TAX = 5.0
MAX_CUSTOM_WALLETS = 5

BPS_PER_PERCENT = 100


@dataclass(frozen=True)
class CustomWallet:
    address: str
    percent: float
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'address': self.address, 'percent': self.percent, 'label': self.label}


@dataclass(frozen=True)
class TaxConfig:
    burn_enabled: bool = False
    burn_percent: float = 0.0
    lp_enabled: bool = False
    lp_percent: float = 0.0
    dividends_enabled: bool = False
    dividends_percent: float = 0.0
    custom_wallets: List[CustomWallet] = field(default_factory=list)

    @classmethod
    def from_model(cls, row: Any) -> 'TaxConfig':
        """Build from a TokenTaxConfig row; a missing row means no tax"""
        if row is None:
            return cls()
        return cls(
            burn_enabled=row.burn_enabled,
            burn_percent=row.burn_percent,
            lp_enabled=row.lp_enabled,
            lp_percent=row.lp_percent,
            dividends_enabled=row.dividends_enabled,
            dividends_percent=row.dividends_percent,
            custom_wallets=[
                CustomWallet(
                    address=w['address'],
                    percent=float(w['percent']),
                    label=w.get('label')
                )
                for w in (row.custom_wallets or [])
            ],
        )

    def to_model_fields(self) -> Dict[str, Any]:
        """Column values for a TokenTaxConfig row"""
        return {
            'burn_enabled': self.burn_enabled,
            'burn_percent': self.burn_percent,
            'lp_enabled': self.lp_enabled,
            'lp_percent': self.lp_percent,
            'dividends_enabled': self.dividends_enabled,
            'dividends_percent': self.dividends_percent,
            'custom_wallets': [w.to_dict() for w in self.custom_wallets],
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'burnEnabled': self.burn_enabled,
            'burnPercent': self.burn_percent,
            'lpEnabled': self.lp_enabled,
            'lpPercent': self.lp_percent,
            'dividendsEnabled': self.dividends_enabled,
            'dividendsPercent': self.dividends_percent,
            'customWallets': [w.to_dict() for w in self.custom_wallets],
            'totalTax': total_tax(self),
        }


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class FeeSplit:
    """Integer lamport split of one fee claim"""
    burn: int
    lp: int
    dividends: int
    custom: Dict[str, int]
    retained: int

    @property
    def custom_total(self) -> int:
        return sum(self.custom.values())

    @property
    def total(self) -> int:
        return self.burn + self.lp + self.dividends + self.custom_total + self.retained


def normalize(config: TaxConfig) -> TaxConfig:
    """Force the percent of every disabled category to 0"""
    return replace(
        config,
        burn_percent=config.burn_percent if config.burn_enabled else 0.0,
        lp_percent=config.lp_percent if config.lp_enabled else 0.0,
        dividends_percent=config.dividends_percent if config.dividends_enabled else 0.0,
        custom_wallets=list(config.custom_wallets),
    )


def total_tax(config: TaxConfig) -> float:
    config = normalize(config)
    return (
        config.burn_percent
        + config.lp_percent
        + config.dividends_percent
        + sum(w.percent for w in config.custom_wallets)
    )


def _category_error(percent: float, name: str) -> Optional[str]:
    if not math.isfinite(percent):
        return f"{name} tax must be a finite percentage"
    if percent < 0 or percent > MAX_CATEGORY_TAX:
        return f"{name} tax cannot exceed {MAX_CATEGORY_TAX:g}%"
    return None


def validate(config: TaxConfig) -> ValidationResult:
    """
    Check a configuration against the tax limits.

    Rules are checked in a fixed order and only the first violation is
    reported: category caps, per-wallet cap, wallet count, then the total.
    """
    config = normalize(config)

    for percent, name in (
        (config.burn_percent, 'Burn'),
        (config.lp_percent, 'LP'),
        (config.dividends_percent, 'Dividends'),
    ):
        error = _category_error(percent, name)
        if error:
            return ValidationResult(valid=False, error=error)

    for wallet in config.custom_wallets:
        if not math.isfinite(wallet.percent):
            return ValidationResult(valid=False, error="Custom wallet tax must be a finite percentage")
        if wallet.percent < 0 or wallet.percent > MAX_CUSTOM_WALLET_TAX:
            return ValidationResult(
                valid=False,
                error=f"Each custom wallet cannot exceed {MAX_CUSTOM_WALLET_TAX:g}%"
            )

    if len(config.custom_wallets) > MAX_CUSTOM_WALLETS:
        return ValidationResult(
            valid=False,
            error=f"Maximum {MAX_CUSTOM_WALLETS} custom wallets allowed"
        )

    if total_tax(config) > MAX_TOTAL_TAX:
        return ValidationResult(valid=False, error=f"Total tax exceeds {MAX_TOTAL_TAX:g}%")

    return ValidationResult(valid=True)


def ensure_valid(config: TaxConfig) -> TaxConfig:
    """Normalize and validate, raising InvariantViolation on the first broken rule"""
    normalized = normalize(config)
    result = validate(normalized)
    if not result.valid:
        raise InvariantViolation(result.error)
    return normalized


def from_bps(payload: Optional[Dict[str, Any]]) -> TaxConfig:
    """
    Convert the basis-point wire encoding into a TaxConfig.

    Expected keys: burnEnabled, burnPercentage, lpEnabled, lpPercentage,
    dividendsEnabled, dividendsPercentage, customAllocations
    ([{wallet, percentage, label?}]). Percentages are basis points.
    """
    if not payload:
        return TaxConfig()

    def pct(key: str) -> float:
        return float(payload.get(key) or 0) / BPS_PER_PERCENT

    wallets = [
        CustomWallet(
            address=item.get('wallet') or item.get('address'),
            percent=float(item.get('percentage') or 0) / BPS_PER_PERCENT,
            label=item.get('label'),
        )
        for item in (payload.get('customAllocations') or [])
    ]

    return TaxConfig(
        burn_enabled=bool(payload.get('burnEnabled', False)),
        burn_percent=pct('burnPercentage'),
        lp_enabled=bool(payload.get('lpEnabled', False)),
        lp_percent=pct('lpPercentage'),
        dividends_enabled=bool(payload.get('dividendsEnabled', False)),
        dividends_percent=pct('dividendsPercentage'),
        custom_wallets=wallets,
    )


def _share(lamports: int, percent: float) -> int:
    # Round through basis points so 10.0% of 1000 is exactly 100
    return lamports * int(round(percent * BPS_PER_PERCENT)) // (100 * BPS_PER_PERCENT)


def split_amount(config: TaxConfig, lamports: int) -> FeeSplit:
    """
    Split a claim in lamports by category, flooring each share.

    Whatever no category takes (untaxed share plus rounding dust) is retained,
    so the parts always sum to the claim.
    """
    if lamports < 0:
        raise InvariantViolation("Cannot split a negative amount")
    config = normalize(config)

    burn = _share(lamports, config.burn_percent)
    lp = _share(lamports, config.lp_percent)
    dividends = _share(lamports, config.dividends_percent)
    custom: Dict[str, int] = {}
    for wallet in config.custom_wallets:
        custom[wallet.address] = custom.get(wallet.address, 0) + _share(lamports, wallet.percent)

    retained = lamports - burn - lp - dividends - sum(custom.values())
    return FeeSplit(burn=burn, lp=lp, dividends=dividends, custom=custom, retained=retained)
