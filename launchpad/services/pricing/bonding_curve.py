"""
Bonding curve pricing.

The curve is a power law over circulating supply with both virtual reserves
folded into a constant offset (expressed in token units):

    offset   = virtual_token_reserve + virtual_sol_reserve / initial_price
    price(s) = initial_price * ((s + offset) / offset) ** curve_exponent

All functions are pure and raise InvalidCurveParameters instead of returning
NaN or infinity.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict

from launchpad.core.errors import InvalidCurveParameters

# Relative tolerance for threshold comparisons
THRESHOLD_REL_TOL = 1e-9


@dataclass(frozen=True)
class CurveParams:
    initial_price: float
    curve_exponent: float
    total_supply: float
    virtual_sol_reserve: float = 0.0
    virtual_token_reserve: float = 0.0
    graduation_threshold_usd: float = 0.0

    @property
    def offset(self) -> float:
        return self.virtual_token_reserve + self.virtual_sol_reserve / self.initial_price

    def validate(self) -> None:
        values = (
            self.initial_price, self.curve_exponent, self.total_supply,
            self.virtual_sol_reserve, self.virtual_token_reserve,
        )
        if not all(math.isfinite(v) for v in values):
            raise InvalidCurveParameters("Curve parameters must be finite numbers")
        if self.curve_exponent <= 0:
            raise InvalidCurveParameters("curve_exponent must be greater than 0")
        if self.initial_price <= 0:
            raise InvalidCurveParameters("initial_price must be greater than 0")
        if self.total_supply <= 0:
            raise InvalidCurveParameters("total_supply must be greater than 0")
        if self.virtual_sol_reserve < 0 or self.virtual_token_reserve < 0:
            raise InvalidCurveParameters("Virtual reserves cannot be negative")
        if self.graduation_threshold_usd < 0:
            raise InvalidCurveParameters("graduation_threshold_usd cannot be negative")
        if self.offset <= 0:
            raise InvalidCurveParameters("At least one virtual reserve must be positive")

    @classmethod
    def from_token(cls, token: Any) -> 'CurveParams':
        """Build from a Token row (or anything with the same attributes)"""
        return cls(
            initial_price=token.initial_price,
            curve_exponent=token.curve_exponent,
            total_supply=float(token.total_supply),
            virtual_sol_reserve=token.virtual_sol_reserve,
            virtual_token_reserve=token.virtual_token_reserve,
            graduation_threshold_usd=token.graduation_threshold_usd,
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            'initialPrice': self.initial_price,
            'curveExponent': self.curve_exponent,
            'totalSupply': self.total_supply,
            'virtualSolReserve': self.virtual_sol_reserve,
            'virtualTokenReserve': self.virtual_token_reserve,
            'graduationThresholdUsd': self.graduation_threshold_usd,
        }


def _finite(value: float, what: str) -> float:
    if not math.isfinite(value):
        raise InvalidCurveParameters(f"{what} is not finite for these curve parameters")
    return value


def _check_supply(supply: float, params: CurveParams, allow_total: bool = False) -> None:
    if not math.isfinite(supply) or supply < 0:
        raise InvalidCurveParameters(f"Supply must be >= 0, got {supply}")
    if supply > params.total_supply or (supply == params.total_supply and not allow_total):
        raise InvalidCurveParameters(
            f"Supply {supply} is outside the curve range [0, {params.total_supply})"
        )


def _ratio_power(supply: float, params: CurveParams, exponent: float) -> float:
    offset = params.offset
    try:
        return ((supply + offset) / offset) ** exponent
    except OverflowError:
        raise InvalidCurveParameters("Curve value overflows for these parameters")


def price(supply: float, params: CurveParams) -> float:
    """Spot price in SOL per token at the given circulating supply"""
    params.validate()
    _check_supply(supply, params)
    return _finite(params.initial_price * _ratio_power(supply, params, params.curve_exponent), "Price")


def price_at_limit(params: CurveParams) -> float:
    """Price as supply approaches total_supply (the curve's upper bound)"""
    params.validate()
    return _finite(
        params.initial_price * _ratio_power(params.total_supply, params, params.curve_exponent),
        "Price"
    )


def market_cap(supply: float, params: CurveParams) -> float:
    """Market cap in SOL"""
    return _finite(price(supply, params) * supply, "Market cap")


def market_cap_usd(supply: float, params: CurveParams, sol_usd: float) -> float:
    if not math.isfinite(sol_usd) or sol_usd < 0:
        raise InvalidCurveParameters(f"SOL/USD rate must be >= 0, got {sol_usd}")
    return _finite(market_cap(supply, params) * sol_usd, "Market cap")


def _antiderivative(supply: float, params: CurveParams) -> float:
    k1 = params.curve_exponent + 1
    return params.initial_price * params.offset / k1 * _ratio_power(supply, params, k1)


def cost_between(start_supply: float, end_supply: float, params: CurveParams) -> float:
    """SOL required to move circulating supply from start to end (integral of price)"""
    params.validate()
    _check_supply(start_supply, params, allow_total=True)
    _check_supply(end_supply, params, allow_total=True)
    low, high = sorted((start_supply, end_supply))
    return _finite(_antiderivative(high, params) - _antiderivative(low, params), "Cost")


def supply_after_spend(start_supply: float, sol_amount: float, params: CurveParams) -> float:
    """
    Supply reached after spending sol_amount on the curve from start_supply.

    Inverse of cost_between; the result may exceed total_supply, callers
    decide whether that is acceptable.
    """
    params.validate()
    _check_supply(start_supply, params, allow_total=True)
    if sol_amount < 0:
        raise InvalidCurveParameters("sol_amount cannot be negative")
    k1 = params.curve_exponent + 1
    offset = params.offset
    base = _ratio_power(start_supply, params, k1) + sol_amount * k1 / (params.initial_price * offset)
    return _finite(offset * base ** (1.0 / k1) - offset, "Supply")


def graduation_progress(supply: float, params: CurveParams, sol_usd: float) -> float:
    """Market cap as a percentage of the graduation threshold, capped at 100"""
    if params.graduation_threshold_usd <= 0:
        return 100.0
    progress = market_cap_usd(supply, params, sol_usd) / params.graduation_threshold_usd * 100
    return min(progress, 100.0)


def meets_threshold(value: float, threshold: float) -> bool:
    """value >= threshold, tolerating floating point noise"""
    return value >= threshold or math.isclose(value, threshold, rel_tol=THRESHOLD_REL_TOL)
