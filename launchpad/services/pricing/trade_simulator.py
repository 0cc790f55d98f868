import logging
import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Dict

from launchpad.core.errors import InsufficientLiquidity, InvalidAmount
from launchpad.services.pricing import bonding_curve
from launchpad.services.pricing.bonding_curve import CurveParams

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000
DEFAULT_HIGH_IMPACT_PERCENT = 5.0


class TradeDirection(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class TradeQuote:
    direction: TradeDirection
    amount_in: float
    amount_out: float            # tokens for BUY, SOL for SELL
    execution_price: float
    platform_fee: float          # always in SOL
    price_impact_percent: float
    slippage_percent: float
    price_before: float
    price_after: float
    supply_before: float
    supply_after: float

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['direction'] = str(self.direction)
        return data


def _fee(amount: float, fee_bps: int) -> float:
    return amount * fee_bps / BPS_DENOMINATOR


def _price_or_limit(supply: float, params: CurveParams) -> float:
    if supply >= params.total_supply:
        return bonding_curve.price_at_limit(params)
    return bonding_curve.price(supply, params)


def simulate(
    direction: TradeDirection,
    amount: float,
    supply: float,
    params: CurveParams,
    fee_bps: int
) -> TradeQuote:
    """
    Quote a hypothetical trade against the curve.

    BUY: amount is SOL in, the fee comes off the top and the rest buys tokens.
    SELL: amount is tokens in, the fee comes off the gross SOL out.
    Trades that would leave the curve range fail without a partial fill.
    """
    direction = TradeDirection(direction)
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidAmount("Amount must be greater than 0")
    if fee_bps < 0 or fee_bps > BPS_DENOMINATOR:
        raise InvalidAmount(f"Fee must be between 0 and {BPS_DENOMINATOR} bps")

    price_before = bonding_curve.price(supply, params)

    if direction == TradeDirection.BUY:
        fee = _fee(amount, fee_bps)
        net_sol = amount - fee
        supply_after = bonding_curve.supply_after_spend(supply, net_sol, params)
        if supply_after > params.total_supply:
            raise InsufficientLiquidity(
                f"Buy of {amount} SOL exceeds remaining curve supply"
            )
        tokens_out = supply_after - supply
        if tokens_out <= 0:
            raise InvalidAmount("Amount is too small to buy any tokens")
        execution_price = net_sol / tokens_out
        amount_out = tokens_out
    else:
        supply_after = supply - amount
        if supply_after < 0:
            raise InsufficientLiquidity(
                f"Sell of {amount} tokens exceeds circulating supply {supply}"
            )
        gross_sol = bonding_curve.cost_between(supply_after, supply, params)
        fee = _fee(gross_sol, fee_bps)
        execution_price = gross_sol / amount
        amount_out = gross_sol - fee

    price_after = _price_or_limit(supply_after, params)
    price_impact = abs(execution_price - price_before) / price_before * 100
    slippage = abs(price_after - price_before) / price_before * 100

    return TradeQuote(
        direction=direction,
        amount_in=amount,
        amount_out=amount_out,
        execution_price=execution_price,
        platform_fee=fee,
        price_impact_percent=price_impact,
        slippage_percent=slippage,
        price_before=price_before,
        price_after=price_after,
        supply_before=supply,
        supply_after=supply_after,
    )


def is_high_impact(quote: TradeQuote, threshold_percent: float = DEFAULT_HIGH_IMPACT_PERCENT) -> bool:
    """Caller policy for warning on large trades; not a model invariant"""
    return quote.price_impact_percent > threshold_percent
