import pytest

from launchpad.core.errors import InsufficientLiquidity, InvalidAmount
from launchpad.services.pricing import bonding_curve
from launchpad.services.pricing.bonding_curve import CurveParams
from launchpad.services.pricing.trade_simulator import TradeDirection, is_high_impact, simulate


@pytest.fixture
def params():
    return CurveParams(
        initial_price=0.00001,
        curve_exponent=2.0,
        total_supply=1_000_000_000,
        virtual_sol_reserve=30.0,
        virtual_token_reserve=1_000_000_000.0,
        graduation_threshold_usd=69_000.0,
    )


def test_buy_takes_fee_before_buying(params):
    quote = simulate(TradeDirection.BUY, 1.0, 0, params, 100)

    assert quote.platform_fee == pytest.approx(0.01)
    net_sol = 1.0 - quote.platform_fee
    assert bonding_curve.cost_between(0, quote.supply_after, params) == pytest.approx(net_sol)
    assert quote.amount_out == pytest.approx(quote.supply_after)
    assert quote.execution_price == pytest.approx(net_sol / quote.amount_out)


def test_one_sol_buy_at_half_supply(params):
    quote = simulate(TradeDirection.BUY, 1.0, 500_000_000, params, 100)

    assert quote.platform_fee == pytest.approx(0.01)
    assert quote.amount_out > 0
    assert quote.price_impact_percent >= 0
    assert quote.supply_after == pytest.approx(500_000_000 + quote.amount_out)
    assert bonding_curve.cost_between(500_000_000, quote.supply_after, params) == pytest.approx(0.99)


def test_buy_impact_is_non_negative_and_price_moves_up(params):
    quote = simulate(TradeDirection.BUY, 10.0, 50_000_000, params, 100)

    assert quote.execution_price >= quote.price_before
    assert quote.price_impact_percent >= 0
    assert quote.price_after > quote.price_before
    assert quote.slippage_percent > 0


def test_sell_takes_fee_from_gross(params):
    supply = 100_000_000
    quote = simulate(TradeDirection.SELL, 1_000_000, supply, params, 100)

    gross = bonding_curve.cost_between(supply - 1_000_000, supply, params)
    assert quote.platform_fee == pytest.approx(gross * 0.01)
    assert quote.amount_out == pytest.approx(gross - quote.platform_fee)
    assert quote.execution_price == pytest.approx(gross / 1_000_000)
    assert quote.supply_after == pytest.approx(99_000_000)
    assert quote.price_after < quote.price_before


def test_direction_accepts_plain_strings(params):
    assert simulate('SELL', 10, 1_000, params, 0).direction == TradeDirection.SELL


@pytest.mark.parametrize('amount', [0, -1, float('nan')])
def test_non_positive_amount_is_rejected(params, amount):
    with pytest.raises(InvalidAmount):
        simulate(TradeDirection.BUY, amount, 0, params, 100)


@pytest.mark.parametrize('fee_bps', [-1, 10_001])
def test_fee_outside_range_is_rejected(params, fee_bps):
    with pytest.raises(InvalidAmount):
        simulate(TradeDirection.BUY, 1.0, 0, params, fee_bps)


def test_buy_past_total_supply_fails_without_partial_fill(params):
    small = CurveParams(**{**params.__dict__, 'total_supply': 1_000})
    with pytest.raises(InsufficientLiquidity):
        simulate(TradeDirection.BUY, 1_000.0, 0, small, 100)


def test_sell_more_than_circulating_supply_fails(params):
    with pytest.raises(InsufficientLiquidity):
        simulate(TradeDirection.SELL, 5_000, 1_000, params, 100)


def test_high_impact_is_a_caller_threshold(params):
    quote = simulate(TradeDirection.BUY, 100.0, 0, params, 100)

    assert quote.price_impact_percent == pytest.approx(0.99, abs=0.05)
    assert is_high_impact(quote, 0.5)
    assert not is_high_impact(quote)


def test_quote_serializes_direction_as_string(params):
    data = simulate(TradeDirection.BUY, 1.0, 0, params, 100).to_dict()
    assert data['direction'] == 'BUY'
    assert data['platform_fee'] == pytest.approx(0.01)
