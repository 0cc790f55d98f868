import pytest

from launchpad.core.errors import InvalidCurveParameters
from launchpad.services.pricing import bonding_curve
from launchpad.services.pricing.bonding_curve import CurveParams


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


def test_price_at_zero_supply_is_initial_price(params):
    assert bonding_curve.price(0, params) == pytest.approx(params.initial_price)


def test_price_strictly_increases_with_supply(params):
    prices = [bonding_curve.price(s, params) for s in (0, 1_000, 1_000_000, 100_000_000, 900_000_000)]
    assert all(later > earlier for earlier, later in zip(prices, prices[1:]))


def test_higher_exponent_is_steeper(params):
    steep = CurveParams(**{**params.__dict__, 'curve_exponent': 3.0})
    supply = 500_000_000
    assert bonding_curve.price(supply, steep) > bonding_curve.price(supply, params)


@pytest.mark.parametrize('overrides', [
    {'curve_exponent': 0},
    {'curve_exponent': -1},
    {'initial_price': 0},
    {'total_supply': 0},
    {'virtual_sol_reserve': -1},
    {'virtual_sol_reserve': 0, 'virtual_token_reserve': 0},
    {'initial_price': float('nan')},
])
def test_invalid_parameters_are_rejected(params, overrides):
    bad = CurveParams(**{**params.__dict__, **overrides})
    with pytest.raises(InvalidCurveParameters):
        bonding_curve.price(0, bad)


@pytest.mark.parametrize('supply', [-1, 1_000_000_000, 2_000_000_000, float('inf')])
def test_supply_outside_curve_range_is_rejected(params, supply):
    with pytest.raises(InvalidCurveParameters):
        bonding_curve.price(supply, params)


def test_overflow_raises_instead_of_returning_infinity(params):
    huge = CurveParams(**{**params.__dict__, 'curve_exponent': 1_000_000})
    with pytest.raises(InvalidCurveParameters):
        bonding_curve.price(900_000_000, huge)


def test_market_cap_is_price_times_supply(params):
    supply = 250_000_000
    expected = bonding_curve.price(supply, params) * supply
    assert bonding_curve.market_cap(supply, params) == pytest.approx(expected)
    assert bonding_curve.market_cap_usd(supply, params, 150.0) == pytest.approx(expected * 150.0)


def test_cost_between_is_additive_and_direction_free(params):
    whole = bonding_curve.cost_between(0, 2_000_000, params)
    parts = bonding_curve.cost_between(0, 1_000_000, params) + bonding_curve.cost_between(1_000_000, 2_000_000, params)
    assert whole == pytest.approx(parts)
    assert bonding_curve.cost_between(2_000_000, 0, params) == pytest.approx(whole)


def test_cost_of_small_step_matches_spot_price(params):
    cost = bonding_curve.cost_between(0, 1, params)
    assert cost == pytest.approx(params.initial_price, rel=1e-6)


def test_supply_after_spend_inverts_cost(params):
    cost = bonding_curve.cost_between(10_000_000, 60_000_000, params)
    assert bonding_curve.supply_after_spend(10_000_000, cost, params) == pytest.approx(60_000_000)


def test_graduation_progress_caps_at_hundred(params):
    assert bonding_curve.graduation_progress(0, params, 150.0) == 0.0
    assert bonding_curve.graduation_progress(900_000_000, params, 150.0) == 100.0


def test_meets_threshold_tolerates_float_noise():
    assert bonding_curve.meets_threshold(69_000.0, 69_000.0)
    assert bonding_curve.meets_threshold(69_000.0 * (1 - 1e-12), 69_000.0)
    assert not bonding_curve.meets_threshold(68_999.0, 69_000.0)
