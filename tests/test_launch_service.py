import pytest

from launchpad.core.errors import (
    ExternalProviderError,
    InvariantViolation,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from launchpad.core.models import TokenStatus

FULL_BPS_TAX = {
    'burnEnabled': True,
    'burnPercentage': 500,
    'lpEnabled': True,
    'lpPercentage': 300,
    'dividendsEnabled': False,
    'dividendsPercentage': 900,
    'customAllocations': [{'wallet': 'team-wallet', 'percentage': 200, 'label': 'Team'}],
}


@pytest.fixture
def service(launchpad):
    return launchpad.launch_service


async def test_launch_records_token_and_normalized_tax(service, provider):
    result = await service.launch('Moon Cat', 'MCAT', 'creator-1', tax_config=FULL_BPS_TAX)

    assert result['mint'] == 'FakeMint1'
    assert result['platformFeeBps'] == 500
    assert result['platformFeeDiscount'] == 0
    assert result['launchUrl'] == 'https://launch.test/FakeMint1'

    token = await service.get_token('FakeMint1')
    assert token['status'] == 'ACTIVE'
    assert token['totalSupply'] == 1_000_000_000
    assert token['decimals'] == 9
    assert token['taxConfig']['burnPercent'] == 5.0
    assert token['taxConfig']['lpPercent'] == 3.0
    assert token['taxConfig']['dividendsPercent'] == 0
    assert token['taxConfig']['customWallets'][0]['address'] == 'team-wallet'
    assert token['taxConfig']['totalTax'] == 10.0


async def test_staking_tier_discounts_the_launch_fee(service, launchpad):
    await launchpad.staking.stake('whale', 100_000)

    result = await service.launch('Whale Coin', 'WHALE', 'whale')

    assert result['platformFeeDiscount'] == 50
    assert result['platformFeeBps'] == 250


def test_platform_fee_rounds_down(service):
    assert service.platform_fee_for(10) == 450
    assert service.platform_fee_for(33.3) == 333


async def test_invalid_tax_never_reaches_the_provider(service, provider):
    with pytest.raises(InvariantViolation, match="Total tax exceeds 25%"):
        await service.launch('Greedy', 'GRD', 'creator-1', tax_config={
            'burnEnabled': True, 'burnPercentage': 1000,
            'lpEnabled': True, 'lpPercentage': 1000,
            'dividendsEnabled': True, 'dividendsPercentage': 1000,
        })
    assert provider.count('launch') == 0


@pytest.mark.parametrize('kwargs', [
    {'name': '', 'symbol': 'OK'},
    {'name': 'x' * 33, 'symbol': 'OK'},
    {'name': 'Fine', 'symbol': 'TOOLONGSYMB'},
    {'name': 'Fine', 'symbol': 'OK', 'supply': 0},
    {'name': 'Fine', 'symbol': 'OK', 'decimals': 19},
])
async def test_launch_input_validation(service, provider, kwargs):
    with pytest.raises(ValidationError):
        await service.launch(creator_wallet='creator-1', **kwargs)
    assert provider.count('launch') == 0


async def test_provider_failure_leaves_no_token(service, provider):
    provider.fail('launch')

    with pytest.raises(ExternalProviderError):
        await service.launch('Fine', 'OK', 'creator-1')

    assert (await service.list_tokens())['total'] == 0


async def test_duplicate_mint_is_rejected(service, provider):
    provider.fixed_mint = 'SameMint'
    await service.launch('First', 'ONE', 'creator-1')

    with pytest.raises(StateConflictError):
        await service.launch('Second', 'TWO', 'creator-1')


async def test_list_tokens_filters_and_pages(service, make_token):
    await make_token(creator_wallet='alice')
    await make_token(creator_wallet='alice', status=TokenStatus.GRADUATED)
    await make_token(creator_wallet='bob')

    by_creator = await service.list_tokens(creator='alice')
    assert by_creator['total'] == 2

    graduated = await service.list_tokens(status=TokenStatus.GRADUATED)
    assert [t['creatorWallet'] for t in graduated['tokens']] == ['alice']

    page = await service.list_tokens(page=2, limit=2)
    assert page['total'] == 3
    assert len(page['tokens']) == 1


async def test_missing_token(service):
    with pytest.raises(NotFoundError):
        await service.get_token('nope')


async def test_token_stats_use_live_rate(service, provider, make_token):
    token = await make_token(current_supply=300_000_000)
    provider.sol_usd = 200.0

    stats = await service.get_token_stats(token.mint)

    assert stats['solUsdRate'] == 200.0
    assert stats['priceUsd'] == pytest.approx(stats['priceSol'] * 200.0)
    assert stats['marketCapUsd'] == pytest.approx(stats['marketCapSol'] * 200.0)
    assert stats['graduationProgress'] == 100.0
    assert stats['isGraduated'] is False


async def test_token_stats_fall_back_to_cached_rate(service, provider, make_token):
    token = await make_token(current_supply=1_000, market_cap_sol=2.0, market_cap_usd=300.0)
    provider.fail('get_sol_usd_rate')

    stats = await service.get_token_stats(token.mint)

    assert stats['solUsdRate'] == pytest.approx(150.0)


async def test_simulate_trade_on_active_token(service, make_token):
    token = await make_token()

    quote = await service.simulate_trade(token.mint, 'buy', 1.0)

    assert quote['direction'] == 'BUY'
    assert quote['platform_fee'] == pytest.approx(0.01)
    assert quote['highImpact'] is False


async def test_simulate_trade_rejections(service, make_token):
    graduated = await make_token(status=TokenStatus.GRADUATED)
    active = await make_token()

    with pytest.raises(StateConflictError):
        await service.simulate_trade(graduated.mint, 'BUY', 1.0)
    with pytest.raises(ValidationError):
        await service.simulate_trade(active.mint, 'HOLD', 1.0)


async def test_job_history_by_mint(service, scheduler, make_token):
    token = await make_token()
    await scheduler.trigger(token_id=token.id)

    jobs = await service.job_history(token.mint)

    assert [job['jobType'] for job in jobs] == ['CLAIM']
    assert jobs[0]['status'] == 'COMPLETED'
