import asyncio
from types import SimpleNamespace

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from launchpad.core.errors import ExternalProviderError
from launchpad.services.providers import HttpLaunchProvider, LaunchRequest

TOKEN = SimpleNamespace(mint='Mint1', config_key='cfg-1', pool_address='pool-1')


class ProviderStub:
    """Scripted launch provider API; responses are consumed per path"""

    def __init__(self):
        self.requests = []
        self.scripts = {}

    def script(self, path, *responses):
        self.scripts[path] = list(responses)

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.json() if request.can_read_body else None
        self.requests.append((request.method, request.path, request.headers.get('Authorization'), body))
        queue = self.scripts.get(request.path) or [(200, {})]
        status, payload = queue.pop(0) if len(queue) > 1 else queue[0]
        if status == 'slow':
            await asyncio.sleep(payload)
            return web.json_response({})
        return web.json_response(payload, status=status)


@pytest.fixture
async def stub():
    stub = ProviderStub()
    app = web.Application()
    app.router.add_route('*', '/{tail:.*}', stub.handle)
    server = TestServer(app)
    await server.start_server()
    stub.base_url = str(server.make_url(''))
    yield stub
    await server.close()


@pytest.fixture
async def client(stub):
    provider = HttpLaunchProvider(stub.base_url, 'secret', {'timeout': 0.3, 'max_retries': 3, 'retry_delay': 0})
    yield provider
    await provider.close()


async def test_launch_posts_request_with_bearer_auth(client, stub):
    stub.script('/tokens/create', (200, {'mint': 'NewMint', 'configKey': 'cfg', 'launchUrl': 'https://x/NewMint'}))

    result = await client.launch(LaunchRequest(
        name='Moon Cat', symbol='MCAT', creator_wallet='creator-1', total_supply=1_000, decimals=9
    ))

    assert result.mint == 'NewMint'
    assert result.config_key == 'cfg'
    method, path, auth, body = stub.requests[0]
    assert (method, path, auth) == ('POST', '/tokens/create', 'Bearer secret')
    assert body['symbol'] == 'MCAT'


async def test_transient_errors_on_reads_are_retried(client, stub):
    stub.script('/prices/sol', (503, {'error': 'busy'}), (200, {'priceUsd': 150.0}))

    assert await client.get_sol_usd_rate() == 150.0
    assert len(stub.requests) == 2


@pytest.mark.parametrize('path, call', [
    ('/fees/claim', lambda provider: provider.claim_fees(TOKEN)),
    ('/tokens/Mint1/burn', lambda provider: provider.burn(TOKEN, 10)),
    ('/tokens/Mint1/dividends', lambda provider: provider.pay_dividends(TOKEN, 10)),
])
async def test_fund_moving_calls_are_sent_once(client, stub, path, call):
    stub.script(path, (503, {'error': 'busy'}), (200, {'signature': 'sig'}))

    with pytest.raises(ExternalProviderError, match='503'):
        await call(client)

    assert [p for _, p, _, _ in stub.requests] == [path]


async def test_timed_out_mutation_is_not_repeated(client, stub):
    stub.script('/pools/Mint1/liquidity', ('slow', 1.0))

    with pytest.raises(ExternalProviderError) as exc_info:
        await client.add_liquidity(TOKEN, 10)

    assert exc_info.value.kind == ExternalProviderError.TIMEOUT
    assert len(stub.requests) == 1


async def test_client_errors_are_not_retried(client, stub):
    stub.script('/tokens/Mint1/burn', (400, {'error': 'bad amount'}))

    with pytest.raises(ExternalProviderError) as exc_info:
        await client.burn(TOKEN, 10)

    assert exc_info.value.kind == ExternalProviderError.PROVIDER
    assert len(stub.requests) == 1


async def test_unsuccessful_payload_is_an_error(client, stub):
    stub.script('/pools/Mint1/liquidity', (200, {'success': False, 'error': 'pool closed'}))

    with pytest.raises(ExternalProviderError, match='pool closed'):
        await client.add_liquidity(TOKEN, 10)
    assert len(stub.requests) == 1


async def test_timeouts_are_classified_after_last_attempt(client, stub):
    stub.script('/prices/sol', ('slow', 1.0))

    with pytest.raises(ExternalProviderError) as exc_info:
        await client.get_sol_usd_rate()

    assert exc_info.value.kind == ExternalProviderError.TIMEOUT
    assert len(stub.requests) == 3


async def test_market_data_reads(client, stub):
    stub.script('/pools/Mint1', (200, {'pool': {'circulatingSupply': '123.5'}}))
    stub.script('/prices/sol', (200, {'priceUsd': 150.25}))

    assert await client.get_circulating_supply(TOKEN) == 123.5
    assert await client.get_sol_usd_rate() == 150.25


async def test_missing_fields_raise(client, stub):
    stub.script('/tokens/create', (200, {}))
    stub.script('/pools/Mint1', (200, {'pool': {}}))

    with pytest.raises(ExternalProviderError, match='mint'):
        await client.launch(LaunchRequest(name='A', symbol='A', creator_wallet='c', total_supply=1, decimals=0))
    with pytest.raises(ExternalProviderError):
        await client.get_circulating_supply(TOKEN)
