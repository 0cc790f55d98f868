from launchpad.core.models import JobStatus, JobType
from launchpad.services.tax.validator import TaxConfig

LAUNCH_BODY = {
    'name': 'Moon Cat',
    'symbol': 'MCAT',
    'creatorWallet': 'creator-1',
    'description': 'Cats on the moon',
    'taxConfig': {
        'burnEnabled': True,
        'burnPercentage': 500,
        'lpEnabled': True,
        'lpPercentage': 500,
    },
}


def assert_envelope(response, status_code, success=True):
    assert response.status_code == status_code, response.text
    body = response.json()
    assert body['success'] is success
    assert 'timestamp' in body
    return body['data'] if success else body['error']


async def test_launch_and_read_back(client):
    data = assert_envelope(await client.post('/api/launch', json=LAUNCH_BODY), 201)
    mint = data['mint']
    assert data['platformFeeBps'] == 500

    token = assert_envelope(await client.get(f'/api/tokens/{mint}'), 200)
    assert token['symbol'] == 'MCAT'
    assert token['taxConfig']['totalTax'] == 10.0

    listing = assert_envelope(await client.get('/api/tokens', params={'creator': 'creator-1'}), 200)
    assert listing['total'] == 1

    stats = assert_envelope(await client.get(f'/api/tokens/{mint}/stats'), 200)
    assert stats['isGraduated'] is False


async def test_launch_validation_errors_use_envelope(client, provider):
    error = assert_envelope(await client.post('/api/launch', json={'symbol': 'X'}), 400, success=False)
    assert 'name' in error

    bad_tax = {**LAUNCH_BODY, 'taxConfig': {'burnEnabled': True, 'burnPercentage': 1500}}
    error = assert_envelope(await client.post('/api/launch', json=bad_tax), 400, success=False)
    assert error == "Burn tax cannot exceed 10%"
    assert provider.count('launch') == 0


async def test_unknown_token_is_404(client):
    error = assert_envelope(await client.get('/api/tokens/missing'), 404, success=False)
    assert error == "Token not found"


async def test_simulate_endpoint(client, make_token):
    token = await make_token()

    quote = assert_envelope(
        await client.post(f'/api/tokens/{token.mint}/simulate', json={'direction': 'BUY', 'amount': 1.0}),
        200
    )
    assert quote['direction'] == 'BUY'

    assert_envelope(
        await client.post(f'/api/tokens/{token.mint}/simulate', json={'direction': 'BUY', 'amount': 0}),
        400, success=False
    )


async def test_admin_requires_key(client):
    error = assert_envelope(await client.get('/api/admin/jobs/pending'), 401, success=False)
    assert error == "Unauthorized"

    assert_envelope(
        await client.get('/api/admin/jobs/pending', headers={'X-API-Key': 'wrong'}),
        401, success=False
    )


async def test_admin_without_configured_key_is_500(client, launchpad, admin_headers):
    launchpad.settings.admin_api_key = None

    error = assert_envelope(await client.get('/api/admin/jobs/pending', headers=admin_headers), 500, success=False)
    assert error == "Admin API key not configured"


async def test_admin_trigger_and_job_history(client, make_token, admin_headers):
    token = await make_token(tax=TaxConfig(burn_enabled=True, burn_percent=10))

    data = assert_envelope(
        await client.post('/api/admin/automation/trigger', json={'tokenMint': token.mint}, headers=admin_headers),
        200
    )
    assert data['job']['status'] == str(JobStatus.COMPLETED)

    jobs = assert_envelope(await client.get(f'/api/tokens/{token.mint}/jobs'), 200)
    assert sorted(job['jobType'] for job in jobs['jobs']) == ['BURN', 'CLAIM']


async def test_retry_of_completed_job_is_rejected(client, scheduler, make_token, admin_headers):
    token = await make_token()
    job = await scheduler.trigger(token_id=token.id)

    error = assert_envelope(
        await client.post(f'/api/admin/jobs/{job.id}/retry', headers=admin_headers), 400, success=False
    )
    assert error == "Can only retry failed jobs"

    assert_envelope(await client.post('/api/admin/jobs/9999/retry', headers=admin_headers), 404, success=False)


async def test_failed_jobs_listing_and_retry(client, provider, scheduler, make_token, admin_headers):
    token = await make_token()
    provider.fail('claim_fees')
    job = await scheduler.trigger(token_id=token.id)

    failed = assert_envelope(await client.get('/api/admin/jobs/failed', headers=admin_headers), 200)
    assert [j['id'] for j in failed['jobs']] == [job.id]
    assert failed['jobs'][0]['errorKind'] == 'PROVIDER'

    del provider.failures['claim_fees']
    data = assert_envelope(await client.post(f'/api/admin/jobs/{job.id}/retry', headers=admin_headers), 200)
    assert data['job']['status'] == 'COMPLETED'


async def test_retry_with_job_in_flight_is_rejected(client, provider, scheduler, make_token, admin_headers):
    token = await make_token()
    provider.fail('claim_fees')
    failed = await scheduler.trigger(token_id=token.id)
    await scheduler.enqueue(token.id, JobType.CLAIM)

    error = assert_envelope(
        await client.post(f'/api/admin/jobs/{failed.id}/retry', headers=admin_headers), 400, success=False
    )
    assert 'already in flight' in error

    failed_jobs = assert_envelope(await client.get('/api/admin/jobs/failed', headers=admin_headers), 200)
    assert [j['id'] for j in failed_jobs['jobs']] == [failed.id]


async def test_cancel_pending_job(client, scheduler, make_token, admin_headers):
    token = await make_token()
    job, _ = await scheduler.enqueue(token.id, JobType.CLAIM)

    data = assert_envelope(await client.delete(f'/api/admin/jobs/{job.id}', headers=admin_headers), 200)
    assert data == {'cancelled': True, 'jobId': job.id}

    assert_envelope(await client.delete(f'/api/admin/jobs/{job.id}', headers=admin_headers), 404, success=False)


async def test_admin_health(client, make_token, admin_headers):
    await make_token()

    data = assert_envelope(await client.get('/api/admin/health', headers=admin_headers), 200)

    assert data['status'] == 'healthy'
    assert data['counts']['tokens'] == 1
    assert data['scheduler']['running'] is False


async def test_stats_endpoints(client, scheduler, make_token):
    token = await make_token(creator_wallet='alice', total_volume_usd=1_000.0)
    await scheduler.trigger(token_id=token.id)

    platform = assert_envelope(await client.get('/api/stats/platform'), 200)
    assert platform['totalTokensLaunched'] == 1
    assert platform['totalFeesCollectedLamports'] == 1_000_000

    creator = assert_envelope(await client.get('/api/stats/creator/alice'), 200)
    assert creator['tokensLaunched'] == 1
    assert creator['discountTier'] == 'NONE'

    trending = assert_envelope(await client.get('/api/stats/trending'), 200)
    assert [t['mint'] for t in trending['tokens']] == [token.mint]

    new = assert_envelope(await client.get('/api/stats/new', params={'hours': 1}), 200)
    assert len(new['tokens']) == 1

    automation = assert_envelope(await client.get('/api/stats/automation'), 200)
    assert automation['completedJobs'] == 1
    assert automation['totals']['claimedLamports'] == 1_000_000
    assert automation['recentJobs'][0]['token']['mint'] == token.mint


async def test_staking_endpoints(client):
    staked = assert_envelope(
        await client.post('/api/staking/stake', json={'wallet': 'alice', 'amount': 10_000, 'lockDurationDays': 30}),
        200
    )
    assert staked['tier'] == 'PREMIUM'

    status = assert_envelope(await client.get('/api/staking/alice'), 200)
    assert status['stakedAmount'] == 10_000

    pool = assert_envelope(await client.get('/api/staking/pool'), 200)
    assert pool['totalStakers'] == 1

    preview = assert_envelope(await client.get('/api/staking/calculator', params={'amount': 1_000, 'lockDays': 365}), 200)
    assert preview['weightedStake'] == 3_000

    error = assert_envelope(
        await client.post('/api/staking/unstake', json={'wallet': 'alice', 'amount': 1}), 400, success=False
    )
    assert error.startswith("Tokens locked until")
