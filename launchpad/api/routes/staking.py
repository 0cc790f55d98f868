from fastapi import APIRouter, Depends, Query

from launchpad.api.deps import get_launchpad
from launchpad.api.responses import envelope
from launchpad.api.schemas import ClaimRewardsRequest, StakeRequest, UnstakeRequest

router = APIRouter(prefix="/staking", tags=["Staking"])


# Fixed paths first so they are not captured by /{wallet}
@router.get("/pool")
async def pool_info(launchpad=Depends(get_launchpad)):
    return envelope(await launchpad.staking.get_pool_info())


@router.get("/calculator")
async def calculator(
    amount: float = Query(..., ge=0),
    lockDays: int = Query(0, ge=0),
    launchpad=Depends(get_launchpad)
):
    return envelope(launchpad.staking.calculate(amount, lockDays))


@router.post("/stake")
async def stake(body: StakeRequest, launchpad=Depends(get_launchpad)):
    return envelope(await launchpad.staking.stake(body.wallet, body.amount, body.lockDurationDays))


@router.post("/unstake")
async def unstake(body: UnstakeRequest, launchpad=Depends(get_launchpad)):
    return envelope(await launchpad.staking.unstake(body.wallet, body.amount))


@router.post("/claim")
async def claim_rewards(body: ClaimRewardsRequest, launchpad=Depends(get_launchpad)):
    return envelope(await launchpad.staking.claim(body.wallet))


@router.get("/{wallet}")
async def staking_status(wallet: str, launchpad=Depends(get_launchpad)):
    return envelope(await launchpad.staking.get_status(wallet))
