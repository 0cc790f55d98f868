from typing import Optional

from fastapi import APIRouter, Depends, Query

from launchpad.api.deps import get_launchpad
from launchpad.api.responses import envelope
from launchpad.api.schemas import SimulateTradeRequest
from launchpad.core.models.enums import TokenStatus

router = APIRouter(prefix="/tokens", tags=["Tokens"])


@router.get("")
async def list_tokens(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[TokenStatus] = None,
    creator: Optional[str] = None,
    launchpad=Depends(get_launchpad)
):
    return envelope(await launchpad.launch_service.list_tokens(page, limit, status, creator))


@router.get("/{mint}")
async def get_token(mint: str, launchpad=Depends(get_launchpad)):
    return envelope(await launchpad.launch_service.get_token(mint))


@router.get("/{mint}/stats")
async def get_token_stats(mint: str, launchpad=Depends(get_launchpad)):
    return envelope(await launchpad.launch_service.get_token_stats(mint))


@router.get("/{mint}/jobs")
async def get_token_jobs(
    mint: str,
    limit: int = Query(50, ge=1, le=200),
    launchpad=Depends(get_launchpad)
):
    jobs = await launchpad.launch_service.job_history(mint, limit)
    return envelope({"jobs": jobs, "count": len(jobs)})


@router.post("/{mint}/simulate")
async def simulate_trade(mint: str, body: SimulateTradeRequest, launchpad=Depends(get_launchpad)):
    quote = await launchpad.launch_service.simulate_trade(
        mint, body.direction, body.amount, body.highImpactPercent
    )
    return envelope(quote)
