from fastapi import APIRouter, Depends, Query

from launchpad.api.deps import get_launchpad
from launchpad.api.responses import envelope

router = APIRouter(prefix="/stats", tags=["Stats"])


@router.get("/platform")
async def platform_stats(launchpad=Depends(get_launchpad)):
    return envelope(await launchpad.stats.platform_stats())


@router.get("/creator/{wallet}")
async def creator_stats(wallet: str, launchpad=Depends(get_launchpad)):
    return envelope(await launchpad.stats.creator_stats(wallet))


@router.get("/trending")
async def trending(limit: int = Query(10, ge=1), launchpad=Depends(get_launchpad)):
    return envelope(await launchpad.stats.trending(limit))


@router.get("/new")
async def new_tokens(
    limit: int = Query(10, ge=1),
    hours: int = Query(24, ge=1),
    launchpad=Depends(get_launchpad)
):
    return envelope(await launchpad.stats.new_tokens(limit, hours))


@router.get("/automation")
async def automation_stats(launchpad=Depends(get_launchpad)):
    return envelope(await launchpad.stats.automation_stats())
