from fastapi import APIRouter, Depends

from launchpad.api.deps import get_launchpad
from launchpad.api.responses import envelope
from launchpad.api.schemas import LaunchTokenRequest

router = APIRouter(tags=["Launch"])


@router.post("/launch", status_code=201)
async def launch_token(body: LaunchTokenRequest, launchpad=Depends(get_launchpad)):
    result = await launchpad.launch_service.launch(
        name=body.name,
        symbol=body.symbol,
        creator_wallet=body.creatorWallet,
        supply=body.supply,
        decimals=body.decimals,
        description=body.description,
        image_url=body.imageUrl,
        tax_config=body.taxConfig.model_dump() if body.taxConfig else None,
    )
    return envelope(result)
