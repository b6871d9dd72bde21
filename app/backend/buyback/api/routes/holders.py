"""
Holder snapshot routes.
"""

from fastapi import APIRouter, Depends

from buyback.api.dependencies import get_repositories
from buyback.api.schemas.buyback import HolderResponse
from buyback.api.schemas.common import SuccessResponse, create_success_response
from buyback.repositories import Repositories

router = APIRouter()


@router.get(
    "",
    response_model=SuccessResponse,
    summary="Current Holders",
    description="Top holders from the latest ranking, ordered by rank"
)
async def get_holders(repos: Repositories = Depends(get_repositories)):
    holders = await repos.holders.get_current_snapshot()
    return create_success_response(
        data=[HolderResponse.model_validate(h).model_dump(mode="json") for h in holders]
    )
