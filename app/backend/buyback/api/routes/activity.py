"""
Activity feed routes.
"""

from fastapi import APIRouter, Depends, Query

from buyback.api.dependencies import get_repositories
from buyback.api.schemas.buyback import ActivityResponse
from buyback.api.schemas.common import SuccessResponse, create_success_response
from buyback.repositories import Repositories

router = APIRouter()


@router.get(
    "",
    response_model=SuccessResponse,
    summary="Recent Activity",
    description="Claims, buybacks, conversions and transfers, newest first"
)
async def get_activity(
    limit: int = Query(50, ge=1, le=500, description="Number of entries"),
    repos: Repositories = Depends(get_repositories)
):
    entries = await repos.activity.recent(limit=limit)
    return create_success_response(
        data=[ActivityResponse.model_validate(e).model_dump(mode="json") for e in entries]
    )
