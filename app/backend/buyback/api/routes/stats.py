"""
Aggregate statistics for the dashboard.
"""

from decimal import Decimal

from fastapi import APIRouter, Depends

from buyback.api.dependencies import get_repositories
from buyback.api.schemas.buyback import StatsResponse
from buyback.api.schemas.common import SuccessResponse, create_success_response
from buyback.repositories import Repositories

import structlog

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=SuccessResponse,
    summary="Global Statistics",
    description="Totals bought back and distributed, and distinct holders rewarded"
)
async def get_stats(repos: Repositories = Depends(get_repositories)):
    totals = await repos.cycles.totals()
    stats = StatsResponse(
        total_bought_back=Decimal(str(totals["total_acquired"])),
        total_distributed=await repos.distributions.total_sent(),
        holders_rewarded=await repos.distributions.holders_rewarded(),
        completed_cycles=totals["completed_cycles"],
    )
    return create_success_response(data=stats.model_dump(mode="json"))
