"""
Cycle history and live orchestrator status.
"""

from fastapi import APIRouter, Depends, Query

from buyback.api.dependencies import get_container
from buyback.api.schemas.buyback import CycleResponse
from buyback.api.schemas.common import SuccessResponse, create_success_response
from buyback.container import ServiceContainer

router = APIRouter()


@router.get(
    "",
    response_model=SuccessResponse,
    summary="Recent Cycles"
)
async def get_cycles(
    limit: int = Query(20, ge=1, le=200),
    container: ServiceContainer = Depends(get_container)
):
    cycles = await container.repositories.cycles.recent(limit=limit)
    return create_success_response(
        data=[CycleResponse.model_validate(c).model_dump(mode="json") for c in cycles]
    )


@router.get(
    "/status",
    response_model=SuccessResponse,
    summary="Orchestrator Status",
    description="Current phase, in-progress flag, scheduler state and last report"
)
async def get_cycle_status(container: ServiceContainer = Depends(get_container)):
    data = container.orchestrator.status()
    data["scheduler"] = container.scheduler.get_status()
    return create_success_response(data=data)
