"""
Countdown to the next scheduled cycle.
"""

from fastapi import APIRouter, Depends

from buyback.api.dependencies import get_container
from buyback.api.schemas.buyback import CountdownResponse
from buyback.api.schemas.common import SuccessResponse, create_success_response
from buyback.container import ServiceContainer
from buyback.scheduler import compute_next_tick

router = APIRouter()


@router.get(
    "",
    response_model=SuccessResponse,
    summary="Next Cycle",
    description="When the next cycle runs, derived from the persisted schedule anchor"
)
async def get_countdown(container: ServiceContainer = Depends(get_container)):
    scheduler = container.scheduler
    now = scheduler.clock()
    anchor = await container.repositories.config.ensure_cycle_anchor(now)
    next_at = compute_next_tick(anchor, scheduler.interval, now)

    countdown = CountdownResponse(
        next_cycle_at=next_at,
        seconds_remaining=(next_at - now).total_seconds(),
        cycle_duration=scheduler.interval,
        cycle_in_progress=container.orchestrator.in_progress,
    )
    return create_success_response(data=countdown.model_dump(mode="json"))
