"""
Manual and cron-driven cycle triggers, plus admin maintenance.
"""

from fastapi import APIRouter, Depends, HTTPException, status

import structlog

from buyback.api.dependencies import get_container
from buyback.api.schemas.common import SuccessResponse, create_success_response
from buyback.auth.cron_auth import require_cron_secret
from buyback.container import ServiceContainer
from buyback.core.exceptions import ConfigurationError, CycleInProgressError

logger = structlog.get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_cron_secret)])


async def _run(container: ServiceContainer, trigger: str) -> SuccessResponse:
    try:
        report = await container.orchestrator.run_cycle(trigger=trigger)
    except CycleInProgressError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": e.code, "message": e.message}
        )
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": e.code, "message": e.message}
        )

    return SuccessResponse(
        success=report.success,
        message=report.outcome.value if report.outcome else None,
        data=report.to_dict()
    )


@router.post(
    "/cron/buyback",
    response_model=SuccessResponse,
    summary="Cron Trigger",
    description="Run one cycle now; same result shape as a scheduled run"
)
async def cron_buyback(container: ServiceContainer = Depends(get_container)):
    logger.info("Cycle triggered by cron")
    return await _run(container, "cron")


@router.post(
    "/admin/trigger",
    response_model=SuccessResponse,
    summary="Manual Trigger"
)
async def admin_trigger(container: ServiceContainer = Depends(get_container)):
    logger.info("Cycle triggered manually")
    return await _run(container, "admin")


@router.post(
    "/admin/clear-rewards",
    response_model=SuccessResponse,
    summary="Clear Holder Rewards",
    description="Reset every holder's last reward fields"
)
async def clear_rewards(container: ServiceContainer = Depends(get_container)):
    cleared = await container.repositories.holders.clear_rewards()
    return create_success_response(
        data={"holders_cleared": cleared},
        message="Rewards cleared"
    )
