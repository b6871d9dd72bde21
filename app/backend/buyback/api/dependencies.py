"""
API dependencies for FastAPI endpoints.
"""

from fastapi import HTTPException, Request, status

import structlog

from buyback.container import ServiceContainer
from buyback.repositories import Repositories


logger = structlog.get_logger(__name__)


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "NOT_READY", "message": "Service is starting up"}
        )
    return container


def get_repositories(request: Request) -> Repositories:
    return get_container(request).repositories
