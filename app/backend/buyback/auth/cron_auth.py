"""
Bearer-secret protection for the trigger and admin routes.
"""

import hmac
from typing import Optional

import structlog
from fastapi import HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = structlog.get_logger(__name__)

security = HTTPBearer(auto_error=False)


def is_valid_secret(expected: Optional[str], provided: Optional[str]) -> bool:
    """An unset secret leaves the routes open, matching local development."""
    if not expected:
        return True
    if not provided:
        return False
    return hmac.compare_digest(expected.encode(), provided.strip().encode())


async def require_cron_secret(request: Request) -> None:
    """
    Dependency that checks `Authorization: Bearer <CRON_SECRET>`.

    Raises HTTPException 401 when the secret is configured and missing or wrong.
    """
    container = request.app.state.container
    credentials: Optional[HTTPAuthorizationCredentials] = await security(request)
    provided = credentials.credentials if credentials else None

    if not is_valid_secret(container.settings.cron_secret, provided):
        logger.warning("Trigger authentication failed", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"}
        )
