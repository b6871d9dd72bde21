"""
Common Pydantic schemas for API responses.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict


def _now() -> datetime:
    return datetime.now(timezone.utc)


class APIResponse(BaseModel):
    """Base API response model."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class SuccessResponse(APIResponse):
    """Success response model."""
    data: Optional[Any] = None


class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=_now)
    version: str = "0.1.0"
    services: Dict[str, str] = Field(default_factory=dict)


def create_success_response(data: Any = None, message: Optional[str] = None) -> SuccessResponse:
    """Create a success response."""
    return SuccessResponse(data=data, message=message)

