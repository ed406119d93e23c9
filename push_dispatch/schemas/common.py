"""
Household Push Dispatch: Shared Response Schemas
================================================

What:  Error and health response formats shared by every route.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "content_not_found",
            "message": "image with ID 'img_9' was not found",
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health of the service and the dependencies a dispatch run needs."""
    status: str = Field(description="healthy, degraded or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    delivery_protocol: str = Field(description="service_account, legacy_key or unconfigured")
    access_token_cached: bool = Field(description="A minted token is cached and still fresh")
    uptime_seconds: float
