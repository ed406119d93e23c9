"""
Household Push Dispatch: Health Check Route
===========================================

What:  GET /health for container probes and uptime monitoring.
How:   SELECT 1 against the pool, plus the configured delivery protocol and
       whether a fresh access token is cached. No FCM or OAuth call is made.

    healthy    database reachable and a delivery protocol configured
    degraded   database reachable, no FCM credentials (runs with tokens fail)
    unhealthy  database unreachable
"""

import logging
import time

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from push_dispatch import __version__
from push_dispatch.credentials import ServiceAccount
from push_dispatch.database import engine
from push_dispatch.routes.dependencies import get_delivery_protocol, get_token_minter
from push_dispatch.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(
    protocol=Depends(get_delivery_protocol),
    minter=Depends(get_token_minter),
) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", e)

    if protocol is None and overall == "healthy":
        overall = "degraded"

    cached = (
        isinstance(protocol, ServiceAccount)
        and minter is not None
        and minter.cached_token(protocol.credential) is not None
    )

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        delivery_protocol=protocol.name if protocol is not None else "unconfigured",
        access_token_cached=cached,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
