"""
RestBase: Health Check Route
=============================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Runs SELECT 1 against the configured engine and lists the mounted
       resources.

Status levels:
    - healthy:   Database reachable (HTTP 200)
    - unhealthy: Database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Request, Response
from sqlalchemy import text

from restbase import __version__
from restbase.database import engine
from restbase.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(request: Request, response: Response) -> HealthResponse:
    """Check the database and report the mounted resource prefixes."""
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        response.status_code = 503
        logger.warning("Health check: database unreachable: %s", str(e))

    resources = getattr(request.app.state, "resources", [])
    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        resources=[resource.prefix for resource in resources],
        uptime_seconds=round(time.time() - _start_time, 2),
    )
