"""
ClimbApp Backend — Health Check Route
=====================================

What:  GET /health for container probes and monitoring.
How:   Runs cheap checks against the database and Vision Product Search and
       folds them into one status.

Status levels:
    - healthy:   database and image recognition available          (200)
    - degraded:  database up, image recognition down or circuit open (200)
    - unhealthy: database unreachable                               (503)

Catalog CRUD keeps working while image recognition is degraded; only photo
queries and route photos fail.
"""

import logging
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from climbapp import __version__
from climbapp.database import engine
from climbapp.schemas.common import HealthResponse
from climbapp.services.image_recognition_service import (
    CircuitBreaker,
    image_recognition_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check():
    """
    Check details:
        Database: SELECT 1 on a pooled connection
        Image recognition: circuit breaker state, then a product set lookup
    """
    db_status = "connected"
    recognition_status = "available"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check Image Recognition ───────────────────────────────────────────
    if image_recognition_service.circuit_breaker.state == CircuitBreaker.OPEN:
        recognition_status = "circuit_open"
    elif not await image_recognition_service.health_check():
        recognition_status = "unavailable"

    if recognition_status != "available" and overall == "healthy":
        overall = "degraded"

    result = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        image_recognition=recognition_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall == "unhealthy":
        return JSONResponse(status_code=503, content=result.model_dump())
    return result
