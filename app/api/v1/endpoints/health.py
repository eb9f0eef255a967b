"""Liveness and readiness probes."""

import structlog
from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from app.config import settings
from app.core.redis_client import check_redis_connection
from app.database import check_database_connection

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str


class ReadinessResponse(HealthResponse):
    """Per-component status; ``status`` is the rollup."""

    components: dict[str, str]
    events_channel: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
)
async def health_check() -> HealthResponse:
    """Answers as long as the process can serve requests."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(response: Response) -> ReadinessResponse:
    """
    Check the database and Redis.

    Without the database nothing can be booked, so the instance reports
    503 and is taken out of rotation. Redis only carries events and the
    profile cache; losing it yields a 200 with status ``degraded``.
    """
    components = {
        "database": "healthy" if await check_database_connection() else "unhealthy",
        "redis": "healthy" if await check_redis_connection() else "unhealthy",
    }

    if components["database"] != "healthy":
        overall = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif components["redis"] != "healthy":
        overall = "degraded"
    else:
        overall = "healthy"

    if overall != "healthy":
        logger.warning("readiness_check_failed", status=overall, **components)

    return ReadinessResponse(
        status=overall,
        version=settings.app_version,
        environment=settings.environment,
        components=components,
        events_channel=settings.appointment_events_channel,
    )
