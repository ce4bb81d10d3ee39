"""
Health Check Endpoints

Liveness, readiness and a development-only detailed view. PostgreSQL is
required; Redis only carries finalization events, so its absence degrades
long-polling to in-process waits and never fails readiness.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.core.mediation.events import get_finalization_notifier
from app.infra.database import check_db_health
from app.infra.redis import check_redis_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

VERSION = "1.0.0"

_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Record application start. Called once from the lifespan."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: datetime
    version: str
    environment: str
    uptime_seconds: Optional[float] = None


class ReadyResponse(BaseModel):
    """Readiness check response with dependency status."""
    status: str
    timestamp: datetime
    checks: dict[str, str]


class DetailedHealthResponse(ReadyResponse):
    """Readiness plus non-secret runtime configuration."""
    version: str
    uptime_seconds: Optional[float]
    config: dict[str, str]


async def _dependency_checks() -> dict[str, str]:
    """Probe PostgreSQL and Redis."""
    checks = {}
    for name, probe in (("database", check_db_health), ("redis", check_redis_health)):
        try:
            checks[name] = "ok" if await probe() else "failed"
        except Exception as e:
            logger.error(f"{name} check raised: {e}")
            checks[name] = "error"
    return checks


@router.get(
    "",
    response_model=HealthResponse,
    summary="Basic health check",
    description="Returns 200 while the process runs. Does not check dependencies.",
)
async def health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
        environment=settings.app_env,
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/live",
    response_model=HealthResponse,
    summary="Liveness probe",
)
async def live() -> HealthResponse:
    """Alias of the basic check for container restart decisions."""
    return await health()


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness probe",
    responses={503: {"description": "Database unavailable"}},
)
async def ready() -> ReadyResponse:
    """
    Ready when the database answers.

    Redis is reported as "failed" without affecting the result.
    """
    checks = await _dependency_checks()
    is_ready = checks["database"] == "ok"
    if checks["redis"] != "ok":
        logger.warning("Readiness check: Redis unavailable - finalization events stay in-process")

    response = ReadyResponse(
        status="ready" if is_ready else "not_ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )
    if not is_ready:
        logger.warning("Readiness check: Database unhealthy")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )
    return response


@router.get(
    "/detailed",
    response_model=DetailedHealthResponse,
    summary="Detailed health check",
    include_in_schema=settings.is_development,
)
async def detailed() -> DetailedHealthResponse:
    """Development only."""
    if not settings.is_development:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    checks = await _dependency_checks()

    # No secrets here
    config = {
        "app_name": settings.app_name,
        "debug": str(settings.debug),
        "model": settings.claude_mediator_model,
        "fallback_model": settings.claude_fallback_model,
        "starter_policy": settings.starter_policy,
        "finalization_notifier": type(get_finalization_notifier()).__name__,
        "status_max_wait_seconds": str(settings.status_max_wait_seconds),
    }

    return DetailedHealthResponse(
        status="healthy" if all(v == "ok" for v in checks.values()) else "degraded",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
        version=VERSION,
        uptime_seconds=get_uptime_seconds(),
        config=config,
    )
