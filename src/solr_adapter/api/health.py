"""Health check endpoints for monitoring and orchestration."""

from datetime import UTC, datetime

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from solr_adapter.config import settings
from solr_adapter.search.schemas import StatusResult

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    timestamp: datetime
    version: str
    environment: str


class LivenessResponse(BaseModel):
    """Response model for liveness check."""

    status: str


class ReadinessResponse(BaseModel):
    """Response model for readiness check."""

    status: str
    checks: dict[str, str]


@router.get("/", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=settings.app_version,
        environment=settings.app_env,
    )


@router.get("/live", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness check - app is running."""
    return LivenessResponse(status="alive")


@router.get("/ready", response_model=ReadinessResponse)
def readiness(request: Request) -> ReadinessResponse:
    """Readiness check - app can serve searches.

    Checks:
    - API is responding
    - Search engine is configured, reachable and recent enough
    """
    checks: dict[str, str] = {"api": "ok"}

    engine = getattr(request.app.state, "engine", None)
    if engine:
        ready = engine.is_server_ready()
        checks["engine"] = "ok" if ready is True else str(ready)
    else:
        checks["engine"] = "not_configured"

    status = "ready" if all(v == "ok" for v in checks.values()) else "not_ready"
    return ReadinessResponse(status=status, checks=checks)


@router.get("/engine", response_model=StatusResult)
def engine_status(
    request: Request,
    timeout: float = Query(default=0, ge=0, description="Timeout in seconds"),
) -> StatusResult:
    """Engine status check: connection, core and index size."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        return StatusResult(error="No solr configuration found")
    return engine.get_status(timeout)
