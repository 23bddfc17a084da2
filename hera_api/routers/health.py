"""
HERA Universal API - Health Check Router

Liveness and readiness probes. Neither requires authentication.

Key endpoints:
- GET /api/health - Liveness probe: returns 200 if the process is up
- GET /api/ready - Readiness probe: returns 200 only if Supabase is reachable
- GET /api/version - Build/version info
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__, db
from ..api.response import ApiResponse, api_response
from ..config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


class HealthData(BaseModel):
    """Health check data payload for ApiResponse envelope."""

    status: str
    timestamp: str
    environment: str


class ReadinessResponse(BaseModel):
    """Readiness probe response."""

    ready: bool
    status: str
    timestamp: str
    database: str
    latency_ms: float | None = None


class VersionData(BaseModel):
    name: str
    version: str
    environment: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@router.get(
    "/health",
    response_model=ApiResponse[HealthData],
    summary="Basic health check",
    description="Returns OK if the service is running. No authentication required.",
)
async def health_check() -> ApiResponse[HealthData]:
    """Liveness probe; never touches the database."""
    settings = get_settings()
    return api_response(HealthData(status="ok", timestamp=_now(), environment=settings.environment))


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "Service is ready to accept traffic"},
        503: {"description": "Supabase is unreachable"},
    },
    summary="Readiness probe",
)
async def readiness_check() -> JSONResponse:
    """
    Readiness probe focused on Supabase connectivity.

    Returns 503 when the REST endpoint cannot be reached so the instance
    is taken out of the load balancer.
    """
    start = time.perf_counter()
    is_ready = await db.ping()
    latency_ms = round((time.perf_counter() - start) * 1000, 2)

    data = ReadinessResponse(
        ready=is_ready,
        status="ready" if is_ready else "not_ready",
        timestamp=_now(),
        database="reachable" if is_ready else "unreachable",
        latency_ms=latency_ms if is_ready else None,
    )
    if not is_ready:
        logger.warning("Readiness check failed: Supabase unreachable")
    return JSONResponse(status_code=200 if is_ready else 503, content=data.model_dump())


@router.get("/version", response_model=ApiResponse[VersionData], summary="Service version")
async def version() -> ApiResponse[VersionData]:
    return api_response(
        VersionData(name="hera-api", version=__version__, environment=get_settings().environment)
    )
