"""
Health check endpoints.

Liveness and readiness checks for process supervisors and monitoring.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from prizm import __version__
from prizm.api.dependencies import EmbeddingServiceDep
from prizm.core.logging import get_logger
from prizm.services.embedding_service import EmbeddingService, EmbeddingState

router = APIRouter(prefix="/api/health", tags=["system"])

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health status of a single component."""

    name: str = Field(..., description="Component name")
    status: HealthStatus = Field(..., description="Component status")
    message: Optional[str] = Field(None, description="Additional status message")


class HealthResponse(BaseModel):
    """Response schema for health check."""

    status: HealthStatus = Field(..., description="Overall health status")
    version: str = Field(..., description="Application version")
    timestamp: datetime = Field(..., description="Current server time (UTC)")
    uptime_seconds: Optional[float] = Field(None, description="Server uptime in seconds")


class ReadinessResponse(BaseModel):
    """Response schema for readiness check."""

    ready: bool = Field(..., description="Whether the service is ready to accept requests")
    status: HealthStatus = Field(..., description="Overall health status")
    version: str = Field(..., description="Application version")
    timestamp: datetime = Field(..., description="Current server time (UTC)")
    components: list[ComponentHealth] = Field(
        default_factory=list,
        description="Health status of individual components",
    )
    embedding_ready: bool = Field(False, description="Whether the embedding model is loaded")


# Track server start time for uptime calculation
_start_time: Optional[datetime] = None


def get_start_time() -> datetime:
    """Get or initialize server start time."""
    global _start_time
    if _start_time is None:
        _start_time = datetime.now(timezone.utc)
    return _start_time


def check_embedding(service: EmbeddingService) -> ComponentHealth:
    """
    Map the embedding state onto a component health.

    ready is healthy, error is unhealthy, anything else (disabled,
    idle, loading, disposing) is degraded.
    """
    state = service.get_state()

    if not service.settings.EMBEDDING_ENABLED:
        return ComponentHealth(
            name="embedding",
            status=HealthStatus.DEGRADED,
            message="Local embedding disabled",
        )

    if state is EmbeddingState.READY:
        return ComponentHealth(
            name="embedding",
            status=HealthStatus.HEALTHY,
            message=f"Model ready: {service.get_model_name()} ({service.get_dimension()}d)",
        )

    if state is EmbeddingState.ERROR:
        last_error = service.stats.last_error
        return ComponentHealth(
            name="embedding",
            status=HealthStatus.UNHEALTHY,
            message=last_error.message if last_error else "Model failed to load",
        )

    return ComponentHealth(
        name="embedding",
        status=HealthStatus.DEGRADED,
        message=f"Model {state.value}",
    )


@router.get(
    "",
    response_model=HealthResponse,
    summary="Liveness check",
    description="Returns 200 while the server is running.",
)
async def liveness_check() -> HealthResponse:
    uptime = (datetime.now(timezone.utc) - get_start_time()).total_seconds()

    return HealthResponse(
        status=HealthStatus.HEALTHY,
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=uptime,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "Service is ready"},
        503: {"description": "Service is not ready"},
    },
    summary="Readiness check",
    description="Returns 503 when a component is unhealthy.",
)
async def readiness_check(service: EmbeddingServiceDep) -> JSONResponse:
    """
    Readiness check endpoint.

    A degraded embedding component still counts as ready: memories are
    then stored without vectors.
    """
    components: list[ComponentHealth] = []

    try:
        components.append(check_embedding(service))
    except Exception as e:
        logger.error("health_check_error", component="embedding", error=str(e))
        components.append(ComponentHealth(
            name="embedding",
            status=HealthStatus.UNHEALTHY,
            message=str(e),
        ))

    statuses = {component.status for component in components}
    if HealthStatus.UNHEALTHY in statuses:
        overall_status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        overall_status = HealthStatus.DEGRADED
    else:
        overall_status = HealthStatus.HEALTHY

    is_ready = overall_status != HealthStatus.UNHEALTHY

    response = ReadinessResponse(
        ready=is_ready,
        status=overall_status,
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        components=components,
        embedding_ready=service.is_ready,
    )

    status_code = status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(content=response.model_dump(mode="json"), status_code=status_code)
