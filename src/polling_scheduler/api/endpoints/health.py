"""Health check endpoint for the polling scheduler API.

Reports whether the trigger store answers and whether the tick scheduler is
running in this process.
"""

from __future__ import annotations

import time
from enum import Enum

import httpx
import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from polling_scheduler.config import Settings
from polling_scheduler.store.trigger_store import TRIGGERS_PATH, rest_headers

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])


class ComponentStatus(str, Enum):
    """Status values for individual components."""

    UP = "up"
    DOWN = "down"
    DISABLED = "disabled"


class OverallStatus(str, Enum):
    """Overall health status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health status for a single component."""

    status: ComponentStatus = Field(description="Component status")
    latency_ms: float | None = Field(default=None, description="Response latency in milliseconds")
    error: str | None = Field(default=None, description="Error message if unhealthy")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: OverallStatus = Field(description="Overall system health status")
    components: dict[str, ComponentHealth] = Field(
        description="Health status of individual components"
    )
    version: str = Field(description="Application version")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "healthy",
                    "components": {
                        "trigger_store": {"status": "up", "latency_ms": 18.4},
                        "scheduler": {"status": "up"},
                    },
                    "version": "0.1.0",
                }
            ]
        }
    }


async def _check_store_health(settings: Settings, http: httpx.AsyncClient) -> ComponentHealth:
    """Run a one-row read against the trigger table."""
    start_time = time.perf_counter()
    try:
        response = await http.get(
            f"{settings.store.url}{TRIGGERS_PATH}",
            params={"select": "id", "limit": "1"},
            headers=rest_headers(settings.store.service_role_key.get_secret_value()),
        )
        latency_ms = (time.perf_counter() - start_time) * 1000
        if response.is_error:
            error_msg = f"HTTP {response.status_code}"
            logger.warning("store_health_check_failed", error=error_msg)
            return ComponentHealth(
                status=ComponentStatus.DOWN, latency_ms=latency_ms, error=error_msg
            )
        logger.debug("store_health_check_passed", latency_ms=latency_ms)
        return ComponentHealth(status=ComponentStatus.UP, latency_ms=latency_ms)
    except httpx.HTTPError as e:
        latency_ms = (time.perf_counter() - start_time) * 1000
        error_msg = f"{type(e).__name__}: {str(e)}"
        logger.warning("store_health_check_failed", error=error_msg)
        return ComponentHealth(status=ComponentStatus.DOWN, latency_ms=latency_ms, error=error_msg)


def _check_scheduler_health(request: Request) -> ComponentHealth:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return ComponentHealth(status=ComponentStatus.DISABLED)
    if scheduler.running:
        return ComponentHealth(status=ComponentStatus.UP)
    return ComponentHealth(status=ComponentStatus.DOWN, error="Scheduler is not running")


def _determine_overall_status(components: dict[str, ComponentHealth]) -> OverallStatus:
    """Healthy if nothing is down, unhealthy if the store is down, else degraded."""
    if components["trigger_store"].status == ComponentStatus.DOWN:
        return OverallStatus.UNHEALTHY
    if any(c.status == ComponentStatus.DOWN for c in components.values()):
        return OverallStatus.DEGRADED
    return OverallStatus.HEALTHY


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Returns the health status of the trigger store and tick scheduler.",
)
async def health_check(request: Request) -> HealthResponse:
    """Check the health of the scheduler's dependencies."""
    settings: Settings = request.app.state.settings
    http: httpx.AsyncClient = request.app.state.http

    components = {
        "trigger_store": await _check_store_health(settings, http),
        "scheduler": _check_scheduler_health(request),
    }
    overall_status = _determine_overall_status(components)

    logger.info(
        "health_check_completed",
        overall_status=overall_status.value,
        store_status=components["trigger_store"].status.value,
        scheduler_status=components["scheduler"].status.value,
    )

    return HealthResponse(
        status=overall_status,
        components=components,
        version=settings.app.app_version,
    )


__all__ = [
    "router",
    "HealthResponse",
    "ComponentHealth",
    "ComponentStatus",
    "OverallStatus",
]
