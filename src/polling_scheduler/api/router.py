"""Main API router for the polling scheduler."""

from __future__ import annotations

import structlog
from fastapi import APIRouter

from polling_scheduler.api.endpoints import health, ticks

logger = structlog.get_logger(__name__)


def create_api_router() -> APIRouter:
    """Create the main API router with all endpoint routers included."""
    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(ticks.router)

    logger.debug("api_router_created", routes=["/health", "/ticks"])
    return api_router


__all__ = ["create_api_router"]
