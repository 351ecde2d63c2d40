"""Manual tick endpoint.

Runs one tick immediately, outside the cron schedule, and returns its
summary. Useful after a deploy or for operators draining a backlog.
"""

from __future__ import annotations

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from polling_scheduler.scheduler.jobs import logical_tick_time
from polling_scheduler.scheduler.runner import PollingRunner, TickSummary

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/ticks", tags=["ticks"])


class TickRequest(BaseModel):
    """Request model for a manual tick."""

    tick_at: datetime | None = Field(
        default=None,
        description="Logical tick time (ISO 8601). Defaults to the current minute.",
    )


def get_runner(request: Request) -> PollingRunner:
    runner = getattr(request.app.state, "runner", None)
    if runner is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Polling runner is not initialized",
        )
    return runner


@router.post(
    "",
    response_model=TickSummary,
    summary="Run Tick",
    description="Process all currently due polling triggers once and return the summary.",
    responses={503: {"description": "Runner not initialized"}},
)
async def run_tick(
    request: TickRequest | None = None,
    runner: PollingRunner = Depends(get_runner),  # noqa: B008 - Dependency injection
) -> TickSummary:
    tick_at = request.tick_at if request and request.tick_at else logical_tick_time()
    if tick_at.tzinfo is None:
        tick_at = tick_at.replace(tzinfo=UTC)
    logger.info("manual_tick_requested", tick_at=tick_at.isoformat())
    return await runner.run_tick(tick_at)


__all__ = ["TickRequest", "get_runner", "router"]
