"""Scheduler module for the polling trigger tick.

This module provides the per-tick runner and its APScheduler wiring.

Usage:
    from polling_scheduler.scheduler import run_scheduler_async, run_tick_once

    # Run the cron loop until SIGTERM/SIGINT
    await run_scheduler_async()

    # Or run one tick
    summary = await run_tick_once()
"""

from polling_scheduler.scheduler.jobs import (
    GracefulShutdown,
    build_runner,
    create_http_client,
    create_scheduler,
    logical_tick_time,
    run_scheduler_async,
    run_tick_once,
)
from polling_scheduler.scheduler.runner import (
    Outcome,
    PollingRunner,
    TickSummary,
    TriggerOutcome,
)

__all__ = [
    "GracefulShutdown",
    "Outcome",
    "PollingRunner",
    "TickSummary",
    "TriggerOutcome",
    "build_runner",
    "create_http_client",
    "create_scheduler",
    "logical_tick_time",
    "run_scheduler_async",
    "run_tick_once",
]
