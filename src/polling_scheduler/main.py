"""Main entry point for the polling scheduler.

Run modes:
- api: HTTP API only (health check, manual ticks)
- scheduler: cron tick loop only
- all: API plus the cron tick loop (default)
- once: a single tick, then exit (for external cron platforms)

Usage:
    # Run all services (default)
    python -m polling_scheduler.main

    # Run specific mode
    RUN_MODE=scheduler python -m polling_scheduler.main
    python -m polling_scheduler.main --mode once

    # Using uvicorn directly
    uvicorn polling_scheduler.main:get_app --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from polling_scheduler.api.endpoints import health
from polling_scheduler.api.router import create_api_router
from polling_scheduler.config import Settings, get_settings
from polling_scheduler.scheduler.jobs import (
    GracefulShutdown,
    build_runner,
    create_http_client,
    create_scheduler,
    run_scheduler_async,
    run_tick_once,
)

RUN_MODE_ENV = "_POLLING_SCHEDULER_RUN_MODE"


class RunMode(str, Enum):
    """Available run modes for the application."""

    API = "api"
    SCHEDULER = "scheduler"
    ALL = "all"
    ONCE = "once"


def configure_logging(settings: Settings) -> None:
    """Configure structlog for structured logging.

    Sets up JSON logging for production environments and
    colorful console logging for development.

    Args:
        settings: Application settings containing log configuration.
    """
    shared_processors: list[Any] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.app.log_format == "json":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.app.log_level),
    )

    # Set third-party loggers to WARNING to reduce noise
    for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error", "apscheduler", "httpx"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_run_mode() -> RunMode:
    """Determine the run mode from CLI args or environment variable.

    Checks command line arguments first, then the RUN_MODE environment
    variable, defaulting to 'all' if neither is set.
    """
    parser = argparse.ArgumentParser(description="Polling trigger scheduler")
    parser.add_argument(
        "--mode",
        "-m",
        type=str,
        choices=[m.value for m in RunMode],
        default=None,
        help="Run mode: api, scheduler, all, or once (default: all)",
    )
    args, _ = parser.parse_known_args()

    if args.mode:
        return RunMode(args.mode)

    env_mode = os.environ.get(RUN_MODE_ENV) or os.environ.get("RUN_MODE", "all")
    try:
        return RunMode(env_mode.lower())
    except ValueError:
        return RunMode.ALL


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Own the shared HTTP client, the runner, and (optionally) the scheduler.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup is complete.
    """
    settings: Settings = app.state.settings
    run_mode: RunMode = app.state.run_mode
    log = structlog.get_logger(__name__).bind(component="lifespan")

    log.info(
        "application_starting",
        run_mode=run_mode.value,
        app_name=settings.app.app_name,
        version=settings.app.app_version,
    )

    async with create_http_client(settings) as http:
        app.state.http = http
        app.state.runner = build_runner(settings, http)
        app.state.scheduler = None

        if run_mode == RunMode.ALL:
            shutdown_handler = GracefulShutdown()
            scheduler = create_scheduler(
                app.state.runner,
                settings=settings,
                shutdown_handler=shutdown_handler,
            )
            scheduler.start()
            app.state.scheduler = scheduler
            log.info("scheduler_started", jobs=[job.id for job in scheduler.get_jobs()])

        try:
            yield
        finally:
            log.info("application_shutting_down")
            if app.state.scheduler is not None:
                app.state.scheduler._polling_shutdown_handler.request_shutdown()
                app.state.scheduler.shutdown(wait=True)
                app.state.scheduler = None
                log.info("scheduler_stopped")
            app.state.runner = None

    log.info("application_shutdown_complete")


def create_app_with_lifespan(
    settings: Settings | None = None,
    run_mode: RunMode | None = None,
) -> FastAPI:
    """Create the FastAPI application with lifespan management.

    Args:
        settings: Application settings. Defaults to loading from environment.
        run_mode: Run mode for the application. Defaults to auto-detection.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_settings()
    run_mode = run_mode or get_run_mode()

    app = FastAPI(
        title="Polling Scheduler API",
        description=(
            "Cron-driven polling of third-party sources for workflow and agent "
            "triggers that have no webhook support."
        ),
        version=settings.app.app_version,
        debug=settings.app.debug,
        lifespan=lifespan,
    )

    app.state.run_mode = run_mode
    app.state.settings = settings

    app.include_router(create_api_router(), prefix="/api/v1")
    # Also mount health check at root level for easier access
    app.include_router(health.router, tags=["health"])

    structlog.get_logger(__name__).info(
        "application_created",
        title=app.title,
        version=app.version,
        run_mode=run_mode.value,
    )
    return app


def get_app() -> FastAPI:
    """App factory for ``uvicorn --factory``."""
    settings = get_settings()
    configure_logging(settings)
    return create_app_with_lifespan(settings)


def run_uvicorn(settings: Settings, run_mode: RunMode) -> None:
    """Run the application with Uvicorn."""
    log = structlog.get_logger(__name__)
    log.info(
        "starting_uvicorn",
        host=settings.app.api_host,
        port=settings.app.api_port,
        run_mode=run_mode.value,
    )

    # The factory re-reads the run mode in the server process
    os.environ[RUN_MODE_ENV] = run_mode.value

    uvicorn.run(
        "polling_scheduler.main:get_app",
        host=settings.app.api_host,
        port=settings.app.api_port,
        reload=settings.app.debug,
        log_level=settings.app.log_level.lower(),
        factory=True,
    )


async def run_once(settings: Settings) -> int:
    """Run a single tick and return a process exit code."""
    log = structlog.get_logger(__name__).bind(component="once")
    summary = await run_tick_once(settings)
    log.info(
        "single_tick_finished",
        aborted=summary.aborted,
        triggered=summary.triggered,
        errored=summary.errored,
    )
    return 1 if summary.aborted else 0


def main() -> None:
    """Main entry point for the application."""
    settings = get_settings()
    run_mode = get_run_mode()

    configure_logging(settings)

    log = structlog.get_logger(__name__)
    log.info(
        "main_starting",
        run_mode=run_mode.value,
        app_name=settings.app.app_name,
        version=settings.app.app_version,
    )

    try:
        if run_mode == RunMode.SCHEDULER:
            asyncio.run(run_scheduler_async(settings))
        elif run_mode == RunMode.ONCE:
            sys.exit(asyncio.run(run_once(settings)))
        else:
            run_uvicorn(settings, run_mode)

    except KeyboardInterrupt:
        log.info("application_interrupted")
    except Exception as e:
        log.error(
            "application_fatal_error",
            error_type=type(e).__name__,
            error_message=str(e),
        )
        sys.exit(1)


__all__ = [
    "RunMode",
    "configure_logging",
    "create_app_with_lifespan",
    "get_app",
    "get_run_mode",
    "main",
    "run_once",
    "run_uvicorn",
]


if __name__ == "__main__":
    main()
