"""Scheduler wiring for the polling tick.

This module builds the runner from settings and schedules it with APScheduler.

Key features:
- Cron tick every ``SCHEDULER_TICK_MINUTES`` minutes (default: every minute)
- Tick time T0 derived from the scheduled minute, not from when the job starts
- One-shot ticks for external cron platforms and manual runs
- Graceful shutdown handling (SIGTERM/SIGINT)

Usage:
    async with create_http_client(settings) as http:
        runner = build_runner(settings, http)
        scheduler = create_scheduler(runner, settings=settings)
        scheduler.start()

    # Or run a single tick
    summary = await run_tick_once()
"""

import asyncio
import signal
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from polling_scheduler.checker.client import PollExecutor
from polling_scheduler.config import Settings, get_settings
from polling_scheduler.dispatch.dispatcher import Dispatcher
from polling_scheduler.dispatch.event_bus import EventBusClient
from polling_scheduler.scheduler.runner import PollingRunner, TickSummary
from polling_scheduler.store.trigger_store import TriggerStore
from polling_scheduler.store.workflows import WorkflowLookup

logger = structlog.get_logger(__name__)

TICK_JOB_ID = "polling_tick"


class GracefulShutdown:
    """Handler for graceful shutdown on SIGTERM/SIGINT.

    A tick in progress is allowed to finish; the scheduler loop exits once
    shutdown has been requested.

    Usage:
        shutdown_handler = GracefulShutdown()
        shutdown_handler.register_signals()

        while not shutdown_handler.should_shutdown:
            await asyncio.sleep(1)
    """

    def __init__(self) -> None:
        self._shutdown_requested = False
        self._log = logger.bind(component="shutdown_handler")

    @property
    def should_shutdown(self) -> bool:
        """Check if shutdown has been requested."""
        return self._shutdown_requested

    def request_shutdown(self) -> None:
        """Request a graceful shutdown."""
        self._shutdown_requested = True
        self._log.info("shutdown_requested")

    def register_signals(self) -> None:
        """Register signal handlers for SIGTERM and SIGINT."""
        try:
            signal.signal(signal.SIGTERM, self._signal_handler)
            signal.signal(signal.SIGINT, self._signal_handler)
            self._log.info("signal_handlers_registered")
        except ValueError:
            # Signal handling only works in main thread
            self._log.warning("signal_handlers_not_registered_not_main_thread")

    def _signal_handler(self, signum: int, frame: Any) -> None:
        signal_name = signal.Signals(signum).name
        self._log.info("signal_received", signal=signal_name)
        self.request_shutdown()


def logical_tick_time(now: datetime | None = None) -> datetime:
    """Return the scheduled instant of the tick running at ``now``.

    Cron ticks fire on minute boundaries, so the scheduled time is ``now``
    truncated to the minute (UTC). Start-up jitter and the time spent in
    earlier ticks therefore never leak into reschedule arithmetic.
    """
    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(UTC).replace(second=0, microsecond=0)


def create_http_client(settings: Settings | None = None) -> httpx.AsyncClient:
    """Create the HTTP client shared by every outbound call of the process."""
    settings = settings or get_settings()
    return httpx.AsyncClient(timeout=httpx.Timeout(settings.scheduler.http_timeout_seconds))


def build_runner(settings: Settings, http: httpx.AsyncClient) -> PollingRunner:
    """Assemble a PollingRunner and its clients from settings.

    Args:
        settings: Application settings, validated at process start.
        http: Shared async HTTP client, owned by the caller.

    Returns:
        A ready-to-run PollingRunner.
    """
    service_key = settings.store.service_role_key.get_secret_value()

    store = TriggerStore(settings.store.url, service_key, http)
    executor = PollExecutor(
        settings.check.url,
        service_key,
        http,
        check_path=settings.check.check_path,
    )
    dispatcher = Dispatcher(
        EventBusClient(
            settings.event_bus.base_url,
            settings.event_bus.event_key.get_secret_value(),
            http,
        ),
        WorkflowLookup(settings.store.url, service_key, http),
    )

    return PollingRunner(
        store,
        executor,
        dispatcher,
        batch_limit=settings.scheduler.batch_limit,
        backoff_seconds=settings.scheduler.backoff_seconds,
        max_concurrency=settings.scheduler.max_concurrency,
    )


async def run_tick_once(
    settings: Settings | None = None,
    tick_at: datetime | None = None,
) -> TickSummary:
    """Run a single tick with a freshly built runner.

    Intended for external cron platforms that invoke the process once per
    tick. Missing configuration fails here, before any trigger is touched.

    Args:
        settings: Application settings. Defaults to loading from environment.
        tick_at: Logical tick time. Defaults to the current minute.

    Returns:
        The tick summary.
    """
    settings = settings or get_settings()
    tick_at = tick_at or logical_tick_time()

    async with create_http_client(settings) as http:
        runner = build_runner(settings, http)
        return await runner.run_tick(tick_at)


def create_scheduler(
    runner: PollingRunner,
    settings: Settings | None = None,
    shutdown_handler: GracefulShutdown | None = None,
) -> AsyncIOScheduler:
    """Create and configure the APScheduler instance.

    Creates an AsyncIOScheduler with the polling tick scheduled on a cron
    every ``settings.scheduler.tick_minutes`` minutes. The scheduler is
    returned unstarted.

    Args:
        runner: The runner executed on every tick.
        settings: Application settings. Defaults to loading from environment.
        shutdown_handler: Handler for graceful shutdown. Created and
            registered for SIGTERM/SIGINT if not given.

    Returns:
        Configured AsyncIOScheduler instance.
    """
    settings = settings or get_settings()

    scheduler_log = logger.bind(component="scheduler")
    scheduler_log.info("creating_scheduler", tick_minutes=settings.scheduler.tick_minutes)

    if shutdown_handler is None:
        shutdown_handler = GracefulShutdown()
        shutdown_handler.register_signals()

    scheduler = AsyncIOScheduler(
        job_defaults={
            "coalesce": True,  # Collapse missed ticks into one
            "max_instances": 1,
            "misfire_grace_time": settings.scheduler.misfire_grace_seconds,
        },
        timezone="UTC",
    )

    async def polling_tick() -> TickSummary | None:
        if shutdown_handler.should_shutdown:
            scheduler_log.info("tick_skipped_shutting_down")
            return None
        return await runner.run_tick(logical_tick_time())

    scheduler.add_job(
        polling_tick,
        trigger=CronTrigger(minute=f"*/{settings.scheduler.tick_minutes}", timezone="UTC"),
        id=TICK_JOB_ID,
        name="Polling Trigger Tick",
        replace_existing=True,
    )

    scheduler_log.info(
        "scheduler_created",
        jobs=[job.id for job in scheduler.get_jobs()],
    )

    # Store references for access
    scheduler._polling_shutdown_handler = shutdown_handler  # type: ignore[attr-defined]
    scheduler._polling_runner = runner  # type: ignore[attr-defined]

    return scheduler


async def run_scheduler_async(settings: Settings | None = None) -> None:
    """Run the scheduler in the current event loop until SIGTERM/SIGINT.

    Args:
        settings: Application settings. Defaults to loading from environment.

    Example:
        >>> asyncio.run(run_scheduler_async())
    """
    settings = settings or get_settings()
    scheduler_log = logger.bind(component="scheduler_runner")

    async with create_http_client(settings) as http:
        runner = build_runner(settings, http)
        scheduler = create_scheduler(runner, settings=settings)
        shutdown_handler: GracefulShutdown = scheduler._polling_shutdown_handler  # type: ignore[attr-defined]

        try:
            scheduler.start()
            scheduler_log.info("scheduler_started")

            while not shutdown_handler.should_shutdown:
                await asyncio.sleep(1)

        except (KeyboardInterrupt, SystemExit):
            scheduler_log.info("scheduler_interrupted")
        finally:
            scheduler.shutdown(wait=True)
            scheduler_log.info("scheduler_stopped")


__all__ = [
    "TICK_JOB_ID",
    "GracefulShutdown",
    "build_runner",
    "create_http_client",
    "create_scheduler",
    "logical_tick_time",
    "run_scheduler_async",
    "run_tick_once",
]
