"""Unit tests for scheduler wiring."""

from datetime import UTC, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import pytest
from apscheduler.triggers.cron import CronTrigger

from polling_scheduler.config import Settings
from polling_scheduler.scheduler import jobs
from polling_scheduler.scheduler.jobs import (
    TICK_JOB_ID,
    GracefulShutdown,
    build_runner,
    create_scheduler,
    logical_tick_time,
    run_tick_once,
)
from polling_scheduler.scheduler.runner import PollingRunner


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.setenv("SUPABASE_URL", "https://store.test")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
    monkeypatch.setenv("INNGEST_EVENT_KEY", "event-key")
    monkeypatch.setenv("SCHEDULER_TICK_MINUTES", "5")
    monkeypatch.setenv("SCHEDULER_BATCH_LIMIT", "20")
    return Settings()


class TestLogicalTickTime:
    def test_truncates_to_the_minute(self) -> None:
        now = datetime(2026, 10, 18, 12, 0, 41, 512000, tzinfo=UTC)

        assert logical_tick_time(now) == datetime(2026, 10, 18, 12, 0, tzinfo=UTC)

    def test_naive_input_is_treated_as_utc(self) -> None:
        assert logical_tick_time(datetime(2026, 10, 18, 12, 3, 9)) == datetime(
            2026, 10, 18, 12, 3, tzinfo=UTC
        )

    def test_converts_other_zones_to_utc(self) -> None:
        seoul = timezone(timedelta(hours=9))
        now = datetime(2026, 10, 18, 21, 7, 30, tzinfo=seoul)

        assert logical_tick_time(now) == datetime(2026, 10, 18, 12, 7, tzinfo=UTC)


class TestCreateScheduler:
    def test_registers_single_cron_tick(self, settings: Settings, runner: PollingRunner) -> None:
        scheduler = create_scheduler(runner, settings=settings, shutdown_handler=GracefulShutdown())

        job_list = scheduler.get_jobs()
        assert [job.id for job in job_list] == [TICK_JOB_ID]
        assert isinstance(job_list[0].trigger, CronTrigger)
        assert "minute='*/5'" in str(job_list[0].trigger)
        assert scheduler.running is False

    def test_keeps_shutdown_handler_and_runner(
        self, settings: Settings, runner: PollingRunner
    ) -> None:
        handler = GracefulShutdown()
        scheduler = create_scheduler(runner, settings=settings, shutdown_handler=handler)

        assert scheduler._polling_shutdown_handler is handler
        assert scheduler._polling_runner is runner


class TestGracefulShutdown:
    def test_request_shutdown(self) -> None:
        handler = GracefulShutdown()
        assert handler.should_shutdown is False

        handler.request_shutdown()

        assert handler.should_shutdown is True


class TestRunTickOnce:
    @pytest.mark.asyncio
    async def test_build_runner_uses_settings(self, settings: Settings) -> None:
        async with httpx.AsyncClient() as http:
            runner = build_runner(settings, http)

        assert isinstance(runner, PollingRunner)
        assert runner._batch_limit == 20
        assert runner._backoff_seconds == 300

    @pytest.mark.asyncio
    async def test_empty_store_completes(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=[])

        monkeypatch.setattr(
            jobs,
            "create_http_client",
            lambda settings=None: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        tick_at = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)

        summary = await run_tick_once(settings, tick_at=tick_at)

        assert summary.aborted is False
        assert summary.due == 0
        assert len(requests) == 1
        assert requests[0].url.params["limit"] == "20"
        assert requests[0].url.params["next_poll_at"] == f"lte.{tick_at.isoformat()}"

    @pytest.mark.asyncio
    async def test_store_outage_aborts(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            jobs,
            "create_http_client",
            lambda settings=None: httpx.AsyncClient(
                transport=httpx.MockTransport(lambda r: httpx.Response(503, text="down"))
            ),
        )

        summary = await run_tick_once(settings)

        assert summary.aborted is True


class TestScheduledTick:
    @pytest.mark.asyncio
    async def test_job_runs_tick_at_scheduled_minute(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        runner = AsyncMock()
        scheduled = datetime(2026, 10, 18, 12, 5, tzinfo=UTC)
        monkeypatch.setattr(jobs, "logical_tick_time", lambda: scheduled)
        scheduler = create_scheduler(runner, settings=settings, shutdown_handler=GracefulShutdown())

        await scheduler.get_job(TICK_JOB_ID).func()

        runner.run_tick.assert_awaited_once_with(scheduled)

    @pytest.mark.asyncio
    async def test_job_skips_after_shutdown_requested(self, settings: Settings) -> None:
        runner = AsyncMock()
        handler = GracefulShutdown()
        scheduler = create_scheduler(runner, settings=settings, shutdown_handler=handler)
        handler.request_shutdown()

        assert await scheduler.get_job(TICK_JOB_ID).func() is None
        runner.run_tick.assert_not_awaited()
