"""Per-tick orchestration of due polling triggers.

One call to ``PollingRunner.run_tick`` is one tick:

1. Read the due triggers as of the tick's logical start time T0.
2. For each trigger: check it, dispatch a new batch if there is one, then
   disable, back off, or reschedule it.
3. Log and return a summary.

Every reschedule is computed from T0, never from the time a trigger finished
processing, so slow checks cannot stretch the effective polling interval.
A failure while processing one trigger is contained to that trigger; only a
failed read of the due list abandons the tick.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from pydantic import BaseModel, Field

from polling_scheduler.checker.client import PollExecutor
from polling_scheduler.dispatch.dedup import compute_event_id
from polling_scheduler.dispatch.dispatcher import Dispatcher
from polling_scheduler.errors import ConfigurationError, InactiveTargetError, StoreReadError
from polling_scheduler.schemas.trigger import PollingTrigger, PollResult
from polling_scheduler.store.trigger_store import TriggerStore

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_LIMIT = 50
DEFAULT_BACKOFF_SECONDS = 300


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Outcome(str, Enum):
    """What happened to a trigger during a tick."""

    TRIGGERED = "triggered"
    RESCHEDULED = "rescheduled"
    BACKED_OFF = "backed_off"
    DISABLED = "disabled"


class TriggerOutcome(BaseModel):
    """Result of processing one trigger."""

    trigger_id: str
    outcome: Outcome
    next_poll_at: datetime | None = None
    event_name: str | None = None
    event_id: str | None = None
    error: str | None = None
    write_ok: bool = True


class TickSummary(BaseModel):
    """Summary of one tick, logged at the end of every run."""

    tick_at: datetime
    due: int = 0
    triggered: int = 0
    errored: int = 0
    disabled: int = 0
    rescheduled: int = 0
    aborted: bool = False
    error: str | None = None
    duration_seconds: float = 0.0
    outcomes: list[TriggerOutcome] = Field(default_factory=list)

    def record(self, outcome: TriggerOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.outcome == Outcome.TRIGGERED:
            self.triggered += 1
            self.rescheduled += 1
        elif outcome.outcome == Outcome.RESCHEDULED:
            self.rescheduled += 1
        elif outcome.outcome == Outcome.BACKED_OFF:
            self.errored += 1
        elif outcome.outcome == Outcome.DISABLED:
            self.disabled += 1


class PollingRunner:
    """Runs ticks against a trigger store, check endpoint and dispatcher.

    Usage:
        runner = PollingRunner(store, executor, dispatcher)
        summary = await runner.run_tick(tick_at=scheduled_minute)
    """

    def __init__(
        self,
        store: TriggerStore,
        executor: PollExecutor,
        dispatcher: Dispatcher,
        *,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
        backoff_seconds: int = DEFAULT_BACKOFF_SECONDS,
        max_concurrency: int = 1,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the runner.

        Args:
            store: Trigger store client.
            executor: Check endpoint client.
            dispatcher: Downstream event dispatcher.
            batch_limit: Maximum due triggers processed per tick.
            backoff_seconds: Minimum delay before re-polling a failing trigger.
            max_concurrency: Triggers processed at once; 1 processes them in order.
            clock: Wall-clock source, used for ``polledAt`` and durations only.
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self._store = store
        self._executor = executor
        self._dispatcher = dispatcher
        self._batch_limit = batch_limit
        self._backoff_seconds = backoff_seconds
        self._max_concurrency = max_concurrency
        self._clock = clock

    async def run_tick(self, tick_at: datetime) -> TickSummary:
        """Process every due trigger once.

        Args:
            tick_at: The tick's logical start time (T0). All reschedules in
                this tick are computed from it.

        Returns:
            The tick summary. A tick whose due-trigger read failed is
            returned with ``aborted=True``.
        """
        started = self._clock()
        summary = TickSummary(tick_at=tick_at)
        tick_log = logger.bind(tick_at=tick_at.isoformat())

        try:
            triggers = await self._store.list_due(self._batch_limit, as_of=tick_at)
        except StoreReadError as e:
            tick_log.error(
                "tick_aborted",
                error_type=type(e).__name__,
                error_message=str(e),
            )
            summary.aborted = True
            summary.error = str(e)
            summary.duration_seconds = (self._clock() - started).total_seconds()
            return summary

        summary.due = len(triggers)
        if not triggers:
            tick_log.info("no_due_triggers")
        else:
            tick_log.info("due_triggers_found", count=len(triggers))

        if self._max_concurrency == 1:
            for trigger in triggers:
                summary.record(await self.process_trigger(trigger, tick_at))
        else:
            semaphore = asyncio.Semaphore(self._max_concurrency)

            async def bounded(trigger: PollingTrigger) -> TriggerOutcome:
                async with semaphore:
                    return await self.process_trigger(trigger, tick_at)

            for outcome in await asyncio.gather(*(bounded(t) for t in triggers)):
                summary.record(outcome)

        summary.duration_seconds = (self._clock() - started).total_seconds()
        tick_log.info(
            "tick_completed",
            due=summary.due,
            triggered=summary.triggered,
            errored=summary.errored,
            disabled=summary.disabled,
            rescheduled=summary.rescheduled,
            duration_seconds=summary.duration_seconds,
        )
        return summary

    async def process_trigger(self, trigger: PollingTrigger, tick_at: datetime) -> TriggerOutcome:
        """Check, dispatch and reschedule a single trigger.

        Never raises: any failure ends in a disable or a backoff.
        """
        log = logger.bind(
            trigger_id=trigger.id,
            workflow_id=trigger.workflow_id,
            trigger_type=trigger.trigger_type,
        )

        try:
            try:
                result = await self._executor.check(trigger)
            except Exception as e:
                result = PollResult(error=f"{type(e).__name__}: {e}")

            if result.workflow_inactive:
                log.info("owner_inactive_disabling_trigger")
                return await self._disable(trigger, reason=result.reason)

            if result.error:
                log.warning("check_failed", error_message=result.error)
                return await self._backoff(trigger, tick_at, result.error)

            event_name = event_id = None
            if result.has_batch:
                event_id = compute_event_id(trigger.id, result)
                try:
                    event_name = await self._dispatcher.dispatch(
                        trigger, result, event_id, polled_at=self._clock()
                    )
                except (ConfigurationError, InactiveTargetError) as e:
                    log.warning(
                        "dispatch_target_unusable_disabling_trigger",
                        error_type=type(e).__name__,
                        error_message=str(e),
                    )
                    return await self._disable(trigger, reason=str(e))

            return await self._reschedule(trigger, tick_at, result, event_name, event_id)

        except Exception as e:
            log.error(
                "trigger_processing_failed",
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return await self._backoff(trigger, tick_at, f"{type(e).__name__}: {e}")

    def next_poll_at(self, trigger: PollingTrigger, tick_at: datetime) -> datetime:
        return tick_at + timedelta(seconds=trigger.poll_interval)

    def backoff_until(self, trigger: PollingTrigger, tick_at: datetime) -> datetime:
        """Retry time for a failing trigger.

        Uses the configured backoff, stretched to the trigger's own poll
        interval when that is longer, so a failing trigger is never polled
        more often than a healthy one.
        """
        delay = max(self._backoff_seconds, trigger.poll_interval)
        return tick_at + timedelta(seconds=delay)

    async def _reschedule(
        self,
        trigger: PollingTrigger,
        tick_at: datetime,
        result: PollResult,
        event_name: str | None,
        event_id: str | None,
    ) -> TriggerOutcome:
        next_poll_at = self.next_poll_at(trigger, tick_at)
        write = await self._store.reschedule(
            trigger.id,
            next_poll_at=next_poll_at,
            cursor=result.new_cursor,
            timestamp=result.new_timestamp,
        )
        return TriggerOutcome(
            trigger_id=trigger.id,
            outcome=Outcome.TRIGGERED if event_name else Outcome.RESCHEDULED,
            next_poll_at=next_poll_at,
            event_name=event_name,
            event_id=event_id,
            write_ok=write.ok,
        )

    async def _backoff(self, trigger: PollingTrigger, tick_at: datetime, error: str) -> TriggerOutcome:
        next_poll_at = self.backoff_until(trigger, tick_at)
        write = await self._store.backoff(trigger.id, next_poll_at=next_poll_at)
        return TriggerOutcome(
            trigger_id=trigger.id,
            outcome=Outcome.BACKED_OFF,
            next_poll_at=next_poll_at,
            error=error,
            write_ok=write.ok,
        )

    async def _disable(self, trigger: PollingTrigger, reason: str | None) -> TriggerOutcome:
        write = await self._store.disable(trigger.id)
        return TriggerOutcome(
            trigger_id=trigger.id,
            outcome=Outcome.DISABLED,
            error=reason,
            write_ok=write.ok,
        )


__all__ = ["Outcome", "PollingRunner", "TickSummary", "TriggerOutcome"]
