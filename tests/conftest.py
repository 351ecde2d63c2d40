"""Shared test fixtures and in-memory collaborators for polling scheduler tests."""

from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest
import pytest_asyncio

from polling_scheduler.dispatch.dispatcher import Dispatcher
from polling_scheduler.errors import (
    DispatchError,
    InactiveTargetError,
    StoreReadError,
    StoreWriteError,
)
from polling_scheduler.scheduler.runner import PollingRunner
from polling_scheduler.schemas.trigger import (
    PollingTrigger,
    PollResult,
    WorkflowDefinition,
    WriteOperation,
    WriteResult,
)

STORE_URL = "https://store.test"
SERVICE_KEY = "service-role-key"
APP_URL = "https://app.test"
EVENT_BUS_URL = "https://events.test"
EVENT_KEY = "event-key"


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeTriggerStore:
    """In-memory trigger store with the same filtering as the REST query."""

    def __init__(self) -> None:
        self.rows: dict[str, PollingTrigger] = {}
        self.writes: list[WriteResult] = []
        self.list_due_calls: list[datetime] = []
        self.fail_reads = False
        self.fail_writes = False

    def add(self, trigger: PollingTrigger) -> None:
        self.rows[trigger.id] = trigger

    async def list_due(self, limit: int, as_of: datetime) -> list[PollingTrigger]:
        self.list_due_calls.append(as_of)
        if self.fail_reads:
            raise StoreReadError("Failed to fetch due triggers: 503")
        due = [t for t in self.rows.values() if t.enabled and t.next_poll_at <= as_of]
        due.sort(key=lambda t: t.next_poll_at)
        return [t.model_copy() for t in due[:limit]]

    def _write(self, trigger_id: str, operation: WriteOperation, **changes: Any) -> WriteResult:
        if self.fail_writes:
            result = WriteResult(
                trigger_id=trigger_id,
                operation=operation,
                ok=False,
                error=StoreWriteError("store unavailable"),
            )
        else:
            row = self.rows[trigger_id]
            self.rows[trigger_id] = row.model_copy(update=changes)
            result = WriteResult(trigger_id=trigger_id, operation=operation)
        self.writes.append(result)
        return result

    async def disable(self, trigger_id: str) -> WriteResult:
        return self._write(trigger_id, WriteOperation.DISABLE, enabled=False)

    async def reschedule(
        self,
        trigger_id: str,
        next_poll_at: datetime,
        cursor: str | None = None,
        timestamp: str | None = None,
    ) -> WriteResult:
        changes: dict[str, Any] = {"next_poll_at": next_poll_at}
        if cursor is not None:
            changes["last_cursor"] = cursor
        if timestamp is not None:
            changes["last_seen_timestamp"] = timestamp
        return self._write(trigger_id, WriteOperation.RESCHEDULE, **changes)

    async def backoff(self, trigger_id: str, next_poll_at: datetime) -> WriteResult:
        return self._write(trigger_id, WriteOperation.BACKOFF, next_poll_at=next_poll_at)


class FakeExecutor:
    """Check endpoint stand-in returning canned results per trigger id."""

    def __init__(self, clock: FakeClock) -> None:
        self.results: dict[str, PollResult | Exception] = {}
        self.latency_seconds = 0.0
        self.checked: list[str] = []
        self._clock = clock

    async def check(self, trigger: PollingTrigger) -> PollResult:
        self.checked.append(trigger.id)
        self._clock.advance(self.latency_seconds)
        outcome = self.results.get(trigger.id, PollResult(hasNewData=False))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeEventBus:
    """Records events instead of posting them."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self.fail = False

    async def send(self, name: str, event_id: str, data: dict[str, Any]) -> None:
        if self.fail:
            raise DispatchError(f"Failed to send {name} event: 502 - bad gateway")
        self.events.append({"name": name, "id": event_id, "data": data})

    def named(self, name: str) -> list[dict[str, Any]]:
        return [e for e in self.events if e["name"] == name]


class FakeWorkflowLookup:
    """Resolves only the workflows registered as active."""

    def __init__(self) -> None:
        self.active: dict[str, WorkflowDefinition] = {}

    async def get_active(self, workflow_id: str) -> WorkflowDefinition:
        if workflow_id not in self.active:
            raise InactiveTargetError(f"Workflow {workflow_id} is not active or no longer exists")
        return self.active[workflow_id]


@pytest.fixture
def tick_at() -> datetime:
    """Logical start time of the tick under test."""
    return datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


@pytest.fixture
def clock(tick_at: datetime) -> FakeClock:
    return FakeClock(tick_at + timedelta(seconds=2))


@pytest.fixture
def make_trigger(tick_at: datetime) -> Callable[..., PollingTrigger]:
    """Factory for due, enabled, workflow-owned triggers."""

    def _make(trigger_id: str = "T1", **overrides: Any) -> PollingTrigger:
        row: dict[str, Any] = {
            "id": trigger_id,
            "workflow_id": f"wf-{trigger_id}",
            "trigger_type": "new-email-received",
            "config": {},
            "last_cursor": None,
            "last_seen_timestamp": None,
            "next_poll_at": (tick_at - timedelta(seconds=1)).isoformat(),
            "poll_interval": 60,
            "enabled": True,
        }
        row.update(overrides)
        return PollingTrigger.model_validate(row)

    return _make


@pytest.fixture
def store() -> FakeTriggerStore:
    return FakeTriggerStore()


@pytest.fixture
def executor(clock: FakeClock) -> FakeExecutor:
    return FakeExecutor(clock)


@pytest.fixture
def event_bus() -> FakeEventBus:
    return FakeEventBus()


@pytest.fixture
def workflows() -> FakeWorkflowLookup:
    lookup = FakeWorkflowLookup()
    for trigger_id in ("T1", "T2", "T3"):
        lookup.active[f"wf-{trigger_id}"] = WorkflowDefinition(
            id=f"wf-{trigger_id}",
            user_id="user-1",
            nodes=[{"id": "n1", "data": {"nodeId": "new-email-received"}}],
            edges=[],
        )
    return lookup


@pytest.fixture
def dispatcher(event_bus: FakeEventBus, workflows: FakeWorkflowLookup) -> Dispatcher:
    return Dispatcher(event_bus, workflows)  # type: ignore[arg-type]


@pytest.fixture
def runner(
    store: FakeTriggerStore,
    executor: FakeExecutor,
    dispatcher: Dispatcher,
    clock: FakeClock,
) -> PollingRunner:
    return PollingRunner(
        store,  # type: ignore[arg-type]
        executor,  # type: ignore[arg-type]
        dispatcher,
        batch_limit=50,
        backoff_seconds=300,
        clock=clock,
    )


@pytest.fixture
def recorded_requests() -> list[httpx.Request]:
    return []


@pytest_asyncio.fixture
async def mock_http(
    recorded_requests: list[httpx.Request],
) -> AsyncIterator[Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]]:
    """Build AsyncClients backed by an httpx.MockTransport handler.

    Every request is appended to ``recorded_requests`` before the handler runs.
    """
    clients: list[httpx.AsyncClient] = []

    def _build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        def _recording(request: httpx.Request) -> httpx.Response:
            recorded_requests.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(_recording))
        clients.append(client)
        return client

    yield _build

    for client in clients:
        await client.aclose()
