"""Batch deduplication and event dispatch."""

from polling_scheduler.dispatch.dedup import compute_event_id
from polling_scheduler.dispatch.dispatcher import Dispatcher
from polling_scheduler.dispatch.event_bus import (
    AGENT_RUN_EVENT,
    WORKFLOW_EXECUTE_EVENT,
    EventBusClient,
)

__all__ = [
    "AGENT_RUN_EVENT",
    "WORKFLOW_EXECUTE_EVENT",
    "Dispatcher",
    "EventBusClient",
    "compute_event_id",
]
