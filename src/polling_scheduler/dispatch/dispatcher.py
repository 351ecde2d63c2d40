"""Routing of positive poll results to downstream events.

Agent-owned triggers start an agent run; every other trigger starts an
execution of its workflow. Each observed batch becomes exactly one event.
"""

from datetime import datetime
from typing import Any

import structlog

from polling_scheduler.dispatch.event_bus import (
    AGENT_RUN_EVENT,
    WORKFLOW_EXECUTE_EVENT,
    EventBusClient,
)
from polling_scheduler.errors import ConfigurationError
from polling_scheduler.schemas.trigger import (
    AgentTarget,
    PollingTrigger,
    PollResult,
    WorkflowTarget,
)
from polling_scheduler.store.workflows import WorkflowLookup

logger = structlog.get_logger(__name__)

# triggerType reported on workflow/execute events started by this scheduler
POLLING_TRIGGER_TYPE = "polling"


class Dispatcher:
    """Builds and sends the single downstream event for a batch.

    Errors:
        ConfigurationError: the trigger's config cannot be dispatched (disable).
        InactiveTargetError: the owning workflow is no longer active (disable).
        DispatchError: the lookup or the event bus failed (backoff, retry later).
    """

    def __init__(self, event_bus: EventBusClient, workflows: WorkflowLookup) -> None:
        self._event_bus = event_bus
        self._workflows = workflows

    async def dispatch(
        self,
        trigger: PollingTrigger,
        result: PollResult,
        event_id: str,
        polled_at: datetime,
    ) -> str:
        """Send the event for ``result`` and return its name."""
        if trigger.config_error is not None:
            raise ConfigurationError(trigger.config_error)

        target = trigger.target
        if isinstance(target, AgentTarget):
            name, data = AGENT_RUN_EVENT, self._agent_payload(trigger, target, result, polled_at)
        elif isinstance(target, WorkflowTarget):
            name, data = WORKFLOW_EXECUTE_EVENT, await self._workflow_payload(
                trigger, result, polled_at
            )
        else:
            raise ConfigurationError(f"Trigger {trigger.id} has no dispatch target")

        await self._event_bus.send(name, event_id, data)

        logger.info(
            "batch_dispatched",
            trigger_id=trigger.id,
            event_name=name,
            event_id=event_id,
            item_count=len(result.items),
        )
        return name

    @staticmethod
    def _agent_payload(
        trigger: PollingTrigger,
        target: AgentTarget,
        result: PollResult,
        polled_at: datetime,
    ) -> dict[str, Any]:
        return {
            "agentId": target.agent_id,
            "userId": target.user_id,
            "behaviourId": target.behaviour_id,
            "triggerType": trigger.trigger_type,
            "items": result.items,
            "polledAt": polled_at.isoformat(),
        }

    async def _workflow_payload(
        self,
        trigger: PollingTrigger,
        result: PollResult,
        polled_at: datetime,
    ) -> dict[str, Any]:
        workflow = await self._workflows.get_active(trigger.workflow_id)
        return {
            "workflowId": trigger.workflow_id,
            "nodes": workflow.nodes,
            "edges": workflow.edges,
            "userId": workflow.user_id,
            "triggerType": POLLING_TRIGGER_TYPE,
            "triggerData": {
                "triggerType": trigger.trigger_type,
                "items": result.items,
                "triggerId": trigger.id,
                "polledAt": polled_at.isoformat(),
            },
        }


__all__ = ["POLLING_TRIGGER_TYPE", "Dispatcher"]
