"""Schemas for polling scheduler data models."""

from polling_scheduler.schemas.trigger import (
    WORKFLOW_INACTIVE_REASON,
    AgentTarget,
    PollingTrigger,
    PollResult,
    WorkflowDefinition,
    WorkflowTarget,
    WriteOperation,
    WriteResult,
    decode_target,
)

__all__ = [
    "WORKFLOW_INACTIVE_REASON",
    "AgentTarget",
    "PollResult",
    "PollingTrigger",
    "WorkflowDefinition",
    "WorkflowTarget",
    "WriteOperation",
    "WriteResult",
    "decode_target",
]
