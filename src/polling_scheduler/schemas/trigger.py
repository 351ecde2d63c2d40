"""Schemas for polling triggers and the data that flows through a tick.

A ``PollingTrigger`` is one row of the ``polling_triggers`` table. Its opaque
``config`` map is decoded once, when the row is loaded, into a dispatch target:
either an ``AgentTarget`` (agent behaviours mark their config with
``isAgent: true``) or a ``WorkflowTarget``. A malformed agent config does not
fail the load; the decode error is kept on the trigger so the dispatcher can
retire it through the normal configuration-error path.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from polling_scheduler.errors import ConfigurationError, StoreWriteError

# Reason returned by the check endpoint when the owning workflow is not active
WORKFLOW_INACTIVE_REASON = "workflow_inactive"


class AgentTarget(BaseModel):
    """Dispatch target for triggers owned by an agent behaviour."""

    kind: Literal["agent"] = "agent"
    agent_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    behaviour_id: str | None = None


class WorkflowTarget(BaseModel):
    """Dispatch target for triggers owned by a workflow (the default)."""

    kind: Literal["workflow"] = "workflow"


TriggerTarget = Annotated[AgentTarget | WorkflowTarget, Field(discriminator="kind")]


def _as_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def decode_target(config: dict[str, Any]) -> AgentTarget | WorkflowTarget:
    """Decode a trigger config map into its dispatch target.

    Args:
        config: The trigger's opaque config map.

    Returns:
        An AgentTarget when the config is marked ``isAgent``, else a WorkflowTarget.

    Raises:
        ConfigurationError: If an agent config lacks ``agentId`` or ``userId``.
    """
    if config.get("isAgent") is not True:
        return WorkflowTarget()

    agent_id = _as_id(config.get("agentId"))
    user_id = _as_id(config.get("userId"))
    missing = [name for name, value in (("agentId", agent_id), ("userId", user_id)) if not value]
    if missing:
        raise ConfigurationError(f"Agent trigger config is missing {', '.join(missing)}")

    return AgentTarget(
        agent_id=agent_id,  # type: ignore[arg-type]
        user_id=user_id,  # type: ignore[arg-type]
        behaviour_id=_as_id(config.get("behaviourId")),
    )


class PollingTrigger(BaseModel):
    """A persisted polling trigger as read from the trigger store.

    Attributes:
        id: Trigger row id.
        workflow_id: Owning workflow id (agent triggers store the agent id here).
        trigger_type: Integration-specific trigger type (e.g. "new-email-received").
        config: Opaque configuration map passed through to the check endpoint.
        last_cursor: Last cursor reported by the check endpoint.
        last_seen_timestamp: Last timestamp reported by the check endpoint.
        next_poll_at: When the trigger is next due.
        poll_interval: Seconds between polls.
        enabled: False once the trigger has been retired.
        target: Decoded dispatch target, None if the config is malformed.
        config_error: Decode error for a malformed config.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    workflow_id: str
    trigger_type: str
    config: dict[str, Any] = Field(default_factory=dict)
    last_cursor: str | None = None
    last_seen_timestamp: str | None = None
    next_poll_at: datetime
    poll_interval: int = Field(gt=0)
    enabled: bool = True

    target: TriggerTarget | None = Field(default=None, exclude=True)
    config_error: str | None = Field(default=None, exclude=True)

    @field_validator("config", mode="before")
    @classmethod
    def default_config(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("next_poll_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Treat naive timestamps from the store as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @model_validator(mode="after")
    def decode_config(self) -> "PollingTrigger":
        if self.target is None and self.config_error is None:
            try:
                self.target = decode_target(self.config)
            except ConfigurationError as e:
                self.config_error = str(e)
        return self

    @property
    def is_agent(self) -> bool:
        return self.config.get("isAgent") is True


class PollResult(BaseModel):
    """Transient outcome of one check, in the check endpoint's camelCase shape."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    has_new_data: bool = Field(default=False, alias="hasNewData")
    new_data: list[Any] | None = Field(default=None, alias="newData")
    new_cursor: str | None = Field(default=None, alias="newCursor")
    new_timestamp: str | None = Field(default=None, alias="newTimestamp")
    error: str | None = None
    reason: str | None = None

    @field_validator("new_cursor", "new_timestamp", mode="before")
    @classmethod
    def coerce_to_string(cls, v: Any) -> Any:
        # Row-count cursors arrive as numbers
        if isinstance(v, int | float) and not isinstance(v, bool):
            return str(v)
        return v

    @property
    def workflow_inactive(self) -> bool:
        return self.reason == WORKFLOW_INACTIVE_REASON

    @property
    def items(self) -> list[Any]:
        return list(self.new_data or [])

    @property
    def has_batch(self) -> bool:
        """True when the result carries a non-empty batch to dispatch."""
        return self.has_new_data and bool(self.new_data)


class WorkflowDefinition(BaseModel):
    """The parts of an active workflow needed to build a workflow/execute event."""

    id: str
    user_id: str
    nodes: list[Any] = Field(default_factory=list)
    edges: list[Any] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "WorkflowDefinition":
        """Build from a ``workflows`` row projected to id, workflow_data, user_id."""
        workflow_data = row.get("workflow_data") or {}
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            nodes=workflow_data.get("nodes") or [],
            edges=workflow_data.get("edges") or [],
        )


class WriteOperation(str, Enum):
    """Kinds of best-effort trigger writes."""

    DISABLE = "disable"
    RESCHEDULE = "reschedule"
    BACKOFF = "backoff"


@dataclass
class WriteResult:
    """Outcome of a best-effort trigger store write.

    Writes are never retried and never raise; a failed write is reported here
    so callers and tests can see that the attempt was made.

    Attributes:
        trigger_id: The trigger that was written.
        operation: Which write was attempted.
        ok: Whether the store accepted the write.
        error: The failure, when ok is False.
    """

    trigger_id: str
    operation: WriteOperation
    ok: bool = True
    error: StoreWriteError | None = None


__all__ = [
    "WORKFLOW_INACTIVE_REASON",
    "AgentTarget",
    "PollResult",
    "PollingTrigger",
    "TriggerTarget",
    "WorkflowDefinition",
    "WorkflowTarget",
    "WriteOperation",
    "WriteResult",
    "decode_target",
]
