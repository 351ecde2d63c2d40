"""REST clients for the trigger store and workflow lookup."""

from polling_scheduler.store.trigger_store import TriggerStore
from polling_scheduler.store.workflows import WorkflowLookup

__all__ = ["TriggerStore", "WorkflowLookup"]
