"""Check endpoint client."""

from polling_scheduler.checker.client import PollExecutor

__all__ = ["PollExecutor"]
