"""Polling scheduler API endpoints."""

from polling_scheduler.api.endpoints import health, ticks

__all__ = [
    "health",
    "ticks",
]
