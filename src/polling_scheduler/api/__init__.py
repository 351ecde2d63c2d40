"""Polling scheduler API module."""

from polling_scheduler.api.router import create_api_router

__all__ = ["create_api_router"]
