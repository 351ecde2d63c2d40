"""Client for the event bus ingestion API."""

from typing import Any

import httpx
import structlog

from polling_scheduler.errors import DispatchError

logger = structlog.get_logger(__name__)

WORKFLOW_EXECUTE_EVENT = "workflow/execute"
AGENT_RUN_EVENT = "agent/run"


class EventBusClient:
    """Sends events to the ingestion endpoint ``<base_url>/e/<event_key>``.

    The event id doubles as the receiver-side dedup key: an event whose id was
    already ingested is accepted and dropped.
    """

    def __init__(self, base_url: str, event_key: str, http: httpx.AsyncClient) -> None:
        self._url = f"{base_url.rstrip('/')}/e/{event_key}"
        self._http = http

    async def send(self, name: str, event_id: str, data: dict[str, Any]) -> None:
        """Send one event.

        Args:
            name: Event name, e.g. ``workflow/execute``.
            event_id: Idempotency key for the event.
            data: Event payload.

        Raises:
            DispatchError: On transport failure or a non-2xx response.
        """
        envelope = {"name": name, "id": event_id, "data": data}

        try:
            response = await self._http.post(
                self._url,
                json=envelope,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise DispatchError(f"Failed to send {name} event: {e}") from e

        if response.is_error:
            raise DispatchError(
                f"Failed to send {name} event: {response.status_code} - {response.text}"
            )

        logger.info("event_sent", event_name=name, event_id=event_id)


__all__ = ["AGENT_RUN_EVENT", "WORKFLOW_EXECUTE_EVENT", "EventBusClient"]
