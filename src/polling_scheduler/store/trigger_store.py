"""REST client for the ``polling_triggers`` table.

Reads are strict at the request level: if the due-trigger query fails, the
tick has nothing to do and a StoreReadError is raised. A single row that
cannot be loaded is disabled instead. Writes are best-effort: a failed PATCH is
logged and reported through a WriteResult, never raised and never retried.
A missed write costs at most one redundant poll on a later tick; the event
bus drops the duplicate dispatch by event id.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from polling_scheduler.errors import StoreReadError, StoreWriteError
from polling_scheduler.schemas.trigger import PollingTrigger, WriteOperation, WriteResult

logger = structlog.get_logger(__name__)

TRIGGERS_PATH = "/rest/v1/polling_triggers"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def rest_headers(service_key: str) -> dict[str, str]:
    """Headers for PostgREST calls authenticated with the service role key."""
    return {
        "apikey": service_key,
        "Authorization": f"Bearer {service_key}",
        "Content-Type": "application/json",
    }


class TriggerStore:
    """Client for reading and updating polling triggers.

    Usage:
        async with httpx.AsyncClient() as http:
            store = TriggerStore(base_url, service_key, http)
            triggers = await store.list_due(limit=50, as_of=tick_at)
            await store.reschedule(triggers[0].id, next_poll_at=tick_at + interval)
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        http: httpx.AsyncClient,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the trigger store client.

        Args:
            base_url: Supabase project URL, without trailing slash.
            service_key: Service role key used for apikey and bearer auth.
            http: Shared async HTTP client.
            clock: Source of wall-clock time for ``updated_at`` stamps.
        """
        self._url = f"{base_url.rstrip('/')}{TRIGGERS_PATH}"
        self._headers = rest_headers(service_key)
        self._http = http
        self._clock = clock
        self._log = logger.bind(component="trigger_store")

    async def list_due(self, limit: int, as_of: datetime) -> list[PollingTrigger]:
        """Fetch enabled triggers whose next_poll_at is at or before ``as_of``.

        Rows that fail validation are disabled and left out of the result
        rather than failing the whole read.

        Args:
            limit: Maximum number of triggers to return.
            as_of: Cut-off instant, normally the tick's logical start time.

        Returns:
            Due triggers ordered by next_poll_at ascending.

        Raises:
            StoreReadError: If the query fails or returns an unreadable body.
        """
        params = {
            "next_poll_at": f"lte.{as_of.isoformat()}",
            "enabled": "eq.true",
            "order": "next_poll_at.asc",
            "limit": str(limit),
        }

        try:
            response = await self._http.get(self._url, params=params, headers=self._headers)
        except httpx.HTTPError as e:
            raise StoreReadError(f"Failed to fetch due triggers: {e}") from e

        if response.is_error:
            raise StoreReadError(
                f"Failed to fetch due triggers: {response.status_code} {response.text}"
            )

        try:
            rows = response.json() or []
        except ValueError as e:
            raise StoreReadError(f"Unreadable due trigger response: {e}") from e
        if not isinstance(rows, list):
            raise StoreReadError(f"Unexpected due trigger response: {type(rows).__name__}")

        triggers: list[PollingTrigger] = []
        for row in rows:
            try:
                triggers.append(PollingTrigger.model_validate(row))
            except ValidationError as e:
                await self._retire_malformed(row, e)

        self._log.debug("due_triggers_fetched", count=len(triggers), as_of=as_of.isoformat())
        return triggers

    async def _retire_malformed(self, row: Any, error: ValidationError) -> None:
        """Disable a row that cannot be loaded so it stops coming back as due."""
        trigger_id = row.get("id") if isinstance(row, dict) else None
        if not isinstance(trigger_id, str) or not trigger_id:
            self._log.error(
                "malformed_trigger_skipped",
                error_count=error.error_count(),
                error_message=str(error),
            )
            return

        self._log.error(
            "malformed_trigger_disabled",
            trigger_id=trigger_id,
            error_count=error.error_count(),
            error_message=str(error),
        )
        await self.disable(trigger_id)

    async def disable(self, trigger_id: str) -> WriteResult:
        """Retire a trigger by setting enabled to false."""
        return await self._patch(
            trigger_id,
            WriteOperation.DISABLE,
            {"enabled": False},
        )

    async def reschedule(
        self,
        trigger_id: str,
        next_poll_at: datetime,
        cursor: str | None = None,
        timestamp: str | None = None,
    ) -> WriteResult:
        """Set the next poll time and, where supplied, the new cursor/timestamp.

        None for ``cursor`` or ``timestamp`` leaves the stored value untouched.
        """
        body: dict[str, Any] = {"next_poll_at": next_poll_at.isoformat()}
        if cursor is not None:
            body["last_cursor"] = cursor
        if timestamp is not None:
            body["last_seen_timestamp"] = timestamp
        return await self._patch(trigger_id, WriteOperation.RESCHEDULE, body)

    async def backoff(self, trigger_id: str, next_poll_at: datetime) -> WriteResult:
        """Push a failing trigger's next poll time out, touching nothing else."""
        return await self._patch(
            trigger_id,
            WriteOperation.BACKOFF,
            {"next_poll_at": next_poll_at.isoformat()},
        )

    async def _patch(
        self,
        trigger_id: str,
        operation: WriteOperation,
        body: dict[str, Any],
    ) -> WriteResult:
        payload = {**body, "updated_at": self._clock().isoformat()}
        headers = {**self._headers, "Prefer": "return=minimal"}

        try:
            response = await self._http.patch(
                self._url,
                params={"id": f"eq.{trigger_id}"},
                json=payload,
                headers=headers,
            )
            if response.is_error:
                raise StoreWriteError(
                    f"{operation.value} responded {response.status_code}: {response.text}"
                )
        except (httpx.HTTPError, StoreWriteError) as e:
            error = e if isinstance(e, StoreWriteError) else StoreWriteError(str(e))
            self._log.warning(
                "trigger_write_failed",
                trigger_id=trigger_id,
                operation=operation.value,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return WriteResult(trigger_id=trigger_id, operation=operation, ok=False, error=error)

        self._log.debug("trigger_written", trigger_id=trigger_id, operation=operation.value)
        return WriteResult(trigger_id=trigger_id, operation=operation)


__all__ = ["TRIGGERS_PATH", "TriggerStore", "rest_headers"]
