"""Client for the external check endpoint.

The check endpoint owns everything integration-specific: OAuth token lookup
and refresh, the third-party API call, and filtering down to data newer than
the trigger's cursor. This client only forwards the trigger's state and
parses the PollResult it gets back.
"""

from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from polling_scheduler.errors import TransientCheckError
from polling_scheduler.schemas.trigger import PollingTrigger, PollResult

logger = structlog.get_logger(__name__)

DEFAULT_CHECK_PATH = "/api/polling/execute-trigger"


class PollExecutor:
    """Delegates a trigger's authenticated check to the check endpoint."""

    def __init__(
        self,
        app_url: str,
        service_key: str,
        http: httpx.AsyncClient,
        check_path: str = DEFAULT_CHECK_PATH,
    ) -> None:
        """Initialize the executor.

        Args:
            app_url: Application base URL hosting the check endpoint.
            service_key: Credential sent as a bearer token.
            http: Shared async HTTP client.
            check_path: Path of the check endpoint.
        """
        self._url = f"{app_url.rstrip('/')}{check_path}"
        self._headers = {
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        }
        self._http = http

    @staticmethod
    def build_request(trigger: PollingTrigger) -> dict[str, Any]:
        """Build the check request body for a trigger."""
        return {
            "workflowId": trigger.workflow_id,
            "triggerType": trigger.trigger_type,
            "lastTimestamp": trigger.last_seen_timestamp,
            "lastCursor": trigger.last_cursor,
            "config": trigger.config,
        }

    async def check(self, trigger: PollingTrigger) -> PollResult:
        """Run the check for one trigger.

        Args:
            trigger: The due trigger.

        Returns:
            The parsed PollResult. An ``error`` inside a 2xx body is returned
            as-is for the caller to handle.

        Raises:
            TransientCheckError: On transport failure, a non-2xx response, or
                a body that is not a PollResult.
        """
        try:
            response = await self._http.post(
                self._url,
                json=self.build_request(trigger),
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise TransientCheckError(f"Poll API request failed: {e}") from e

        if response.is_error:
            raise TransientCheckError(
                f"Poll API responded {response.status_code}: {response.text}"
            )

        try:
            result = PollResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TransientCheckError(f"Poll API returned an unreadable result: {e}") from e

        logger.debug(
            "trigger_checked",
            trigger_id=trigger.id,
            trigger_type=trigger.trigger_type,
            has_new_data=result.has_new_data,
            item_count=len(result.items),
            reason=result.reason,
        )
        return result


__all__ = ["DEFAULT_CHECK_PATH", "PollExecutor"]
