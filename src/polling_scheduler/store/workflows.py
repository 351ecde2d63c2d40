"""Lookup of active workflows in the ``workflows`` table."""

import httpx
import structlog
from pydantic import ValidationError

from polling_scheduler.errors import DispatchError, InactiveTargetError
from polling_scheduler.schemas.trigger import WorkflowDefinition
from polling_scheduler.store.trigger_store import rest_headers

logger = structlog.get_logger(__name__)

WORKFLOWS_PATH = "/rest/v1/workflows"


class WorkflowLookup:
    """Resolves a workflow id to its graph and owner, if the workflow is active."""

    def __init__(self, base_url: str, service_key: str, http: httpx.AsyncClient) -> None:
        self._url = f"{base_url.rstrip('/')}{WORKFLOWS_PATH}"
        self._headers = rest_headers(service_key)
        self._http = http

    async def get_active(self, workflow_id: str) -> WorkflowDefinition:
        """Fetch an active workflow's nodes, edges and owning user.

        Args:
            workflow_id: The workflow to resolve.

        Returns:
            The workflow definition.

        Raises:
            InactiveTargetError: If no active workflow has this id.
            DispatchError: If the lookup itself failed.
        """
        params = {
            "id": f"eq.{workflow_id}",
            "status": "eq.active",
            "select": "id,workflow_data,user_id",
        }

        try:
            response = await self._http.get(self._url, params=params, headers=self._headers)
        except httpx.HTTPError as e:
            raise DispatchError(f"Workflow lookup failed for {workflow_id}: {e}") from e

        if response.is_error:
            raise DispatchError(
                f"Workflow lookup for {workflow_id} responded {response.status_code}"
            )

        try:
            rows = response.json() or []
        except ValueError as e:
            raise DispatchError(f"Unreadable workflow lookup response: {e}") from e

        if not rows:
            raise InactiveTargetError(f"Workflow {workflow_id} is not active or no longer exists")

        try:
            workflow = WorkflowDefinition.from_row(rows[0])
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise InactiveTargetError(f"Workflow {workflow_id} has no usable definition: {e}") from e

        logger.debug(
            "workflow_resolved",
            workflow_id=workflow_id,
            node_count=len(workflow.nodes),
            edge_count=len(workflow.edges),
        )
        return workflow


__all__ = ["WORKFLOWS_PATH", "WorkflowLookup"]
