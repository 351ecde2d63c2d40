"""Unit tests for the check endpoint client."""

import json

import httpx
import pytest

from polling_scheduler.checker.client import PollExecutor
from polling_scheduler.errors import TransientCheckError

APP_URL = "https://app.test"
SERVICE_KEY = "service-role-key"


class TestCheck:
    """The executor forwards trigger state and parses the PollResult."""

    @pytest.mark.asyncio
    async def test_request_carries_trigger_state(
        self, mock_http, recorded_requests, make_trigger
    ) -> None:
        trigger = make_trigger(
            "T1",
            workflow_id="wf-7",
            trigger_type="new-row-in-google-sheet",
            config={"spreadsheetId": "sheet-1"},
            last_cursor="41",
            last_seen_timestamp="2026-10-18T11:00:00+00:00",
        )
        http = mock_http(lambda request: httpx.Response(200, json={"hasNewData": False}))

        await PollExecutor(APP_URL, SERVICE_KEY, http).check(trigger)

        request = recorded_requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://app.test/api/polling/execute-trigger"
        assert request.headers["authorization"] == f"Bearer {SERVICE_KEY}"
        assert json.loads(request.content) == {
            "workflowId": "wf-7",
            "triggerType": "new-row-in-google-sheet",
            "lastTimestamp": "2026-10-18T11:00:00+00:00",
            "lastCursor": "41",
            "config": {"spreadsheetId": "sheet-1"},
        }

    @pytest.mark.asyncio
    async def test_parses_new_data(self, mock_http, make_trigger) -> None:
        body = {
            "hasNewData": True,
            "newData": [{"id": "b"}, {"id": "a"}],
            "newCursor": "c2",
        }
        http = mock_http(lambda request: httpx.Response(200, json=body))

        result = await PollExecutor(APP_URL, SERVICE_KEY, http).check(make_trigger("T1"))

        assert result.has_batch is True
        assert result.items == [{"id": "b"}, {"id": "a"}]
        assert result.new_cursor == "c2"

    @pytest.mark.asyncio
    async def test_inactive_reason_is_returned(self, mock_http, make_trigger) -> None:
        http = mock_http(
            lambda request: httpx.Response(
                200, json={"hasNewData": False, "reason": "workflow_inactive"}
            )
        )

        result = await PollExecutor(APP_URL, SERVICE_KEY, http).check(make_trigger("T1"))

        assert result.workflow_inactive is True

    @pytest.mark.asyncio
    async def test_custom_check_path(self, mock_http, recorded_requests, make_trigger) -> None:
        http = mock_http(lambda request: httpx.Response(200, json={"hasNewData": False}))

        await PollExecutor(
            "https://app.test/", SERVICE_KEY, http, check_path="/internal/poll"
        ).check(make_trigger("T1"))

        assert str(recorded_requests[0].url) == "https://app.test/internal/poll"

    @pytest.mark.asyncio
    async def test_error_status_is_transient(self, mock_http, make_trigger) -> None:
        http = mock_http(
            lambda request: httpx.Response(500, json={"error": "token refresh failed"})
        )

        with pytest.raises(TransientCheckError, match="500"):
            await PollExecutor(APP_URL, SERVICE_KEY, http).check(make_trigger("T1"))

    @pytest.mark.asyncio
    async def test_transport_failure_is_transient(self, mock_http, make_trigger) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection reset", request=request)

        with pytest.raises(TransientCheckError):
            await PollExecutor(APP_URL, SERVICE_KEY, mock_http(handler)).check(make_trigger("T1"))

    @pytest.mark.asyncio
    async def test_non_json_body_is_transient(self, mock_http, make_trigger) -> None:
        http = mock_http(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

        with pytest.raises(TransientCheckError):
            await PollExecutor(APP_URL, SERVICE_KEY, http).check(make_trigger("T1"))
