"""Unit tests for the HTTP automation client and webhook helper.

All requests go through httpx.MockTransport; nothing touches the network.
"""

from __future__ import annotations

import json

import httpx
import pytest

from nodeflow.exceptions import ProviderError
from nodeflow.providers.http import HttpAutomationClient, send_webhook


def make_client(handler, api_key: str = "") -> HttpAutomationClient:
    return HttpAutomationClient(
        api_url="http://automation.test/api/v1",
        webhook_url="http://automation.test/webhook/",
        api_key=api_key,
        transport=httpx.MockTransport(handler),
    )


class TestExecuteWorkflow:
    """Tests for starting executions."""

    @pytest.mark.asyncio
    async def test_posts_input_and_returns_handle(self) -> None:
        """Test the input is wrapped in a data envelope."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": {"id": 17, "status": "running"}})

        client = make_client(handler, api_key="secret")
        handle = await client.execute_workflow("wf-1", {"n": 1})
        await client.close()

        assert handle.id == "17"
        assert handle.status == "running"
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/api/v1/workflows/wf-1/execute"
        assert seen[0].headers["X-N8N-API-KEY"] == "secret"
        assert json.loads(seen[0].content) == {"data": {"n": 1}}

    @pytest.mark.asyncio
    async def test_missing_execution_id(self) -> None:
        """Test a response without an id is an error."""
        client = make_client(lambda request: httpx.Response(200, json={"ok": True}))
        with pytest.raises(ProviderError, match="no execution id"):
            await client.execute_workflow("wf-1", {})
        await client.close()

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        """Test non-2xx responses raise with their status code."""
        client = make_client(lambda request: httpx.Response(404, text="not found"))
        with pytest.raises(ProviderError) as exc_info:
            await client.execute_workflow("missing", {})
        await client.close()
        assert exc_info.value.status_code == 404
        assert not exc_info.value.is_retryable

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable(self) -> None:
        """Test transport failures raise retryable provider errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(ProviderError) as exc_info:
            await client.execute_workflow("wf-1", {})
        await client.close()
        assert exc_info.value.is_retryable


class TestGetExecution:
    """Tests for execution status normalization."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body,expected",
        [
            ({"id": "e1", "status": "completed", "finished": True}, "success"),
            ({"id": "e1", "status": "failed"}, "error"),
            ({"id": "e1", "status": "cancelled"}, "canceled"),
            ({"id": "e1", "finished": True}, "success"),
            ({"id": "e1", "finished": False}, "running"),
        ],
    )
    async def test_status_normalization(self, body: dict, expected: str) -> None:
        """Test platform statuses map onto the execution lifecycle."""
        client = make_client(lambda request: httpx.Response(200, json=body))
        status = await client.get_execution("e1")
        await client.close()
        assert status.status == expected

    @pytest.mark.asyncio
    async def test_data_and_error(self) -> None:
        """Test result data and nested error messages are extracted."""
        body = {"id": "e2", "status": "error", "data": {"partial": 1}, "error": {"message": "boom"}}
        client = make_client(lambda request: httpx.Response(200, json=body))
        status = await client.get_execution("e2")
        await client.close()
        assert status.finished
        assert status.data == {"partial": 1}
        assert status.error == "boom"


class TestWebhooks:
    """Tests for webhook URLs and calls."""

    def test_build_webhook_url(self) -> None:
        """Test the path overrides the workflow id."""
        client = make_client(lambda request: httpx.Response(200))
        assert client.build_webhook_url("wf-1") == "http://automation.test/webhook/wf-1"
        assert client.build_webhook_url("wf-1", "/orders/new") == "http://automation.test/webhook/orders/new"

    @pytest.mark.asyncio
    async def test_get_sends_query_params(self) -> None:
        """Test GET webhooks send the payload as query parameters."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="ok")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            payload = {"a": 1, "b": ["x", None], "c": {"name": "ada", "ok": True}}
            result = await send_webhook("http://automation.test/webhook/x", "get", payload, 5.0, client=client)

        assert result == "ok"
        assert seen[0].method == "GET"
        assert seen[0].url.params["a"] == "1"
        assert json.loads(seen[0].url.params["b"]) == ["x", None]
        assert json.loads(seen[0].url.params["c"]) == {"name": "ada", "ok": True}

    @pytest.mark.asyncio
    async def test_error_status(self) -> None:
        """Test non-2xx webhook responses raise."""
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(ProviderError) as exc_info:
                await send_webhook("http://automation.test/webhook/x", "POST", {}, 5.0, client=client)
        assert exc_info.value.status_code == 500
        assert exc_info.value.is_retryable
