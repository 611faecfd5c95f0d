# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""HTTP clients for external automation platforms.

This module provides HttpAutomationClient, a REST client for automation
platforms exposing an n8n-style API, and ``send_webhook`` for invoking a
workflow's public webhook endpoint.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import httpx

from nodeflow.exceptions import ProviderError
from nodeflow.providers.base import AutomationClient, ExecutionHandle, ExecutionStatus

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:5678/api/v1"
DEFAULT_WEBHOOK_URL = "http://localhost:5678/webhook"

_STATUS_ALIASES = {
    "succeeded": "success",
    "completed": "success",
    "failed": "error",
    "crashed": "error",
    "cancelled": "canceled",
}


def _normalize_status(raw: Any, finished: bool | None = None) -> str:
    status = str(raw or "").lower()
    status = _STATUS_ALIASES.get(status, status)
    if status in {"new", "running", "waiting", "success", "error", "canceled"}:
        return status
    if finished is True:
        return "success"
    return "running"


def _raise_for_status(response: httpx.Response, provider_name: str) -> None:
    if response.is_success:
        return
    raise ProviderError(
        f"{provider_name} API error: {response.status_code} - {response.text[:200]}",
        status_code=response.status_code,
        provider_name=provider_name,
    )


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _query_value(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class HttpAutomationClient(AutomationClient):
    """REST client for an automation platform.

    Endpoints:
    - ``POST {api_url}/workflows/{id}/execute`` with body ``{"data": input}``
    - ``GET {api_url}/executions/{id}``
    - ``{webhook_url}/{path or id}`` for webhooks

    Args:
        api_url: Base URL of the REST API. Falls back to NODEFLOW_AUTOMATION_API_URL.
        webhook_url: Base URL for webhooks. Falls back to NODEFLOW_AUTOMATION_WEBHOOK_URL.
        api_key: API key sent as ``X-N8N-API-KEY``. Falls back to NODEFLOW_AUTOMATION_API_KEY.
        timeout: HTTP request timeout in seconds.
        transport: Optional httpx transport, used by tests.
    """

    provider_name = "automation"

    def __init__(
        self,
        api_url: str | None = None,
        webhook_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = (api_url or os.getenv("NODEFLOW_AUTOMATION_API_URL", DEFAULT_API_URL)).rstrip("/")
        self.webhook_url = (
            webhook_url or os.getenv("NODEFLOW_AUTOMATION_WEBHOOK_URL", DEFAULT_WEBHOOK_URL)
        ).rstrip("/")
        self._api_key = api_key if api_key is not None else os.getenv("NODEFLOW_AUTOMATION_API_KEY", "")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self._api_key:
                headers["X-N8N-API-KEY"] = self._api_key
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        client = await self._get_client()
        try:
            response = await client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Automation API timeout: {method} {path}",
                provider_name=self.provider_name,
                is_retryable=True,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(
                f"Automation API connection error: {method} {path}: {e}",
                provider_name=self.provider_name,
                is_retryable=True,
            ) from e

        _raise_for_status(response, self.provider_name)
        return _decode_body(response)

    async def execute_workflow(self, workflow_id: str, input_data: dict[str, Any]) -> ExecutionHandle:
        body = await self._request("POST", f"/workflows/{workflow_id}/execute", json={"data": input_data})
        if isinstance(body, dict) and "id" not in body and isinstance(body.get("data"), dict):
            body = body["data"]
        if not isinstance(body, dict) or "id" not in body:
            raise ProviderError(
                f"Automation API returned no execution id for workflow '{workflow_id}'",
                provider_name=self.provider_name,
                is_retryable=False,
            )
        logger.debug(f"Started execution {body['id']} of workflow {workflow_id}")
        return ExecutionHandle(id=str(body["id"]), status=_normalize_status(body.get("status")))

    async def get_execution(self, execution_id: str) -> ExecutionStatus:
        body = await self._request("GET", f"/executions/{execution_id}")
        if not isinstance(body, dict):
            raise ProviderError(
                f"Unexpected response for execution '{execution_id}'",
                provider_name=self.provider_name,
                is_retryable=False,
            )
        status = _normalize_status(body.get("status"), body.get("finished"))
        error = body.get("error")
        if isinstance(error, dict):
            error = error.get("message") or str(error)
        return ExecutionStatus(
            id=str(body.get("id", execution_id)),
            status=status,
            data=body.get("data"),
            error=error,
        )

    def build_webhook_url(self, workflow_id: str, path: str | None = None) -> str:
        return f"{self.webhook_url}/{(path or workflow_id).lstrip('/')}"

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


async def send_webhook(
    url: str,
    method: str,
    payload: dict[str, Any],
    timeout: float,
    client: httpx.AsyncClient | None = None,
) -> Any:
    """Send a workflow payload to a webhook endpoint.

    GET requests send the payload as query parameters; other methods send
    it as a JSON body.

    Args:
        url: Webhook URL.
        method: HTTP method.
        payload: Invocation payload.
        timeout: Request timeout in seconds.
        client: Optional shared client. A temporary client is used when None.

    Returns:
        The decoded JSON response, or its text if it is not JSON.

    Raises:
        ProviderError: On connection failures or a non-2xx response.
    """
    method = method.upper()
    kwargs: dict[str, Any] = {"timeout": timeout}
    if method == "GET":
        kwargs["params"] = {k: _query_value(v) for k, v in payload.items()}
    else:
        kwargs["json"] = payload

    try:
        if client is not None:
            response = await client.request(method, url, **kwargs)
        else:
            async with httpx.AsyncClient() as temp_client:
                response = await temp_client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise ProviderError(f"Webhook timeout: {method} {url}", provider_name="webhook", is_retryable=True) from e
    except httpx.HTTPError as e:
        raise ProviderError(
            f"Webhook connection error: {method} {url}: {e}",
            provider_name="webhook",
            is_retryable=True,
        ) from e

    if not response.is_success:
        raise ProviderError(
            f"Webhook call failed: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            provider_name="webhook",
        )
    return _decode_body(response)
