# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Subworkflow node.

Invokes a workflow hosted by an ``AutomationClient`` in one of three modes:

- ``sync``: start the execution and poll until it reaches a terminal
  status or ``timeout_seconds`` elapses
- ``async``: start the execution and continue immediately on ``async``
- ``webhook``: send the payload to the workflow's webhook URL

Failed attempts are retried ``retry_count`` times with a fixed delay. A
provider error marked non-retryable, such as a 4xx response, ends the
retries early. Timeouts cancel the execution and continue on the
``timeout`` port without a retry.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import Field

from nodeflow.engine.context import ExecutionContext
from nodeflow.engine.paths import UNDEFINED, get_path, resolve_field, set_path
from nodeflow.exceptions import ProviderError, SubworkflowError, SubworkflowTimeoutError
from nodeflow.nodes.base import ExecutionResult, Node, NodeConfig, create_port
from nodeflow.providers.base import AutomationClient
from nodeflow.providers.http import send_webhook

logger = logging.getLogger(__name__)

ExecutionMode = Literal["sync", "async", "webhook"]
WebhookMethod = Literal["GET", "POST", "PUT", "DELETE"]


class SubworkflowConfig(NodeConfig):
    workflow_id: str = ""
    execution_mode: ExecutionMode = "sync"
    timeout_seconds: float = 30.0
    poll_interval_seconds: float = 1.0

    input_mapping: dict[str, str] = Field(default_factory=dict)
    """Maps payload fields to source paths (``data.path`` or ``$variable``)."""

    output_mapping: dict[str, str] = Field(default_factory=dict)
    """Maps output paths to paths in the subworkflow result."""

    webhook_path: str | None = None
    webhook_method: WebhookMethod = "POST"

    continue_on_error: bool = False
    retry_count: int = 0
    retry_delay_seconds: float = 1.0

    passthrough: bool = True
    merge_output: bool = True
    template_variables: dict[str, Any] = Field(default_factory=dict)


class SubworkflowNode(Node):
    """Calls an external or nested workflow and maps its result back."""

    node_type = "subworkflow"
    category = "integrations"
    display_name = "Subworkflow"
    description = "Runs another workflow and waits for, or dispatches, its result"
    config_model = SubworkflowConfig
    output_ports = (
        create_port("success", data_type="object", description="The subworkflow result"),
        create_port("error", data_type="object", description="Taken when every attempt failed"),
        create_port("timeout", data_type="object", description="Taken when a sync call timed out"),
        create_port("async", data_type="object", description="Taken once an async execution started"),
    )

    def _validate_config(self, config: SubworkflowConfig) -> list[str]:
        errors = []
        if not config.workflow_id.strip():
            errors.append("workflow_id is required")
        if config.timeout_seconds <= 0:
            errors.append("timeout_seconds must be greater than 0")
        if config.poll_interval_seconds <= 0:
            errors.append("poll_interval_seconds must be greater than 0")
        if config.retry_count < 0:
            errors.append("retry_count must not be negative")
        if config.retry_delay_seconds < 0:
            errors.append("retry_delay_seconds must not be negative")
        for name, mapping in (("input_mapping", config.input_mapping), ("output_mapping", config.output_mapping)):
            for key, value in mapping.items():
                if not key.strip() or not str(value).strip():
                    errors.append(f"{name}: keys and values must not be empty")
                    break
        return errors

    async def run(self, context: ExecutionContext, data: Any, config: SubworkflowConfig) -> ExecutionResult:
        client = self.services.automation if self.services else None
        if client is None:
            message = "No automation client is configured for subworkflow calls"
            entry = self.log(context, "error", message)
            return ExecutionResult.failure(message, data=data, next_nodes=["error"], logs=[entry])

        payload = self._build_payload(data, context.variables, config)
        max_attempts = config.retry_count + 1
        last_error = ""
        attempts = 0

        for attempt in range(1, max_attempts + 1):
            attempts = attempt
            try:
                if config.execution_mode == "async":
                    handle = await client.execute_workflow(config.workflow_id, payload)
                    meta = self._metadata(config, handle.id, "running", attempt)
                    entry = self.log(context, "info", f"Started async execution {handle.id}")
                    output = {**self._base(data, config), "execution_id": handle.id, "status": "running"}
                    return ExecutionResult.ok({**output, "subworkflow_execution": meta}, ["async"], logs=[entry])

                if config.execution_mode == "webhook":
                    url = client.build_webhook_url(config.workflow_id, config.webhook_path)
                    http_client = self.services.http_client if self.services else None
                    result = await send_webhook(
                        url, config.webhook_method, payload, config.timeout_seconds, client=http_client
                    )
                    execution_id = None
                else:
                    execution_id, result = await self._run_sync(client, payload, config)
            except SubworkflowTimeoutError as e:
                meta = self._metadata(config, e.execution_id, "timeout", attempt)
                entry = self.log(context, "warning", e.message)
                output = {**self._base(data, config), "status": "timeout", "subworkflow_execution": meta}
                return ExecutionResult.ok(output, ["timeout"], logs=[entry])
            except (ProviderError, SubworkflowError) as e:
                last_error = e.message
                self.log(context, "warning", f"Attempt {attempt}/{max_attempts} failed: {e.message}")
                if isinstance(e, ProviderError) and not e.is_retryable:
                    break
                if attempt < max_attempts:
                    await asyncio.sleep(config.retry_delay_seconds)
                continue

            meta = self._metadata(config, execution_id, "success", attempt)
            output = self._map_output(self._base(data, config), result, config)
            output["subworkflow_execution"] = meta
            entry = self.log(context, "info", f"Subworkflow '{config.workflow_id}' completed")
            return ExecutionResult.ok(output, ["success"], logs=[entry])

        message = f"Subworkflow '{config.workflow_id}' failed after {attempts} attempt(s): {last_error}"
        entry = self.log(context, "error", message)
        if config.continue_on_error:
            output = {
                **self._base(data, config),
                "subworkflow_error": {"message": last_error, "attempts": attempts},
            }
            return ExecutionResult.ok(output, ["error"], logs=[entry])
        return ExecutionResult.failure(message, data=data, next_nodes=["error"], logs=[entry])

    async def _run_sync(
        self, client: AutomationClient, payload: dict[str, Any], config: SubworkflowConfig
    ) -> tuple[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + config.timeout_seconds
        handle = await client.execute_workflow(config.workflow_id, payload)
        logger.debug(f"Polling execution {handle.id} of workflow {config.workflow_id}")

        while True:
            status = await client.get_execution(handle.id)
            if status.finished:
                if status.status != "success":
                    raise SubworkflowError(
                        status.error or f"Execution {handle.id} ended with status '{status.status}'",
                        node_id=self.id,
                        workflow_id=config.workflow_id,
                    )
                return handle.id, status.data
            remaining = deadline - loop.time()
            if remaining <= 0:
                await self._cancel(client, handle.id)
                raise SubworkflowTimeoutError(
                    f"Subworkflow '{config.workflow_id}' did not finish within {config.timeout_seconds}s",
                    timeout_seconds=config.timeout_seconds,
                    execution_id=handle.id,
                    workflow_id=config.workflow_id,
                )
            await asyncio.sleep(min(config.poll_interval_seconds, remaining))

    async def _cancel(self, client: AutomationClient, execution_id: str) -> None:
        try:
            await client.cancel(execution_id)
        except ProviderError as e:
            logger.warning(f"Could not cancel execution {execution_id}: {e.message}")

    @staticmethod
    def _build_payload(data: Any, variables: dict[str, Any], config: SubworkflowConfig) -> dict[str, Any]:
        if config.input_mapping:
            payload: dict[str, Any] = {}
            for target, source in config.input_mapping.items():
                value = resolve_field(source, data, variables)
                if value is not UNDEFINED:
                    set_path(payload, target, value)
            return payload
        workflow_data = {**data} if isinstance(data, dict) else {}
        workflow_data.update(variables)
        return {
            "workflow_data": workflow_data,
            "template_variables": dict(config.template_variables),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @staticmethod
    def _base(data: Any, config: SubworkflowConfig) -> dict[str, Any]:
        if not config.passthrough:
            return {}
        return dict(data) if isinstance(data, dict) else {"value": data} if data is not None else {}

    @staticmethod
    def _map_output(base: dict[str, Any], result: Any, config: SubworkflowConfig) -> dict[str, Any]:
        if config.output_mapping:
            for target, source in config.output_mapping.items():
                value = get_path(result, source)
                if value is not UNDEFINED:
                    set_path(base, target, value)
        elif config.merge_output and isinstance(result, dict):
            base.update(result)
        else:
            base["subworkflow_result"] = result
        return base

    @staticmethod
    def _metadata(config: SubworkflowConfig, execution_id: str | None, status: str, attempts: int) -> dict[str, Any]:
        return {
            "execution_id": execution_id,
            "status": status,
            "mode": config.execution_mode,
            "attempts": attempts,
            "workflow_id": config.workflow_id,
        }
