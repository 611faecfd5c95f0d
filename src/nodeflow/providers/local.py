# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""In-process automation client for nested workflows."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Any

from nodeflow.exceptions import ProviderError
from nodeflow.providers.base import AutomationClient, ExecutionHandle, ExecutionStatus, NodeServices

if TYPE_CHECKING:
    from nodeflow.config.schema import WorkflowConfig
    from nodeflow.engine.context import ExecutionContext
    from nodeflow.nodes.registry import NodeRegistry

logger = logging.getLogger(__name__)


class LocalWorkflowClient(AutomationClient):
    """Runs registered workflows in this process as asyncio tasks.

    The execution's data is the finished run's variable store. An
    execution is forgotten once get_execution() has reported its terminal
    status. Subworkflow nodes inside the nested workflows reach this same
    client, so workflows can nest.

    Example:
        >>> client = LocalWorkflowClient()
        >>> client.register(load_config("child.yaml"))
        >>> handle = await client.execute_workflow("child", {"n": 3})
    """

    provider_name = "local"

    def __init__(
        self,
        workflows: list[WorkflowConfig] | None = None,
        registry: NodeRegistry | None = None,
        services: NodeServices | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            workflows: Workflows to register.
            registry: Registry for nested runs. A default registry sharing
                ``services`` and this client is built when unset.
            services: Collaborators for the default registry.
        """
        self._workflows: dict[str, WorkflowConfig] = {}
        self._registry = registry
        self._services = services
        self._executions: dict[str, asyncio.Task[ExecutionContext]] = {}
        for config in workflows or []:
            self.register(config)

    def register(self, config: WorkflowConfig) -> None:
        self._workflows[config.workflow.id] = config

    def _get_registry(self) -> NodeRegistry:
        if self._registry is None:
            from nodeflow.nodes.registry import create_default_registry

            base = self._services or NodeServices()
            services = NodeServices(
                channel=base.channel,
                completion=base.completion,
                automation=self,
                search=base.search,
                http_client=base.http_client,
            )
            self._registry = create_default_registry(services)
        return self._registry

    async def execute_workflow(self, workflow_id: str, input_data: dict[str, Any]) -> ExecutionHandle:
        from nodeflow.engine.graph import GraphExecutor

        config = self._workflows.get(workflow_id)
        if config is None:
            raise ProviderError(
                f"Workflow '{workflow_id}' is not registered with the local client",
                status_code=404,
                provider_name=self.provider_name,
            )
        executor = GraphExecutor(config, self._get_registry())
        execution_id = str(uuid.uuid4())
        self._executions[execution_id] = asyncio.create_task(executor.run(dict(input_data)))
        logger.debug(f"Started local execution {execution_id} of workflow '{workflow_id}'")
        return ExecutionHandle(id=execution_id, status="running")

    async def get_execution(self, execution_id: str) -> ExecutionStatus:
        task = self._executions.get(execution_id)
        if task is None:
            raise ProviderError(
                f"Execution '{execution_id}' not found",
                status_code=404,
                provider_name=self.provider_name,
            )
        if not task.done():
            return ExecutionStatus(id=execution_id, status="running")
        del self._executions[execution_id]
        if task.cancelled():
            return ExecutionStatus(id=execution_id, status="canceled")
        error = task.exception()
        if error is not None:
            return ExecutionStatus(id=execution_id, status="error", error=f"{type(error).__name__}: {error}")

        context = task.result()
        if context.status == "failed":
            failed = ", ".join(context.failed_nodes)
            return ExecutionStatus(
                id=execution_id,
                status="error",
                data=context.variables,
                error=f"Nested workflow failed at node(s): {failed}",
            )
        return ExecutionStatus(id=execution_id, status="success", data=context.variables)

    def build_webhook_url(self, workflow_id: str, path: str | None = None) -> str:
        return f"local://{(path or workflow_id).lstrip('/')}"

    async def cancel(self, execution_id: str) -> None:
        """Cancel a running execution and forget it."""
        task = self._executions.pop(execution_id, None)
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.debug(f"Cancelled local execution {execution_id}")

    async def close(self) -> None:
        """Cancel executions that are still running."""
        pending = [task for task in self._executions.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._executions.clear()
