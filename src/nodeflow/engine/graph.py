# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Graph execution engine.

This module provides the GraphExecutor class, which instantiates the nodes
of a workflow through a NodeRegistry and drives them to completion:

- each node's result selects output ports, and every target connected to
  every selected port runs concurrently
- a failed result halts its branch, unless the node declares an ``error``
  port, which is then followed
- loop bodies are run through the body runner installed on the context
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections import defaultdict
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from nodeflow.engine.context import ExecutionContext, StepRecord
from nodeflow.exceptions import ConfigurationError, ExecutionError
from nodeflow.nodes.base import ExecutionResult, Node, Port

if TYPE_CHECKING:
    from nodeflow.config.schema import WorkflowConfig
    from nodeflow.nodes.registry import NodeRegistry

logger = logging.getLogger(__name__)


def _verbose_log_node_start(node_id: str, node_type: str) -> None:
    """Lazy import wrapper for verbose_log_node_start to avoid circular imports."""
    from nodeflow.cli.run import verbose_log_node_start

    verbose_log_node_start(node_id, node_type)


def _verbose_log_node_complete(node_id: str, elapsed: float, ports: list[str]) -> None:
    """Lazy import wrapper for verbose_log_node_complete to avoid circular imports."""
    from nodeflow.cli.run import verbose_log_node_complete

    verbose_log_node_complete(node_id, elapsed, ports)


def _verbose_log_node_failed(node_id: str, elapsed: float, error: str | None) -> None:
    """Lazy import wrapper for verbose_log_node_failed to avoid circular imports."""
    from nodeflow.cli.run import verbose_log_node_failed

    verbose_log_node_failed(node_id, elapsed, error)


class GraphExecutor:
    """Executes a workflow graph.

    Example:
        >>> from nodeflow.config.loader import load_config
        >>> from nodeflow.nodes.registry import create_default_registry
        >>> config = load_config("workflow.yaml")
        >>> executor = GraphExecutor(config, create_default_registry())
        >>> context = await executor.run({"age": 21})
        >>> context.status
        'completed'
    """

    def __init__(self, config: WorkflowConfig, registry: NodeRegistry) -> None:
        """Instantiate every node of the workflow.

        Args:
            config: The workflow configuration.
            registry: Registry used to construct the nodes.

        Raises:
            ConfigurationError: If a node has an unregistered type.
        """
        self.config = config
        self.registry = registry
        self.nodes: dict[str, Node] = {}
        for index, node_def in enumerate(config.nodes):
            node = registry.create_node_instance(node_def)
            if node is None:
                raise ConfigurationError(
                    f"Unknown node type '{node_def.type}' for node '{node_def.id}'",
                    field_path=f"nodes.{index}.type",
                )
            self.nodes[node.id] = node

        self._targets: dict[tuple[str, str], list[str]] = defaultdict(list)
        for connection in config.connections:
            self._targets[(connection.source, connection.source_port)].append(connection.target)

    def get_node(self, node_id: str) -> Node | None:
        return self.nodes.get(node_id)

    def targets(self, node_id: str, port: str) -> list[str]:
        """Return the ids of the nodes connected to an output port."""
        return list(self._targets.get((node_id, port), ()))

    def ports_for(self, node_id: str) -> list[Port]:
        """Return a node's output ports with ``connected`` set for this graph."""
        node = self.nodes[node_id]
        return [replace(port, connected=bool(self.targets(node_id, port.name))) for port in node.get_output_ports()]

    async def run(
        self,
        inputs: dict[str, Any] | None = None,
        *,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ExecutionContext:
        """Run the workflow from its entry point.

        Args:
            inputs: Run inputs, layered over the workflow's initial variables.
            user_id: Identity of the caller.
            metadata: Caller metadata such as a conversation id.

        Returns:
            The finished context. Its status is ``failed`` if any branch
            halted on a failure, ``completed`` otherwise.
        """
        context = ExecutionContext(
            workflow_id=self.config.workflow.id,
            user_id=user_id,
            variables={**copy.deepcopy(self.config.variables), **(inputs or {})},
            metadata=dict(metadata or {}),
        )
        logger.info(f"Starting run {context.run_id} of workflow '{self.config.workflow.id}'")
        await self.execute_graph(self.config.workflow.entry_point, context)
        context.mark_completed("failed" if context.failed_nodes else "completed")
        logger.info(f"Run {context.run_id} finished with status '{context.status}'")
        return context

    async def execute_graph(
        self, start_node_id: str, context: ExecutionContext, data: Any = None
    ) -> ExecutionContext:
        """Execute the graph reachable from a node.

        Args:
            start_node_id: Node to start at.
            context: The run's execution context.
            data: Value delivered to the start node.

        Returns:
            The same context, after every branch has finished.

        Raises:
            ExecutionError: If the start node does not exist.
        """
        if start_node_id not in self.nodes:
            raise ExecutionError(
                f"Start node '{start_node_id}' not found in workflow '{self.config.workflow.id}'",
                node_id=start_node_id,
            )
        context.body_runner = self._run_body
        await self._visit(start_node_id, context, data)
        return context

    async def _invoke(self, node: Node, context: ExecutionContext, data: Any) -> ExecutionResult:
        _verbose_log_node_start(node.id, node.type)
        started = time.monotonic()
        try:
            result = await node.execute(context, data)
        except Exception as e:
            logger.exception(f"Node '{node.id}' raised during execution")
            message = f"{type(e).__name__}: {e}"
            entry = context.log("error", f"Node raised {message}", node_id=node.id)
            result = ExecutionResult.failure(message, data=data, logs=[entry])
        elapsed = time.monotonic() - started

        context.record_step(
            StepRecord(
                node_id=node.id,
                node_type=node.type,
                success=result.success,
                next_nodes=list(result.next_nodes),
                error=result.error,
                duration_seconds=elapsed,
            )
        )
        if result.success:
            _verbose_log_node_complete(node.id, elapsed, result.next_nodes)
        else:
            _verbose_log_node_failed(node.id, elapsed, result.error)
        return result

    @staticmethod
    def _follow(node: Node, result: ExecutionResult) -> list[str]:
        if result.success:
            return list(result.next_nodes)
        if node.has_output_port("error"):
            return ["error"]
        return []

    async def _visit(self, node_id: str, context: ExecutionContext, data: Any) -> None:
        node = self.nodes[node_id]
        result = await self._invoke(node, context, data)
        ports = self._follow(node, result)
        targets = [target for port in ports for target in self.targets(node_id, port)]
        if not targets:
            if not result.success:
                context.failed_nodes.append(node_id)
            context.outputs[node_id] = result.data
            return
        await asyncio.gather(*(self._visit(target, context, result.data) for target in targets))

    async def _run_body(
        self, loop_id: str, port: str, data: Any, context: ExecutionContext
    ) -> ExecutionResult:
        """Run the subgraph attached to a loop's body port for one iteration.

        The walk stops at nodes without outgoing connections and never
        re-enters the loop node. The iteration result is the first failure,
        otherwise the result of the last node reached.
        """
        entries = self.targets(loop_id, port)
        if not entries:
            return ExecutionResult.ok(data)
        results = await asyncio.gather(*(self._walk_body(loop_id, target, data, context) for target in entries))
        return next((r for r in results if not r.success), results[-1])

    async def _walk_body(
        self, loop_id: str, node_id: str, data: Any, context: ExecutionContext
    ) -> ExecutionResult:
        node = self.nodes[node_id]
        result = await self._invoke(node, context, data)
        ports = self._follow(node, result)
        targets = [
            target for p in ports for target in self.targets(node_id, p) if target != loop_id
        ]
        if not targets:
            return result
        results = await asyncio.gather(*(self._walk_body(loop_id, t, result.data, context) for t in targets))
        return next((r for r in results if not r.success), results[-1])
