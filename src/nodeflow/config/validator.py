# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Semantic validation of workflow graphs.

This module provides validation beyond what the Pydantic schema can check:
node types are registered, each node's configuration is valid for its
type, connections name ports the node types declare, and required input
ports have exactly one incoming connection.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from nodeflow.exceptions import ConfigurationError

if TYPE_CHECKING:
    from nodeflow.config.schema import WorkflowConfig
    from nodeflow.nodes.base import Node
    from nodeflow.nodes.registry import NodeRegistry


def validate_graph(config: WorkflowConfig, registry: NodeRegistry) -> list[str]:
    """Perform semantic validation of a workflow graph.

    Args:
        config: The WorkflowConfig to validate.
        registry: Registry used to resolve node types.

    Returns:
        A list of warning messages (non-fatal issues).

    Raises:
        ConfigurationError: If any validation errors are found.
    """
    errors: list[str] = []
    warnings: list[str] = []

    nodes: dict[str, Node] = {}
    for node_def in config.nodes:
        if not registry.is_registered(node_def.type):
            errors.append(f"Node '{node_def.id}' has unknown node type '{node_def.type}'")
            continue
        node = registry.create_node_instance(node_def)
        if node is None:
            continue
        nodes[node.id] = node
        for error in node.validate().errors:
            errors.append(f"Node '{node.id}' ({node.type}): {error}")

    errors.extend(_validate_connections(config, nodes))
    errors.extend(_validate_input_cardinality(config, nodes))
    warnings.extend(_find_unreachable(config))

    entry = nodes.get(config.workflow.entry_point)
    if entry is not None and any(c.target == entry.id for c in config.connections):
        warnings.append(f"Entry node '{entry.id}' has incoming connections")

    if errors:
        raise ConfigurationError(
            "Workflow graph validation failed:\n  - " + "\n  - ".join(errors),
            suggestion="Fix the validation errors listed above and try again.",
        )

    return warnings


def _validate_connections(config: WorkflowConfig, nodes: dict[str, Node]) -> list[str]:
    errors = []
    for index, connection in enumerate(config.connections):
        source = nodes.get(connection.source)
        if source is not None and not source.has_output_port(connection.source_port):
            available = ", ".join(p.name for p in source.get_output_ports()) or "none"
            errors.append(
                f"Connection {index}: node '{source.id}' has no output port "
                f"'{connection.source_port}' (available: {available})"
            )
        target = nodes.get(connection.target)
        if target is not None and not target.has_input_port(connection.target_port):
            available = ", ".join(p.name for p in target.get_input_ports()) or "none"
            errors.append(
                f"Connection {index}: node '{target.id}' has no input port "
                f"'{connection.target_port}' (available: {available})"
            )
    return errors


def _loop_back_edges(config: WorkflowConfig, nodes: dict[str, Node]) -> set[int]:
    """Return indexes of connections leading from a loop body back to its loop node."""
    edges: dict[str, list[str]] = defaultdict(list)
    for connection in config.connections:
        edges[connection.source].append(connection.target)

    back_edges: set[int] = set()
    for loop_id, node in nodes.items():
        if not node.has_output_port("loop_body"):
            continue
        body: set[str] = set()
        stack = [c.target for c in config.connections if c.source == loop_id and c.source_port == "loop_body"]
        while stack:
            current = stack.pop()
            if current == loop_id or current in body:
                continue
            body.add(current)
            stack.extend(edges[current])
        back_edges.update(
            index
            for index, connection in enumerate(config.connections)
            if connection.target == loop_id and connection.source in body
        )
    return back_edges


def _validate_input_cardinality(config: WorkflowConfig, nodes: dict[str, Node]) -> list[str]:
    skipped = _loop_back_edges(config, nodes)
    incoming: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for index, connection in enumerate(config.connections):
        if index in skipped:
            continue
        incoming[connection.target][connection.target_port] += 1

    errors = []
    for node_id, ports in incoming.items():
        node = nodes.get(node_id)
        if node is None:
            continue
        for port in node.get_input_ports():
            count = ports.get(port.name, 0)
            if port.required and count != 1:
                errors.append(
                    f"Node '{node_id}' input port '{port.name}' must have exactly one "
                    f"incoming connection, found {count}"
                )
    return errors


def _find_unreachable(config: WorkflowConfig) -> list[str]:
    edges: dict[str, list[str]] = defaultdict(list)
    for connection in config.connections:
        edges[connection.source].append(connection.target)

    seen = {config.workflow.entry_point}
    stack = [config.workflow.entry_point]
    while stack:
        for target in edges[stack.pop()]:
            if target not in seen:
                seen.add(target)
                stack.append(target)

    return [
        f"Node '{node.id}' is not reachable from entry point '{config.workflow.entry_point}'"
        for node in config.nodes
        if node.id not in seen
    ]
