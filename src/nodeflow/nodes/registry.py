# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Node type registry.

This module provides the NodeRegistry class, which maps type identifier
strings to node classes and constructs node instances from descriptors.
Registries are explicitly constructed and passed in; there is no global
instance, so tests and hosts never share hidden registration state.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from nodeflow.exceptions import NodeRegistrationError
from nodeflow.nodes.base import Node, NodeCategory, Port

if TYPE_CHECKING:
    from nodeflow.config.schema import NodeDef
    from nodeflow.providers.base import NodeServices

logger = logging.getLogger(__name__)

CATEGORIES: tuple[NodeCategory, ...] = (
    "triggers",
    "actions",
    "conditions",
    "integrations",
    "utilities",
)


@dataclass(frozen=True)
class NodeTypeInfo:
    """Descriptive metadata for a registered node type."""

    node_type: str
    display_name: str
    description: str
    category: str
    version: str
    input_ports: tuple[Port, ...]
    output_ports: tuple[Port, ...]


class NodeRegistry:
    """Maps node type identifiers to node classes.

    Example:
        >>> registry = NodeRegistry()
        >>> registry.register(StartNode)
        >>> node = registry.create_node_instance({"id": "start", "type": "start"})

    Key behaviors:
    - **Explicit**: Each registry is an independent instance
    - **Lookup by tag**: Nodes are resolved by type string, never by class inspection
    - **Services**: Every created node receives the registry's NodeServices
    """

    def __init__(self, services: NodeServices | None = None) -> None:
        """Initialize an empty registry.

        Args:
            services: External collaborators handed to every created node.
        """
        self.services = services
        self._types: dict[str, type[Node]] = {}

    def register(self, node_class: type[Node], *, replace: bool = False) -> type[Node]:
        """Register a node class under its ``node_type``.

        Returns the class so the method can be used as a decorator.

        Raises:
            NodeRegistrationError: If the class is not a concrete Node, has no
                type tag, or the tag is already registered and ``replace`` is False.
        """
        if not inspect.isclass(node_class) or not issubclass(node_class, Node):
            raise NodeRegistrationError(f"{node_class!r} is not a Node subclass")
        if inspect.isabstract(node_class):
            raise NodeRegistrationError(
                f"Node class '{node_class.__name__}' is abstract",
                suggestion="Implement run() before registering the class",
            )
        node_type = node_class.node_type
        if not node_type:
            raise NodeRegistrationError(f"Node class '{node_class.__name__}' does not declare node_type")
        if node_type in self._types and not replace:
            raise NodeRegistrationError(
                f"Node type '{node_type}' is already registered",
                suggestion="Pass replace=True to override an existing registration",
            )
        self._types[node_type] = node_class
        logger.debug(f"Registered node type '{node_type}' ({node_class.__name__})")
        return node_class

    def unregister(self, node_type: str) -> bool:
        """Remove a node type. Returns False if it was not registered."""
        return self._types.pop(node_type, None) is not None

    def is_registered(self, node_type: str) -> bool:
        return node_type in self._types

    def get_node_class(self, node_type: str) -> type[Node] | None:
        return self._types.get(node_type)

    def get_registered_types(self) -> list[str]:
        return sorted(self._types)

    def get_node_types_by_category(self) -> dict[str, list[str]]:
        """Group registered type identifiers by category."""
        grouped: dict[str, list[str]] = {category: [] for category in CATEGORIES}
        for node_type, node_class in sorted(self._types.items()):
            grouped.setdefault(node_class.category, []).append(node_type)
        return grouped

    def get_type_info(self, node_type: str) -> NodeTypeInfo | None:
        node_class = self._types.get(node_type)
        if node_class is None:
            return None
        return NodeTypeInfo(
            node_type=node_type,
            display_name=node_class.display_name or node_type,
            description=node_class.description,
            category=node_class.category,
            version=node_class.version,
            input_ports=tuple(node_class.input_ports),
            output_ports=tuple(node_class.output_ports),
        )

    def create_node_instance(self, descriptor: NodeDef | Mapping[str, Any]) -> Node | None:
        """Construct a node from a descriptor.

        Args:
            descriptor: A NodeDef or a mapping with ``id``, ``type`` and
                optional ``name`` and ``config`` keys.

        Returns:
            The node instance, or None if the type is not registered.
        """
        if isinstance(descriptor, Mapping):
            node_id = descriptor.get("id")
            node_type = descriptor.get("type")
            name = descriptor.get("name")
            config = descriptor.get("config") or {}
        else:
            node_id = descriptor.id
            node_type = descriptor.type
            name = descriptor.name
            config = descriptor.config

        node_class = self._types.get(node_type or "")
        if node_class is None:
            logger.warning(f"Unknown node type '{node_type}' for node '{node_id}'")
            return None
        return node_class(str(node_id), dict(config), name=name, services=self.services)

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._types

    def __len__(self) -> int:
        return len(self._types)


def builtin_node_classes() -> list[type[Node]]:
    """Return the node classes shipped with nodeflow."""
    from nodeflow.nodes.actions import AIResponseNode, KnowledgeSearchNode, SendMessageNode
    from nodeflow.nodes.conditional import ConditionalLogicNode, ConditionNode
    from nodeflow.nodes.loop import LoopNode
    from nodeflow.nodes.response import ResponseNode
    from nodeflow.nodes.script import ScriptNode
    from nodeflow.nodes.subworkflow import SubworkflowNode
    from nodeflow.nodes.transform import DataTransformNode
    from nodeflow.nodes.trigger import MessageTriggerNode, StartNode

    return [
        StartNode,
        MessageTriggerNode,
        ConditionalLogicNode,
        ConditionNode,
        LoopNode,
        DataTransformNode,
        ScriptNode,
        SubworkflowNode,
        ResponseNode,
        SendMessageNode,
        AIResponseNode,
        KnowledgeSearchNode,
    ]


def create_default_registry(services: NodeServices | None = None) -> NodeRegistry:
    """Create a registry with every built-in node type registered.

    Args:
        services: External collaborators handed to created nodes.

    Returns:
        A new NodeRegistry.
    """
    registry = NodeRegistry(services)
    for node_class in builtin_node_classes():
        registry.register(node_class)
    return registry
