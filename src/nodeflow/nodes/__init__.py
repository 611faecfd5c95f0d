# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Node module for nodeflow.

This module contains the node contract, the node type registry, and the
built-in node types.
"""

from nodeflow.nodes.base import ExecutionResult, Node, NodeConfig, Port, ValidationResult, create_port
from nodeflow.nodes.registry import NodeRegistry, NodeTypeInfo, create_default_registry

__all__ = [
    "ExecutionResult",
    "Node",
    "NodeConfig",
    "NodeRegistry",
    "NodeTypeInfo",
    "Port",
    "ValidationResult",
    "create_default_registry",
    "create_port",
]
