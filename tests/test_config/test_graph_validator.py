"""Tests for semantic workflow graph validation."""

from __future__ import annotations

import pytest

from nodeflow.config.loader import load_config_string
from nodeflow.config.schema import WorkflowConfig
from nodeflow.config.validator import validate_graph
from nodeflow.exceptions import ConfigurationError
from nodeflow.nodes.registry import NodeRegistry


def load(nodes: str, connections: str = "") -> WorkflowConfig:
    content = "workflow:\n  id: w\n  entry_point: start\nnodes:\n  - id: start\n    type: start\n" + nodes
    if connections:
        content += "connections:\n" + connections
    return load_config_string(content)


REPLY = "  - id: reply\n    type: response\n    config:\n      message: hi\n"
START_TO_REPLY = "  - source: start\n    source_port: output\n    target: reply\n"


class TestValidateGraph:
    """Tests for validate_graph."""

    def test_valid_graph(self, age_routing_yaml: str, registry: NodeRegistry) -> None:
        """Test a valid graph returns no warnings."""
        assert validate_graph(load_config_string(age_routing_yaml), registry) == []

    def test_unknown_type(self, registry: NodeRegistry) -> None:
        """Test unregistered node types are errors."""
        config = load(
            "  - id: weird\n    type: teleport\n",
            "  - source: start\n    source_port: output\n    target: weird\n",
        )
        with pytest.raises(ConfigurationError, match="unknown node type 'teleport'"):
            validate_graph(config, registry)

    def test_invalid_node_config(self, registry: NodeRegistry) -> None:
        """Test node configuration errors are reported with the node id."""
        config = load("  - id: reply\n    type: response\n", START_TO_REPLY)
        with pytest.raises(ConfigurationError, match=r"Node 'reply' \(response\): message is required"):
            validate_graph(config, registry)

    def test_unknown_output_port(self, registry: NodeRegistry) -> None:
        """Test connections from undeclared output ports are errors."""
        config = load(REPLY, "  - source: start\n    source_port: nowhere\n    target: reply\n")
        with pytest.raises(ConfigurationError, match="no output port 'nowhere'"):
            validate_graph(config, registry)

    def test_unknown_input_port(self, registry: NodeRegistry) -> None:
        """Test connections into undeclared input ports are errors."""
        connection = "  - source: start\n    source_port: output\n    target: reply\n    target_port: side\n"
        with pytest.raises(ConfigurationError, match="no input port 'side'"):
            validate_graph(load(REPLY, connection), registry)

    def test_required_input_cardinality(self, registry: NodeRegistry) -> None:
        """Test a required input may have only one incoming connection."""
        nodes = (
            "  - id: check\n    type: condition\n    config:\n      field: x\n      operator: is_not_empty\n"
            + REPLY
        )
        connections = (
            "  - source: start\n    source_port: output\n    target: check\n"
            "  - source: check\n    source_port: 'true'\n    target: reply\n"
            "  - source: check\n    source_port: 'false'\n    target: reply\n"
        )
        with pytest.raises(ConfigurationError, match="exactly one incoming connection, found 2"):
            validate_graph(load(nodes, connections), registry)

    def test_loop_back_edge_not_counted(self, registry: NodeRegistry) -> None:
        """Test a loop body may connect back into its loop node."""
        nodes = (
            "  - id: each\n    type: loop\n    config:\n      end: 3\n"
            "  - id: check\n    type: condition\n    config:\n      field: x\n      operator: is_not_empty\n"
        )
        connections = (
            "  - source: start\n    source_port: output\n    target: each\n"
            "  - source: each\n    source_port: loop_body\n    target: check\n"
            "  - source: check\n    source_port: 'true'\n    target: each\n"
        )
        assert validate_graph(load(nodes, connections), registry) == []

    def test_unreachable_warning(self, registry: NodeRegistry) -> None:
        """Test nodes not reachable from the entry point are warnings."""
        warnings = validate_graph(load(REPLY + REPLY.replace("id: reply", "id: orphan")), registry)
        assert "Node 'reply' is not reachable from entry point 'start'" in warnings
        assert "Node 'orphan' is not reachable from entry point 'start'" in warnings

    def test_errors_collected(self, registry: NodeRegistry) -> None:
        """Test every error is reported at once."""
        config = load(
            "  - id: reply\n    type: response\n  - id: weird\n    type: teleport\n",
            START_TO_REPLY,
        )
        with pytest.raises(ConfigurationError) as exc_info:
            validate_graph(config, registry)
        assert "message is required" in exc_info.value.message
        assert "teleport" in exc_info.value.message
