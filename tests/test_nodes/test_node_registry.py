"""Unit tests for the node contract and NodeRegistry.

Tests cover:
- Registration, duplicate detection and replacement
- Creating nodes from descriptors
- Category grouping and type info
- Validation state, configuration updates and cloning
"""

from __future__ import annotations

from typing import Any

import pytest

from nodeflow.engine.context import ExecutionContext
from nodeflow.exceptions import NodeRegistrationError
from nodeflow.nodes.base import ExecutionResult, Node, create_port
from nodeflow.nodes.registry import NodeRegistry, create_default_registry
from nodeflow.nodes.trigger import StartNode


class EchoNode(Node):
    """Passes its input through."""

    node_type = "echo"
    output_ports = (create_port("output"),)

    async def run(self, context: ExecutionContext, data: Any, config: Any) -> ExecutionResult:
        return ExecutionResult.ok(data, ["output"])


class TestNodeRegistry:
    """Tests for NodeRegistry."""

    def test_register_and_create(self) -> None:
        """Test a registered type can be instantiated by tag."""
        registry = NodeRegistry()
        registry.register(EchoNode)
        node = registry.create_node_instance({"id": "e1", "type": "echo", "config": {"x": 1}})
        assert isinstance(node, EchoNode)
        assert node.id == "e1"
        assert node.config == {"x": 1}
        assert "echo" in registry
        assert len(registry) == 1

    def test_unknown_type_returns_none(self) -> None:
        """Test unknown tags yield None."""
        assert NodeRegistry().create_node_instance({"id": "x", "type": "nope"}) is None

    def test_duplicate_registration_raises(self) -> None:
        """Test a tag can only be registered once unless replaced."""
        registry = NodeRegistry()
        registry.register(EchoNode)
        with pytest.raises(NodeRegistrationError, match="already registered"):
            registry.register(EchoNode)
        registry.register(EchoNode, replace=True)

    def test_abstract_class_rejected(self) -> None:
        """Test abstract classes cannot be registered."""
        with pytest.raises(NodeRegistrationError):
            NodeRegistry().register(Node)

    def test_unregister(self) -> None:
        """Test unregistering a type."""
        registry = NodeRegistry()
        registry.register(EchoNode)
        assert registry.unregister("echo")
        assert not registry.unregister("echo")

    def test_registries_are_independent(self) -> None:
        """Test registering in one registry does not affect another."""
        first = create_default_registry()
        second = create_default_registry()
        first.register(EchoNode)
        assert "echo" in first
        assert "echo" not in second

    def test_default_registry_categories(self) -> None:
        """Test built-in types are grouped by category."""
        grouped = create_default_registry().get_node_types_by_category()
        assert "start" in grouped["triggers"]
        assert "conditional_logic" in grouped["conditions"]
        assert "loop" in grouped["utilities"]
        assert "subworkflow" in grouped["integrations"]
        assert "response" in grouped["actions"]

    def test_type_info(self) -> None:
        """Test type info exposes declared ports."""
        info = create_default_registry().get_type_info("loop")
        assert info is not None
        assert [p.name for p in info.output_ports] == ["loop_body", "completed", "error"]
        assert create_default_registry().get_type_info("nope") is None


class TestNodeContract:
    """Tests for behavior shared by every node."""

    def test_validation_state_tracks_updates(self) -> None:
        """Test update_configuration revalidates."""
        node = create_default_registry().create_node_instance(
            {"id": "r", "type": "response", "config": {"message": ""}}
        )
        assert node is not None
        assert not node.is_valid
        result = node.update_configuration(message="Hi")
        assert result.is_valid
        assert node.is_valid and node.errors == []

    def test_config_is_a_copy(self) -> None:
        """Test callers cannot mutate the node's configuration."""
        node = StartNode("s", {"trigger_type": "manual"})
        node.config["trigger_type"] = "changed"
        assert node.get_config("trigger_type") == "manual"

    def test_clone(self) -> None:
        """Test clone copies configuration under a new id."""
        node = StartNode("s", {"trigger_type": "schedule"})
        copy = node.clone()
        assert copy.id == "s_copy"
        assert copy.get_config("trigger_type") == "schedule"
        assert copy.type == "start"

    def test_ports(self) -> None:
        """Test port lookups."""
        node = EchoNode("e")
        assert node.has_input_port("input")
        assert node.has_output_port("output")
        assert not node.has_output_port("error")
        assert node.get_metadata()["type"] == "echo"

    @pytest.mark.asyncio
    async def test_invalid_config_returns_failure(self, context: ExecutionContext) -> None:
        """Test execute refuses to run an invalid configuration."""
        node = create_default_registry().create_node_instance({"id": "l", "type": "loop", "config": {"step": 0}})
        assert node is not None
        result = await node.execute(context, {})
        assert not result.success
        assert "step must be greater than 0" in result.error
        assert context.logs[-1].node_id == "l"
