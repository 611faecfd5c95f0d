"""Unit tests for branching nodes.

Tests cover:
- Path selection in declaration order and the default path
- Dynamic output ports
- Configuration validation
- Editing condition groups and paths
- The single-comparison condition node
"""

from __future__ import annotations

from typing import Any

import pytest

from nodeflow.engine.context import ExecutionContext
from nodeflow.nodes.conditional import ConditionalLogicNode, ConditionNode


def tier_config() -> dict[str, Any]:
    return {
        "condition_groups": [
            {
                "id": "vip",
                "operator": "OR",
                "conditions": [
                    {"field": "tier", "operator": "equals", "value": "gold"},
                    {"field": "spend", "operator": "greater_than", "value": 1000, "type": "number"},
                ],
            },
            {
                "id": "known",
                "operator": "AND",
                "conditions": [{"field": "tier", "operator": "is_not_empty"}],
            },
        ],
        "paths": {
            "vip_path": {"name": "VIP", "condition_group_id": "vip"},
            "known_path": {"name": "Known", "condition_group_id": "known"},
        },
        "default_path": "default",
    }


class TestConditionalLogicNode:
    """Tests for ConditionalLogicNode."""

    @pytest.mark.asyncio
    async def test_first_matching_path_wins(self, context: ExecutionContext) -> None:
        """Test paths are tried in declaration order."""
        node = ConditionalLogicNode("branch", tier_config())
        result = await node.execute(context, {"tier": "gold"})
        assert result.next_nodes == ["vip_path"]
        assert result.data["condition_result"] == {"path": "vip_path", "path_name": "VIP", "matched": True}
        assert result.data["tier"] == "gold"

    @pytest.mark.asyncio
    async def test_second_path(self, context: ExecutionContext) -> None:
        """Test a later path matches when earlier ones do not."""
        result = await ConditionalLogicNode("branch", tier_config()).execute(context, {"tier": "silver"})
        assert result.next_nodes == ["known_path"]

    @pytest.mark.asyncio
    async def test_default_path(self, context: ExecutionContext) -> None:
        """Test the default path is taken when nothing matches."""
        result = await ConditionalLogicNode("branch", tier_config()).execute(context, {})
        assert result.next_nodes == ["default"]
        assert result.data["condition_result"]["matched"] is False

    @pytest.mark.asyncio
    async def test_variable_condition(self, context: ExecutionContext) -> None:
        """Test conditions can read variables."""
        config = tier_config()
        config["condition_groups"][0]["conditions"][0]["field"] = "$tier"
        context.set_variable("tier", "gold")
        result = await ConditionalLogicNode("branch", config).execute(context, {})
        assert result.next_nodes == ["vip_path"]

    def test_output_ports_follow_paths(self) -> None:
        """Test each path and the default path is an output port."""
        node = ConditionalLogicNode("branch", tier_config())
        assert [p.name for p in node.get_output_ports()] == ["vip_path", "known_path", "default"]

    def test_validation_errors(self) -> None:
        """Test missing groups and dangling path references are reported."""
        node = ConditionalLogicNode("branch", {"paths": {"p": {"condition_group_id": "ghost"}}})
        errors = node.validate().errors
        assert "At least one condition group is required" in errors
        assert any("'ghost' does not exist" in e for e in errors)

    def test_edit_groups_and_paths(self) -> None:
        """Test adding and removing groups and paths keeps the node valid."""
        node = ConditionalLogicNode("branch")
        group_id = node.add_condition_group(
            {"operator": "AND", "conditions": [{"field": "x", "operator": "equals", "value": 1, "type": "number"}]}
        )
        node.add_path("x_path", "X", group_id)
        assert node.is_valid
        assert node.has_output_port("x_path")

        node.remove_path("x_path")
        assert not node.has_output_port("x_path")
        with pytest.raises(ValueError):
            node.remove_path("default")

        node.add_path("x_path", "X", group_id)
        node.remove_condition_group(group_id)
        assert not node.has_output_port("x_path")

    def test_available_operators(self) -> None:
        """Test the operator list exposed for editors."""
        assert "is_null" in ConditionalLogicNode.get_available_operators("boolean")


class TestConditionNode:
    """Tests for ConditionNode."""

    @pytest.mark.asyncio
    async def test_true_and_false(self, context: ExecutionContext) -> None:
        """Test routing to true or false."""
        node = ConditionNode("c", {"field": "age", "operator": "greater_than", "value": 18, "type": "number"})
        assert (await node.execute(context, {"age": 21})).next_nodes == ["true"]
        assert (await node.execute(context, {"age": 12})).next_nodes == ["false"]
