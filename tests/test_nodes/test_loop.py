"""Unit tests for the LoopNode.

Tests cover:
- Counted, for-each, while and until iteration
- The max_iterations ceiling
- Error collection and break_on_error
- Parallel batches bounded by batch_size, isolated, and reconciled in index order
- Stopping a running loop and observing its state
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from nodeflow.engine.context import ExecutionContext
from nodeflow.exceptions import ExecutionError
from nodeflow.nodes.base import ExecutionResult
from nodeflow.nodes.loop import LoopConfig, LoopNode


def loop_result(result: ExecutionResult) -> dict[str, Any]:
    return result.data["loop_result"]


class TestCountedLoops:
    """Tests for for loops."""

    @pytest.mark.asyncio
    async def test_iteration_count(self, context: ExecutionContext) -> None:
        """Test a for loop runs ceil((end - start) / step) times."""
        node = LoopNode("loop", {"loop_type": "for", "start": 0, "end": 10, "step": 3})
        result = await node.execute(context, {})
        assert result.next_nodes == ["completed"]
        assert loop_result(result)["iterations"] == 4
        assert [r["i"] for r in loop_result(result)["results"]] == [0, 3, 6, 9]

    @pytest.mark.asyncio
    async def test_max_iterations_ceiling(self, context: ExecutionContext) -> None:
        """Test max_iterations bounds a counted loop."""
        node = LoopNode("loop", {"loop_type": "for", "start": 0, "end": 100, "max_iterations": 7})
        result = await node.execute(context, {})
        assert loop_result(result)["iterations"] == 7

    @pytest.mark.asyncio
    async def test_collect_results_false(self, context: ExecutionContext) -> None:
        """Test results are dropped when not collected."""
        node = LoopNode("loop", {"loop_type": "for", "end": 3, "collect_results": False})
        result = await node.execute(context, {})
        assert loop_result(result)["results"] == []
        assert loop_result(result)["iterations"] == 3

    def test_validation(self) -> None:
        """Test invalid counted loops are rejected."""
        errors = LoopNode("loop", {"loop_type": "for", "start": 5, "end": 1, "parallel_execution": True}).errors
        assert "start must be less than end" in errors
        assert "parallel_execution is only supported for for_each loops" in errors


class TestForEachLoops:
    """Tests for for_each loops."""

    @pytest.mark.asyncio
    async def test_binds_item_and_index(self, context: ExecutionContext) -> None:
        """Test each iteration sees its item and index."""
        node = LoopNode(
            "loop",
            {"loop_type": "for_each", "array_field": "names", "item_variable": "name", "index_variable": "n"},
        )
        result = await node.execute(context, {"names": ["a", "b"]})
        assert [(r["name"], r["n"]) for r in loop_result(result)["results"]] == [("a", 0), ("b", 1)]
        assert "name" not in context.variables

    @pytest.mark.asyncio
    async def test_variable_array_field(self, context: ExecutionContext) -> None:
        """Test the array can come from a variable."""
        context.set_variable("queue", [1, 2, 3])
        node = LoopNode("loop", {"loop_type": "for_each", "array_field": "$queue"})
        result = await node.execute(context, {})
        assert loop_result(result)["iterations"] == 3

    @pytest.mark.asyncio
    async def test_non_array_fails(self, context: ExecutionContext) -> None:
        """Test a non-list field routes to error."""
        node = LoopNode("loop", {"loop_type": "for_each", "array_field": "items"})
        result = await node.execute(context, {"items": "nope"})
        assert not result.success
        assert result.next_nodes == ["error"]
        assert "must be an array" in result.error
        assert node.get_execution_state().state == "error"


class TestGuardedLoops:
    """Tests for while and until loops driven by the body."""

    @pytest.mark.asyncio
    async def test_while_loop_reads_body_writes(self, context: ExecutionContext) -> None:
        """Test variables written by the body drive the guard."""
        context.set_variable("count", 0)

        async def body(loop_id: str, port: str, data: Any, fork: ExecutionContext) -> ExecutionResult:
            fork.set_variable("count", fork.get_variable("count") + 1)
            return ExecutionResult.ok(data)

        context.body_runner = body
        node = LoopNode(
            "loop",
            {
                "loop_type": "while",
                "condition": {"field": "$count", "operator": "less_than", "value": 3, "type": "number"},
            },
        )
        result = await node.execute(context, {})
        assert loop_result(result)["iterations"] == 3
        assert context.get_variable("count") == 3

    @pytest.mark.asyncio
    async def test_until_stops_at_max_iterations(self, context: ExecutionContext) -> None:
        """Test a guard that never holds is bounded by max_iterations."""
        node = LoopNode(
            "loop",
            {
                "loop_type": "until",
                "max_iterations": 5,
                "condition": {"field": "done", "operator": "equals", "value": True, "type": "boolean"},
            },
        )
        result = await node.execute(context, {"done": False})
        assert result.success
        assert loop_result(result)["iterations"] == 5
        assert any("reached max_iterations" in e.message for e in context.logs)

    def test_guard_required(self) -> None:
        """Test while loops need a condition."""
        assert "condition is required for while loops" in LoopNode("loop", {"loop_type": "while"}).errors

    @pytest.mark.asyncio
    async def test_run_without_guard_raises(self, context: ExecutionContext) -> None:
        """Test running an unvalidated guard-less loop raises a typed error."""
        node = LoopNode("loop", {"loop_type": "until"})
        with pytest.raises(ExecutionError, match="no condition"):
            await node.run(context, {}, LoopConfig(loop_type="until"))


class TestLoopErrors:
    """Tests for iteration failures."""

    @staticmethod
    async def fail_on_second(loop_id: str, port: str, data: Any, fork: ExecutionContext) -> ExecutionResult:
        if data["iteration"] == 1:
            return ExecutionResult.failure("bad item", data=data)
        return ExecutionResult.ok(data)

    @pytest.mark.asyncio
    async def test_errors_collected(self, context: ExecutionContext) -> None:
        """Test failures are collected and the loop continues."""
        context.body_runner = self.fail_on_second
        result = await LoopNode("loop", {"loop_type": "for", "end": 4}).execute(context, {})
        assert result.next_nodes == ["completed"]
        assert loop_result(result)["errors"] == [{"iteration": 1, "error": "bad item"}]
        assert loop_result(result)["iterations"] == 4

    @pytest.mark.asyncio
    async def test_break_on_error(self, context: ExecutionContext) -> None:
        """Test break_on_error stops the loop and routes to error."""
        context.body_runner = self.fail_on_second
        node = LoopNode("loop", {"loop_type": "for", "end": 4, "break_on_error": True})
        result = await node.execute(context, {})
        assert not result.success
        assert result.next_nodes == ["error"]
        assert loop_result(result)["iterations"] == 2
        assert loop_result(result)["completed"] is False
        assert node.get_execution_state().error_count == 1

    @pytest.mark.asyncio
    async def test_raising_body_is_an_iteration_error(self, context: ExecutionContext) -> None:
        """Test an exception in the body is recorded, not propagated."""

        async def body(loop_id: str, port: str, data: Any, fork: ExecutionContext) -> ExecutionResult:
            raise KeyError("missing")

        context.body_runner = body
        result = await LoopNode("loop", {"loop_type": "for", "end": 2}).execute(context, {})
        assert len(loop_result(result)["errors"]) == 2
        assert "KeyError" in loop_result(result)["errors"][0]["error"]


class TestParallelLoops:
    """Tests for parallel for_each loops."""

    @pytest.mark.asyncio
    async def test_results_in_index_order(self, context: ExecutionContext) -> None:
        """Test out-of-order completion still reconciles in index order."""

        async def body(loop_id: str, port: str, data: Any, fork: ExecutionContext) -> ExecutionResult:
            await asyncio.sleep(0.01 * (5 - data["index"]))
            fork.set_variable("last", data["item"])
            fork.set_variable(f"seen_{data['item']}", True)
            return ExecutionResult.ok({"item": data["item"]})

        context.body_runner = body
        node = LoopNode(
            "loop",
            {"loop_type": "for_each", "array_field": "items", "parallel_execution": True, "batch_size": 2},
        )
        result = await node.execute(context, {"items": ["a", "b", "c", "d", "e"]})
        assert [r["item"] for r in loop_result(result)["results"]] == ["a", "b", "c", "d", "e"]
        assert context.get_variable("last") == "e"
        assert all(context.get_variable(f"seen_{x}") for x in "abcde")

    @pytest.mark.asyncio
    async def test_batch_size_bounds_concurrency(self, context: ExecutionContext) -> None:
        """Test no more than batch_size iterations are in flight at once."""
        in_flight = 0
        peak = 0

        async def body(loop_id: str, port: str, data: Any, fork: ExecutionContext) -> ExecutionResult:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return ExecutionResult.ok(data)

        context.body_runner = body
        node = LoopNode(
            "loop",
            {"loop_type": "for_each", "array_field": "items", "parallel_execution": True, "batch_size": 2},
        )
        result = await node.execute(context, {"items": list(range(5))})
        assert loop_result(result)["iterations"] == 5
        assert peak == 2

    @pytest.mark.asyncio
    async def test_siblings_isolated_within_batch(self, context: ExecutionContext) -> None:
        """Test an iteration sees the pre-batch value, not a sibling's write."""
        context.set_variable("owner", "nobody")

        async def body(loop_id: str, port: str, data: Any, fork: ExecutionContext) -> ExecutionResult:
            if data["index"] == 0:
                fork.set_variable("owner", "first")
            else:
                await asyncio.sleep(0.02)
            return ExecutionResult.ok({"saw": fork.get_variable("owner"), "item": fork.get_variable("item")})

        context.body_runner = body
        node = LoopNode(
            "loop",
            {"loop_type": "for_each", "array_field": "items", "parallel_execution": True, "batch_size": 2},
        )
        result = await node.execute(context, {"items": ["a", "b", "c"]})
        results = loop_result(result)["results"]
        assert [r["item"] for r in results] == ["a", "b", "c"]
        assert [r["saw"] for r in results] == ["first", "nobody", "first"]
        assert context.get_variable("owner") == "first"

    @pytest.mark.asyncio
    async def test_deletion_reconciled(self, context: ExecutionContext) -> None:
        """Test a variable deleted by an iteration is gone after the loop."""
        context.set_variable("pending", True)

        async def body(loop_id: str, port: str, data: Any, fork: ExecutionContext) -> ExecutionResult:
            if data["index"] == 1:
                del fork.variables["pending"]
            return ExecutionResult.ok(data)

        context.body_runner = body
        node = LoopNode(
            "loop",
            {"loop_type": "for_each", "array_field": "items", "parallel_execution": True, "batch_size": 3},
        )
        await node.execute(context, {"items": [1, 2, 3]})
        assert "pending" not in context.variables


class TestLoopControl:
    """Tests for stopping and observing loops."""

    @pytest.mark.asyncio
    async def test_stop_execution(self, context: ExecutionContext) -> None:
        """Test stop_execution ends the loop before the next iteration."""
        node = LoopNode("loop", {"loop_type": "for", "end": 10})

        async def body(loop_id: str, port: str, data: Any, fork: ExecutionContext) -> ExecutionResult:
            node.stop_execution()
            return ExecutionResult.ok(data)

        context.body_runner = body
        result = await node.execute(context, {})
        assert loop_result(result)["iterations"] == 1
        assert loop_result(result)["completed"] is False

    @pytest.mark.asyncio
    async def test_execution_state(self, context: ExecutionContext) -> None:
        """Test the state snapshot after a finished loop."""
        node = LoopNode("loop", {"loop_type": "for", "end": 3})
        assert node.get_execution_state().state == "idle"
        await node.execute(context, {})
        state = node.get_execution_state()
        assert state.state == "completed"
        assert state.current_iteration == 3
        assert state.total_iterations == 3
