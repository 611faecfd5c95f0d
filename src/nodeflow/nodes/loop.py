# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Loop controller node.

Drives four iteration disciplines over the subgraph attached to the
``loop_body`` port:

- ``for``: counted iterations from ``start`` to ``end`` by ``step``
- ``for_each``: one iteration per item of a list field
- ``while``: iterate while a guard condition holds
- ``until``: iterate until a guard condition holds

Every iteration runs on a fork of the execution context. Sequential loops
reconcile each fork before the next iteration starts, so a body can drive
a while/until guard through variables. Parallel for-each loops run whole
batches on forks of the pre-batch snapshot and reconcile them in index
order once the batch has settled. ``max_iterations`` bounds every
discipline regardless of the guard.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import Field

from nodeflow.engine.conditions import Condition, ConditionEvaluator, validate_condition
from nodeflow.engine.context import ExecutionContext
from nodeflow.engine.paths import UNDEFINED, resolve_field
from nodeflow.exceptions import ExecutionError
from nodeflow.nodes.base import ExecutionResult, Node, NodeConfig, create_port

logger = logging.getLogger(__name__)

LoopType = Literal["for", "while", "until", "for_each"]
LoopState = Literal["idle", "initializing", "iterating", "draining", "completed", "error"]


class LoopConfig(NodeConfig):
    loop_type: LoopType = "for"

    start: int | float = 0
    end: int | float = 10
    step: int | float = 1

    array_field: str | None = None
    """Field (or ``$variable``) holding the list for for_each loops."""

    item_variable: str = "item"
    index_variable: str = "index"

    condition: Condition | None = None
    """Guard for while/until loops."""

    max_iterations: int = 1000
    break_on_error: bool = False
    collect_results: bool = True
    parallel_execution: bool = False
    batch_size: int = 10
    loop_body_nodes: list[str] = Field(default_factory=list)


@dataclass
class LoopExecutionState:
    """Observable progress of the most recent loop execution."""

    state: LoopState = "idle"
    current_iteration: int = 0
    total_iterations: int | None = None
    error_count: int = 0
    last_error: str | None = None


@dataclass
class _Iteration:
    index: int
    bindings: dict[str, Any]


@dataclass
class _IterationOutcome:
    index: int
    success: bool
    output: Any = None
    error: str | None = None
    fork: ExecutionContext | None = field(default=None, repr=False)


class LoopNode(Node):
    """Iterates over its ``loop_body`` subgraph.

    The result is the input data plus ``loop_result`` with ``iterations``,
    ``results``, ``errors``, ``execution_time`` and ``completed``, routed
    to ``completed``. When ``break_on_error`` stops the loop the result is
    a failure routed to ``error``.
    """

    node_type = "loop"
    category = "utilities"
    display_name = "Loop"
    description = "Repeats its body for a count, a collection, or while a condition holds"
    config_model = LoopConfig
    output_ports = (
        create_port("loop_body", kind="control", description="Executed once per iteration"),
        create_port("completed", data_type="object", description="Loop results"),
        create_port("error", data_type="object", description="Taken when an error breaks the loop"),
    )

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._execution_state = LoopExecutionState()
        self._stop_requested = False
        super().__init__(*args, **kwargs)

    def _validate_config(self, config: LoopConfig) -> list[str]:
        errors = []
        if config.loop_type == "for":
            if config.step <= 0:
                errors.append("step must be greater than 0")
            if config.start >= config.end:
                errors.append("start must be less than end")
        elif config.loop_type == "for_each":
            if not config.array_field:
                errors.append("array_field is required for for_each loops")
            if not config.item_variable:
                errors.append("item_variable is required for for_each loops")
            if not config.index_variable:
                errors.append("index_variable is required for for_each loops")
        else:
            if config.condition is None:
                errors.append(f"condition is required for {config.loop_type} loops")
            else:
                errors.extend(validate_condition(config.condition, "condition"))

        if config.max_iterations <= 0:
            errors.append("max_iterations must be greater than 0")
        if config.batch_size <= 0:
            errors.append("batch_size must be greater than 0")
        if config.parallel_execution and config.loop_type != "for_each":
            errors.append("parallel_execution is only supported for for_each loops")
        return errors

    def get_execution_state(self) -> LoopExecutionState:
        return LoopExecutionState(**vars(self._execution_state))

    def stop_execution(self) -> None:
        """Request that the running loop stop before its next iteration."""
        self._stop_requested = True

    async def run(self, context: ExecutionContext, data: Any, config: LoopConfig) -> ExecutionResult:
        self._stop_requested = False
        self._execution_state = LoopExecutionState(state="initializing")
        started = time.monotonic()
        base = data if isinstance(data, dict) else {"value": data}

        items: list[Any] | None = None
        if config.loop_type == "for_each":
            source = resolve_field(config.array_field or "", data, context.variables)
            if not isinstance(source, (list, tuple)):
                found = "nothing" if source is UNDEFINED else type(source).__name__
                message = f"Field '{config.array_field}' must be an array, got {found}"
                self._execution_state.state = "error"
                self._execution_state.last_error = message
                entry = self.log(context, "error", message)
                return ExecutionResult.failure(message, data=base, next_nodes=["error"], logs=[entry])
            items = list(source)

        binding_names = self._binding_names(config)
        results: list[Any] = []
        errors: list[dict[str, Any]] = []
        self._execution_state.total_iterations = self._planned_count(config, items)
        self._execution_state.state = "iterating"

        if config.parallel_execution and items is not None:
            broke = await self._run_parallel(context, base, config, items, binding_names, results, errors)
        else:
            broke = await self._run_sequential(context, data, base, config, items, binding_names, results, errors)

        iterations = self._execution_state.current_iteration
        loop_result = {
            "iterations": iterations,
            "results": results if config.collect_results else [],
            "errors": errors,
            "execution_time": time.monotonic() - started,
            "completed": not broke and not self._stop_requested,
        }
        output = {**base, "loop_result": loop_result}

        if broke:
            self._execution_state.state = "error"
            message = f"Loop stopped after iteration {errors[-1]['iteration']}: {errors[-1]['error']}"
            entry = self.log(context, "error", message, {"iterations": iterations})
            return ExecutionResult.failure(message, data=output, next_nodes=["error"], logs=[entry])

        self._execution_state.state = "completed"
        entry = self.log(
            context,
            "info",
            f"Loop completed {iterations} iteration(s) with {len(errors)} error(s)",
        )
        return ExecutionResult.ok(output, ["completed"], logs=[entry])

    @staticmethod
    def _binding_names(config: LoopConfig) -> set[str]:
        if config.loop_type == "for":
            return {"i", "iteration"}
        if config.loop_type == "for_each":
            return {config.item_variable, config.index_variable, "iteration"}
        return {"iteration"}

    @staticmethod
    def _planned_count(config: LoopConfig, items: list[Any] | None) -> int | None:
        if config.loop_type == "for":
            return min(max(math.ceil((config.end - config.start) / config.step), 0), config.max_iterations)
        if items is not None:
            return min(len(items), config.max_iterations)
        return None

    def _counted(self, config: LoopConfig) -> Iterator[_Iteration]:
        count = self._planned_count(config, None) or 0
        for k in range(count):
            yield _Iteration(k, {"i": config.start + k * config.step, "iteration": k})

    def _each(self, config: LoopConfig, items: list[Any]) -> Iterator[_Iteration]:
        for k, item in enumerate(items[: config.max_iterations]):
            yield _Iteration(
                k,
                {config.item_variable: item, config.index_variable: k, "iteration": k},
            )

    def _guarded(
        self, context: ExecutionContext, data: Any, config: LoopConfig, condition: Condition
    ) -> Iterator[_Iteration]:
        evaluator = ConditionEvaluator()
        for k in range(config.max_iterations):
            holds = evaluator.evaluate_condition(condition, data, context.variables)
            if holds if config.loop_type == "until" else not holds:
                return
            yield _Iteration(k, {"iteration": k})
        self.log(
            context,
            "warning",
            f"{config.loop_type} loop reached max_iterations ({config.max_iterations})",
        )

    async def _run_iteration(
        self,
        context: ExecutionContext,
        base: dict[str, Any],
        iteration: _Iteration,
    ) -> _IterationOutcome:
        fork = context.fork(iteration.bindings)
        iteration_data = {**base, **iteration.bindings}
        try:
            if context.body_runner is None:
                result = ExecutionResult.ok(iteration_data)
            else:
                result = await context.body_runner(self.id, "loop_body", iteration_data, fork)
        except Exception as e:
            logger.exception(f"Loop '{self.id}' iteration {iteration.index} raised")
            return _IterationOutcome(iteration.index, False, error=f"{type(e).__name__}: {e}", fork=fork)
        if not result.success:
            return _IterationOutcome(
                iteration.index, False, output=result.data, error=result.error or "Iteration failed", fork=fork
            )
        return _IterationOutcome(iteration.index, True, output=result.data, fork=fork)

    def _record(
        self,
        context: ExecutionContext,
        outcome: _IterationOutcome,
        binding_names: set[str],
        config: LoopConfig,
        results: list[Any],
        errors: list[dict[str, Any]],
    ) -> None:
        if outcome.fork is not None:
            context.merge_from(outcome.fork, exclude=binding_names)
        self._execution_state.current_iteration += 1
        if outcome.success:
            if config.collect_results:
                results.append(outcome.output)
            return
        errors.append({"iteration": outcome.index, "error": outcome.error})
        self._execution_state.error_count += 1
        self._execution_state.last_error = outcome.error
        self.log(context, "warning", f"Iteration {outcome.index} failed: {outcome.error}")

    async def _run_sequential(
        self,
        context: ExecutionContext,
        data: Any,
        base: dict[str, Any],
        config: LoopConfig,
        items: list[Any] | None,
        binding_names: set[str],
        results: list[Any],
        errors: list[dict[str, Any]],
    ) -> bool:
        if config.loop_type == "for":
            iterations = self._counted(config)
        elif items is not None:
            iterations = self._each(config, items)
        elif config.condition is not None:
            iterations = self._guarded(context, data, config, config.condition)
        else:
            raise ExecutionError(f"{config.loop_type} loop '{self.id}' has no condition", node_id=self.id)

        for iteration in iterations:
            if self._stop_requested:
                self.log(context, "info", f"Loop stopped before iteration {iteration.index}")
                break
            outcome = await self._run_iteration(context, base, iteration)
            self._record(context, outcome, binding_names, config, results, errors)
            if not outcome.success and config.break_on_error:
                return True
        return False

    async def _run_parallel(
        self,
        context: ExecutionContext,
        base: dict[str, Any],
        config: LoopConfig,
        items: list[Any],
        binding_names: set[str],
        results: list[Any],
        errors: list[dict[str, Any]],
    ) -> bool:
        pending = list(self._each(config, items))
        for offset in range(0, len(pending), config.batch_size):
            if self._stop_requested:
                self.log(context, "info", f"Loop stopped before iteration {offset}")
                break
            batch = pending[offset : offset + config.batch_size]
            self._execution_state.state = "draining"
            outcomes = await asyncio.gather(
                *(self._run_iteration(context, base, iteration) for iteration in batch)
            )
            self._execution_state.state = "iterating"
            broke = False
            for outcome in sorted(outcomes, key=lambda o: o.index):
                self._record(context, outcome, binding_names, config, results, errors)
                broke = broke or (not outcome.success and config.break_on_error)
            if broke:
                return True
        return False
