# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Data transform node."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from nodeflow.engine.context import ExecutionContext
from nodeflow.engine.conditions import validate_condition
from nodeflow.engine.transforms import (
    ErrorHandling,
    OutputFormat,
    TransformPipeline,
    TransformRule,
    resolve_operation,
)
from nodeflow.nodes.base import ExecutionResult, Node, NodeConfig, create_port


class DataTransformConfig(NodeConfig):
    rules: list[TransformRule] = Field(default_factory=list)
    error_handling: ErrorHandling = "stop"
    default_value: Any = None
    preserve_original: bool = True
    output_format: OutputFormat = "object"
    case_sensitive: bool = False
    batch_processing: bool = False
    batch_size: int = 100


class DataTransformNode(Node):
    """Applies an ordered list of transform rules to its input.

    With ``batch_processing`` and a list input, the rules run once per chunk
    of ``batch_size`` items (sources see ``{"items": chunk}``) and the chunk
    outputs are concatenated in order.
    """

    node_type = "data_transform"
    category = "utilities"
    display_name = "Data Transform"
    description = "Maps, filters, reshapes and formats data"
    config_model = DataTransformConfig
    output_ports = (
        create_port("transformed", data_type="object", description="The transformed data"),
        create_port("error", data_type="object", description="Taken when a rule fails under 'stop'"),
    )

    def _validate_config(self, config: DataTransformConfig) -> list[str]:
        errors = []
        if not config.rules:
            errors.append("At least one transform rule is required")
        for index, rule in enumerate(config.rules):
            if resolve_operation(rule.operation) is None:
                errors.append(f"rules.{index}: unknown operation '{rule.operation}'")
            if rule.condition is not None:
                errors.extend(validate_condition(rule.condition, f"rules.{index}.condition"))
        if config.batch_processing and config.batch_size <= 0:
            errors.append("batch_size must be greater than 0")
        return errors

    def _pipeline(self, config: DataTransformConfig) -> TransformPipeline:
        return TransformPipeline(
            config.rules,
            error_handling=config.error_handling,
            default_value=config.default_value,
            preserve_original=config.preserve_original,
            output_format=config.output_format,
            case_sensitive=config.case_sensitive,
        )

    async def run(
        self, context: ExecutionContext, data: Any, config: DataTransformConfig
    ) -> ExecutionResult:
        pipeline = self._pipeline(config)

        if config.batch_processing and isinstance(data, list):
            output: list[Any] = []
            for offset in range(0, len(data), config.batch_size):
                chunk = data[offset : offset + config.batch_size]
                outcome = pipeline.run({"items": chunk}, context.variables)
                if not outcome.success:
                    return self._failed(context, data, outcome.error)
                if isinstance(outcome.value, list):
                    output.extend(outcome.value)
                else:
                    output.append(outcome.value)
            entry = self.log(
                context,
                "info",
                f"Transformed {len(data)} item(s) in batches of {config.batch_size}",
            )
            return ExecutionResult.ok(output, ["transformed"], logs=[entry])

        outcome = pipeline.run(data, context.variables)
        if not outcome.success:
            return self._failed(context, data, outcome.error)

        entries = [self.log(context, "warning", f"Recovered from: {e.message}") for e in outcome.failures]
        entries.append(
            self.log(
                context,
                "info",
                f"Applied {len(config.rules) - len(outcome.skipped)} of {len(config.rules)} transform rule(s)",
            )
        )
        return ExecutionResult.ok(outcome.value, ["transformed"], logs=entries)

    def _failed(self, context: ExecutionContext, data: Any, error: Any) -> ExecutionResult:
        message = f"Transform failed: {error.message}"
        entry = self.log(
            context,
            "error",
            message,
            {"rule_index": error.rule_index, "operation": error.operation},
        )
        return ExecutionResult.failure(message, data=data, next_nodes=["error"], logs=[entry])
