# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Branching nodes.

ConditionalLogicNode routes to one of several named paths, each guarded by
a condition group, falling back to a default path. ConditionNode is the
single-comparison true/false branch.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any

from pydantic import BaseModel, Field

from nodeflow.engine.conditions import (
    Condition,
    ConditionEvaluator,
    ConditionGroup,
    Operator,
    ValueType,
    available_operators,
    validate_condition,
    validate_group,
)
from nodeflow.engine.context import ExecutionContext
from nodeflow.nodes.base import ExecutionResult, Node, NodeConfig, Port, create_port


class PathDef(BaseModel):
    """A named output path guarded by a condition group."""

    name: str = ""
    description: str = ""
    condition_group_id: str | None = None


class ConditionalLogicConfig(NodeConfig):
    condition_groups: list[ConditionGroup] = Field(default_factory=list)
    paths: dict[str, PathDef] = Field(default_factory=dict)
    default_path: str = "default"
    case_sensitive: bool = False


class ConditionalLogicNode(Node):
    """Routes input to the first path whose condition group matches.

    Non-default paths are evaluated in declaration order. The winning path
    id becomes the output port to follow; when none match, the default
    path is taken. The output is the input data plus ``condition_result``.
    """

    node_type = "conditional_logic"
    category = "conditions"
    display_name = "Conditional Logic"
    description = "Branches on nested AND/OR condition groups"
    config_model = ConditionalLogicConfig
    output_ports = (create_port("default", description="Taken when no path matches"),)

    def get_output_ports(self) -> list[Port]:
        ports = {}
        paths = self._config.get("paths") or {}
        for path_id, path in paths.items():
            label = path.get("name", "") if isinstance(path, dict) else ""
            ports[path_id] = create_port(path_id, description=label)
        default_path = self._config.get("default_path", "default")
        ports.setdefault(default_path, create_port(default_path, description="Taken when no path matches"))
        return list(ports.values())

    def _validate_config(self, config: ConditionalLogicConfig) -> list[str]:
        errors = []
        if not config.condition_groups:
            errors.append("At least one condition group is required")

        group_ids = set()
        for index, group in enumerate(config.condition_groups):
            if group.id:
                group_ids.add(group.id)
            else:
                errors.append(f"condition_groups.{index}: id is required")
            errors.extend(validate_group(group, f"condition_groups.{index}"))

        for path_id, path in config.paths.items():
            if path_id == config.default_path:
                continue
            if not path.condition_group_id:
                errors.append(f"paths.{path_id}: condition_group_id is required")
            elif path.condition_group_id not in group_ids:
                errors.append(
                    f"paths.{path_id}: condition group '{path.condition_group_id}' does not exist"
                )
        return errors

    async def run(
        self, context: ExecutionContext, data: Any, config: ConditionalLogicConfig
    ) -> ExecutionResult:
        evaluator = ConditionEvaluator(case_sensitive=config.case_sensitive)
        groups = {group.id: group for group in config.condition_groups}
        base = data if isinstance(data, dict) else {"value": data}

        for path_id, path in config.paths.items():
            if path_id == config.default_path:
                continue
            group = groups.get(path.condition_group_id)
            if group is None:
                continue
            if evaluator.evaluate_group(group, data, context.variables):
                entry = self.log(context, "info", f"Condition matched path '{path_id}'")
                result = {"path": path_id, "path_name": path.name or path_id, "matched": True}
                return ExecutionResult.ok({**base, "condition_result": result}, [path_id], logs=[entry])

        default = config.paths.get(config.default_path)
        entry = self.log(context, "info", f"No condition matched, taking '{config.default_path}'")
        result = {
            "path": config.default_path,
            "path_name": default.name if default and default.name else config.default_path,
            "matched": False,
        }
        return ExecutionResult.ok({**base, "condition_result": result}, [config.default_path], logs=[entry])

    def add_condition_group(self, group: ConditionGroup | dict[str, Any]) -> str:
        """Append a condition group and return its id."""
        data = group.model_dump() if isinstance(group, ConditionGroup) else dict(group)
        data.setdefault("id", None)
        if not data["id"]:
            data["id"] = f"group_{uuid.uuid4().hex[:8]}"
        groups = copy.deepcopy(self._config.get("condition_groups") or [])
        groups.append(data)
        self.update_configuration(condition_groups=groups)
        return data["id"]

    def remove_condition_group(self, group_id: str) -> None:
        """Remove a condition group and every path that references it."""
        groups = [
            g for g in copy.deepcopy(self._config.get("condition_groups") or []) if g.get("id") != group_id
        ]
        paths = {
            pid: p
            for pid, p in copy.deepcopy(self._config.get("paths") or {}).items()
            if p.get("condition_group_id") != group_id
        }
        self.update_configuration(condition_groups=groups, paths=paths)

    def add_path(self, path_id: str, name: str, condition_group_id: str, description: str = "") -> None:
        paths = copy.deepcopy(self._config.get("paths") or {})
        paths[path_id] = {
            "name": name,
            "description": description,
            "condition_group_id": condition_group_id,
        }
        self.update_configuration(paths=paths)

    def remove_path(self, path_id: str) -> None:
        """Remove a path.

        Raises:
            ValueError: If ``path_id`` is the default path.
        """
        if path_id == self._config.get("default_path", "default"):
            raise ValueError("The default path cannot be removed")
        paths = copy.deepcopy(self._config.get("paths") or {})
        paths.pop(path_id, None)
        self.update_configuration(paths=paths)

    @staticmethod
    def get_available_operators(value_type: str) -> list[str]:
        return available_operators(value_type)


class ConditionConfig(NodeConfig):
    field: str = ""
    operator: Operator = "equals"
    value: Any = None
    type: ValueType = "string"
    case_sensitive: bool = False


class ConditionNode(Node):
    """Routes to ``true`` or ``false`` on a single comparison."""

    node_type = "condition"
    category = "conditions"
    display_name = "Condition"
    description = "Branches on a single field comparison"
    config_model = ConditionConfig
    output_ports = (
        create_port("true", description="Taken when the comparison holds"),
        create_port("false", description="Taken otherwise"),
    )

    def _condition(self, config: ConditionConfig) -> Condition:
        return Condition(field=config.field, operator=config.operator, value=config.value, type=config.type)

    def _validate_config(self, config: ConditionConfig) -> list[str]:
        return validate_condition(self._condition(config), "condition")

    async def run(self, context: ExecutionContext, data: Any, config: ConditionConfig) -> ExecutionResult:
        evaluator = ConditionEvaluator(case_sensitive=config.case_sensitive)
        outcome = evaluator.evaluate_condition(self._condition(config), data, context.variables)
        port = "true" if outcome else "false"
        entry = self.log(context, "debug", f"Condition on '{config.field}' evaluated {outcome}")
        return ExecutionResult.ok(data, [port], logs=[entry])
