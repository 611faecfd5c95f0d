# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Data transform pipeline.

This module provides the TransformRule model, the table of pure operation
functions, and TransformPipeline, which applies an ordered list of rules
to an accumulator value under a configurable error policy.

Each operation is a function ``(value, params, env) -> result`` that never
mutates its inputs. Array-shaped operations raise TransformError when the
source value is not a list.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from nodeflow.engine.conditions import Condition, ConditionEvaluator, compile_pattern
from nodeflow.engine.expressions import evaluate_expression
from nodeflow.engine.paths import UNDEFINED, get_path, has_path, resolve_field, set_path
from nodeflow.exceptions import ExpressionError, TransformError

logger = logging.getLogger(__name__)

ErrorHandling = Literal["stop", "skip", "default_value"]
OutputFormat = Literal["object", "array", "primitive"]


class TransformRule(BaseModel):
    """One declarative step in a transform pipeline."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None

    operation: str
    """Operation tag, e.g. ``map``, ``sort`` or ``calculate``."""

    source_field: str | None = None
    """Dot path of the input value. When unset the whole input is used."""

    target_field: str | None = None
    """Dot path the result is written to. Defaults to source_field, then ``result``."""

    params: dict[str, Any] = Field(default_factory=dict)
    """Operation-specific parameters."""

    condition: Condition | None = None
    """Optional guard. The rule is skipped when it evaluates false."""


@dataclass
class TransformEnv:
    """Side inputs available to operation functions."""

    data: Any
    """The original input of the pipeline."""

    variables: Mapping[str, Any]
    accumulator: dict[str, Any] = field(default_factory=dict)
    evaluator: ConditionEvaluator = field(default_factory=ConditionEvaluator)


Operation = Callable[[Any, dict[str, Any], TransformEnv], Any]


def _require_list(value: Any, operation: str) -> list[Any]:
    if not isinstance(value, (list, tuple)):
        raise TransformError(
            f"Operation '{operation}' requires an array input, got {type(value).__name__}",
            operation=operation,
        )
    return list(value)


def _item_field(item: Any, field_path: str | None) -> Any:
    if not field_path:
        return item
    value = get_path(item, field_path)
    return None if value is UNDEFINED else value


def _reference(value: Any, env: TransformEnv) -> Any:
    """Resolve ``$var`` and ``data.path`` string references in params."""
    if isinstance(value, str):
        if value.startswith("$"):
            resolved = resolve_field(value, env.data, env.variables)
            return None if resolved is UNDEFINED else resolved
        if value.startswith("data."):
            resolved = get_path(env.data, value[len("data."):])
            return None if resolved is UNDEFINED else resolved
    return value


def _re_flags(flags: str | None) -> int:
    result = 0
    for flag in flags or "":
        if flag == "i":
            result |= re.IGNORECASE
        elif flag == "m":
            result |= re.MULTILINE
        elif flag == "s":
            result |= re.DOTALL
        elif flag != "g":
            raise TransformError(f"Unsupported regex flag '{flag}'")
    return result


def _compile(pattern: Any, flags: str | None, operation: str) -> re.Pattern[str]:
    if not isinstance(pattern, str) or not pattern:
        raise TransformError(f"Operation '{operation}' requires a 'pattern' parameter", operation=operation)
    try:
        return re.compile(pattern, _re_flags(flags))
    except re.error as e:
        raise TransformError(f"Invalid regex pattern {pattern!r}: {e}", operation=operation) from e


def _numbers(values: list[Any]) -> list[float]:
    numbers = []
    for value in values:
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            numbers.append(value)
            continue
        try:
            numbers.append(float(value))
        except (TypeError, ValueError):
            continue
    return numbers


# ---------------------------------------------------------------------------
# Array operations
# ---------------------------------------------------------------------------


def op_map(value: Any, params: dict[str, Any], env: TransformEnv) -> list[Any]:
    items = _require_list(value, "map")
    expression = params.get("expression")
    pluck = params.get("field")
    if not expression and not pluck:
        raise TransformError("Operation 'map' requires 'expression' or 'field'", operation="map")

    result = []
    for index, item in enumerate(items):
        if expression:
            result.append(
                evaluate_expression(
                    expression,
                    data=env.data,
                    variables=env.variables,
                    names={"item": item, "index": index},
                )
            )
        else:
            result.append(_item_field(item, pluck))
    return result


def op_filter(value: Any, params: dict[str, Any], env: TransformEnv) -> list[Any]:
    items = _require_list(value, "filter")
    raw = params.get("condition")
    if raw is None:
        return [item for item in items if item]
    condition = raw if isinstance(raw, Condition) else Condition.model_validate(raw)
    return [item for item in items if env.evaluator.evaluate_condition(condition, item, env.variables)]


def op_reduce(value: Any, params: dict[str, Any], env: TransformEnv) -> Any:
    items = _require_list(value, "reduce")
    operation = params.get("operation", "sum")
    values = [_item_field(item, params.get("field")) for item in items]
    initial = params.get("initial_value")

    if operation == "count":
        return len(values)
    if operation == "concat":
        separator = params.get("separator", "")
        joined = separator.join("" if v is None else str(v) for v in values)
        return f"{initial}{joined}" if initial is not None else joined

    numbers = _numbers(values)
    if operation == "sum":
        return sum(numbers, initial if isinstance(initial, (int, float)) else 0)
    if operation == "avg":
        return sum(numbers) / len(numbers) if numbers else 0
    if operation == "min":
        return min(numbers) if numbers else initial
    if operation == "max":
        return max(numbers) if numbers else initial
    raise TransformError(f"Unknown reduce operation '{operation}'", operation="reduce")


def op_sort(value: Any, params: dict[str, Any], env: TransformEnv) -> list[Any]:
    items = _require_list(value, "sort")
    sort_field = params.get("field")
    descending = str(params.get("direction", "asc")).lower() == "desc"

    present = [item for item in items if _item_field(item, sort_field) is not None]
    missing = [item for item in items if _item_field(item, sort_field) is None]

    def key(item: Any) -> tuple[int, Any]:
        v = _item_field(item, sort_field)
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return (0, v)
        return (1, str(v))

    try:
        ordered = sorted(present, key=key, reverse=descending)
    except TypeError as e:
        raise TransformError(f"Cannot sort values: {e}", operation="sort") from e
    return ordered + missing


def op_group_by(value: Any, params: dict[str, Any], env: TransformEnv) -> dict[str, list[Any]]:
    items = _require_list(value, "group_by")
    group_field = params.get("field")
    if not group_field:
        raise TransformError("Operation 'group_by' requires a 'field' parameter", operation="group_by")
    groups: dict[str, list[Any]] = {}
    for item in items:
        groups.setdefault(str(_item_field(item, group_field)), []).append(item)
    return groups


def op_flatten(value: Any, params: dict[str, Any], env: TransformEnv) -> list[Any]:
    items = _require_list(value, "flatten")
    depth = int(params.get("depth", 1))

    def flatten(values: list[Any], remaining: int) -> list[Any]:
        result: list[Any] = []
        for v in values:
            if isinstance(v, (list, tuple)) and remaining > 0:
                result.extend(flatten(list(v), remaining - 1))
            else:
                result.append(v)
        return result

    return flatten(items, depth)


def _hashable(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    return (type(value).__name__, value) if isinstance(value, bool) else value


def op_unique(value: Any, params: dict[str, Any], env: TransformEnv) -> list[Any]:
    items = _require_list(value, "unique")
    unique_field = params.get("field")
    seen: set[Any] = set()
    result = []
    for item in items:
        key = _hashable(_item_field(item, unique_field))
        if key not in seen:
            seen.add(key)
            result.append(item)
    return result


def op_aggregate(value: Any, params: dict[str, Any], env: TransformEnv) -> dict[str, Any]:
    items = _require_list(value, "aggregate")
    operations = params.get("operations") or {}
    if not isinstance(operations, dict) or not operations:
        raise TransformError("Operation 'aggregate' requires an 'operations' mapping", operation="aggregate")
    return {
        key: op_reduce(
            items,
            {"operation": agg.get("type", "sum"), "field": agg.get("field")},
            env,
        )
        for key, agg in operations.items()
    }


# ---------------------------------------------------------------------------
# Scalar and object operations
# ---------------------------------------------------------------------------


def op_merge(value: Any, params: dict[str, Any], env: TransformEnv) -> dict[str, Any]:
    source = _reference(params.get("source"), env)
    base = value if isinstance(value, Mapping) else {}
    if source is None:
        source = {}
    if not isinstance(source, Mapping):
        raise TransformError("Operation 'merge' requires a mapping 'source'", operation="merge")
    if params.get("strategy", "shallow") == "deep":
        return _deep_merge(dict(base), source)
    return {**base, **source}


def _deep_merge(target: dict[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    result = dict(target)
    for key, v in source.items():
        if isinstance(v, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = _deep_merge(dict(result[key]), v)
        else:
            result[key] = v
    return result


def op_split(value: Any, params: dict[str, Any], env: TransformEnv) -> Any:
    delimiter = params.get("delimiter", ",")
    split_field = params.get("field")
    if split_field:
        items = _require_list(value, "split")
        return [str(_item_field(item, split_field) or "").split(delimiter) for item in items]
    if not isinstance(value, str):
        raise TransformError(
            f"Operation 'split' requires a string input, got {type(value).__name__}",
            operation="split",
        )
    return value.split(delimiter)


def op_format(value: Any, params: dict[str, Any], env: TransformEnv) -> Any:
    fmt = params.get("format")
    if fmt == "json":
        return json.dumps(value, indent=params.get("indent"), default=str)
    if fmt == "number":
        number = _numbers([value])
        if not number:
            raise TransformError(f"Cannot format {value!r} as a number", operation="format")
        return f"{number[0]:.{int(params.get('decimals', 2))}f}"
    if fmt == "date":
        parsed = op_convert_type(value, {"to": "date"}, env)
        return datetime.fromisoformat(parsed).strftime(params.get("pattern", "%Y-%m-%d"))
    if value is None:
        return None
    text = str(value)
    if fmt == "uppercase":
        return text.upper()
    if fmt == "lowercase":
        return text.lower()
    if fmt == "capitalize":
        return text[:1].upper() + text[1:].lower()
    if fmt == "trim":
        return text.strip()
    raise TransformError(f"Unknown format '{fmt}'", operation="format")


_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
    "email": lambda v: isinstance(v, str) and re.fullmatch(r"[^@\s]+@[^@\s]+\.[^@\s]+", v) is not None,
}


def op_validate(value: Any, params: dict[str, Any], env: TransformEnv) -> dict[str, Any]:
    errors: list[str] = []
    for rule in params.get("rules") or []:
        path = rule.get("field", "")
        v = get_path(value, path) if path else value
        missing = v is UNDEFINED or v is None or v == ""
        if missing:
            if rule.get("required"):
                errors.append(f"{path} is required")
            continue
        expected = rule.get("type")
        if expected and expected in _TYPE_CHECKS and not _TYPE_CHECKS[expected](v):
            errors.append(f"{path} must be of type {expected}")
            continue
        size = len(v) if isinstance(v, (str, list, dict)) else v
        if rule.get("min") is not None and isinstance(size, (int, float)) and size < rule["min"]:
            errors.append(f"{path} must be at least {rule['min']}")
        if rule.get("max") is not None and isinstance(size, (int, float)) and size > rule["max"]:
            errors.append(f"{path} must be at most {rule['max']}")
        if rule.get("pattern"):
            compiled = compile_pattern(rule["pattern"])
            if compiled is None:
                errors.append(f"{path} has an invalid pattern {rule['pattern']!r}")
            elif not compiled.search(str(v)):
                errors.append(f"{path} does not match pattern {rule['pattern']}")
    return {"is_valid": not errors, "errors": errors, "data": value}


def op_convert_type(value: Any, params: dict[str, Any], env: TransformEnv) -> Any:
    target = params.get("to") or params.get("type")
    try:
        if target == "string":
            if isinstance(value, (dict, list)):
                return json.dumps(value, default=str)
            return "" if value is None else str(value)
        if target == "number":
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, (int, float)):
                return value
            number = float(str(value).strip())
            return int(number) if number.is_integer() else number
        if target == "boolean":
            if isinstance(value, str):
                return value.strip().lower() in {"true", "1", "yes", "on"}
            return bool(value)
        if target == "date":
            if isinstance(value, (datetime, date)):
                return value.isoformat()
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return datetime.fromtimestamp(value).isoformat()
            return datetime.fromisoformat(str(value).replace("Z", "+00:00")).isoformat()
        if target == "array":
            if isinstance(value, list):
                return value
            if isinstance(value, str) and value.strip().startswith("["):
                return json.loads(value)
            return [] if value is None else [value]
        if target == "object":
            if isinstance(value, dict):
                return value
            if isinstance(value, str):
                parsed = json.loads(value)
                if isinstance(parsed, dict):
                    return parsed
            return {"value": value}
    except (TypeError, ValueError, OverflowError, OSError) as e:
        raise TransformError(f"Cannot convert {value!r} to {target}: {e}", operation="convert_type") from e
    raise TransformError(f"Unknown conversion target '{target}'", operation="convert_type")


def op_extract(value: Any, params: dict[str, Any], env: TransformEnv) -> list[Any]:
    pattern = _compile(params.get("pattern"), params.get("flags"), "extract")
    if value is None:
        return []
    text = str(value)
    if params.get("all", True):
        return [m.group(0) for m in pattern.finditer(text)]
    match = pattern.search(text)
    if match is None:
        return []
    return [match.group(0), *match.groups()]


def op_replace(value: Any, params: dict[str, Any], env: TransformEnv) -> Any:
    pattern = _compile(params.get("pattern"), params.get("flags"), "replace")
    if value is None:
        return None
    count = 0 if "g" in (params.get("flags") or "g") else 1
    return pattern.sub(str(params.get("replacement", "")), str(value), count=int(params.get("count", count)))


def op_calculate(value: Any, params: dict[str, Any], env: TransformEnv) -> Any:
    expression = params.get("expression")
    if not expression:
        raise TransformError("Operation 'calculate' requires an 'expression'", operation="calculate")
    return evaluate_expression(
        expression,
        data=env.data,
        variables=env.variables,
        names={"value": value, "result": env.accumulator},
    )


OPERATIONS: dict[str, Operation] = {
    "map": op_map,
    "filter": op_filter,
    "reduce": op_reduce,
    "sort": op_sort,
    "group_by": op_group_by,
    "merge": op_merge,
    "split": op_split,
    "flatten": op_flatten,
    "unique": op_unique,
    "aggregate": op_aggregate,
    "format": op_format,
    "validate": op_validate,
    "convert_type": op_convert_type,
    "extract": op_extract,
    "replace": op_replace,
    "calculate": op_calculate,
}

OPERATION_ALIASES = {
    "group": "group_by",
    "dedupe": "unique",
    "convert": "convert_type",
}


def resolve_operation(name: str) -> Operation | None:
    return OPERATIONS.get(OPERATION_ALIASES.get(name, name))


@dataclass
class PipelineOutcome:
    """Result of running a transform pipeline.

    Attributes:
        value: Final accumulator after output formatting.
        error: The error that stopped the pipeline, if any.
        skipped: Indices of rules skipped by a false guard or an error.
        failures: Errors of rules recovered by ``skip`` or ``default_value``.
    """

    value: Any
    error: TransformError | None = None
    skipped: list[int] = field(default_factory=list)
    failures: list[TransformError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None


class TransformPipeline:
    """Applies an ordered list of transform rules to a data value.

    Example:
        >>> pipeline = TransformPipeline(
        ...     [TransformRule(operation="format", source_field="name", params={"format": "uppercase"})]
        ... )
        >>> pipeline.run({"name": "ada"}, {}).value
        {'name': 'ADA'}
    """

    def __init__(
        self,
        rules: list[TransformRule],
        error_handling: ErrorHandling = "stop",
        default_value: Any = None,
        preserve_original: bool = True,
        output_format: OutputFormat = "object",
        case_sensitive: bool = False,
    ) -> None:
        self.rules = rules
        self.error_handling = error_handling
        self.default_value = default_value
        self.preserve_original = preserve_original
        self.output_format = output_format
        self.evaluator = ConditionEvaluator(case_sensitive=case_sensitive)

    def run(self, data: Any, variables: Mapping[str, Any] | None = None) -> PipelineOutcome:
        """Run every rule against ``data``.

        Args:
            data: The original input. Never mutated.
            variables: Variable store for guards, references and expressions.

        Returns:
            The pipeline outcome. With ``error_handling='stop'`` the first
            failing rule sets ``error`` and the original input is returned.
        """
        variables = variables or {}
        if self.preserve_original and isinstance(data, Mapping):
            accumulator: dict[str, Any] = dict(data)
        else:
            accumulator = {}
        env = TransformEnv(data=data, variables=variables, accumulator=accumulator, evaluator=self.evaluator)
        outcome = PipelineOutcome(value=None)

        for index, rule in enumerate(self.rules):
            if rule.condition is not None and not self.evaluator.evaluate_condition(
                rule.condition, data, variables
            ):
                logger.debug(f"Transform rule {index} ({rule.operation}) skipped by guard")
                outcome.skipped.append(index)
                continue

            target = rule.target_field or rule.source_field or "result"
            try:
                result = self._apply(rule, index, accumulator, env)
            except TransformError as e:
                if self.error_handling == "stop":
                    outcome.value = data
                    outcome.error = e
                    return outcome
                outcome.failures.append(e)
                if self.error_handling == "skip":
                    outcome.skipped.append(index)
                    continue
                result = self.default_value
            set_path(accumulator, target, result)

        outcome.value = self._format_output(accumulator)
        return outcome

    def _apply(self, rule: TransformRule, index: int, accumulator: dict[str, Any], env: TransformEnv) -> Any:
        operation = resolve_operation(rule.operation)
        if operation is None:
            raise TransformError(f"Unknown transform operation '{rule.operation}'", rule_index=index)

        if rule.source_field:
            if has_path(accumulator, rule.source_field):
                source = get_path(accumulator, rule.source_field)
            else:
                source = get_path(env.data, rule.source_field)
                source = None if source is UNDEFINED else source
        else:
            source = env.data

        try:
            return operation(source, rule.params, env)
        except TransformError as e:
            e.rule_index = index
            e.operation = e.operation or rule.operation
            raise
        except ExpressionError as e:
            raise TransformError(e.message, rule_index=index, operation=rule.operation) from e
        except Exception as e:
            raise TransformError(
                f"Rule {index} ({rule.operation}) failed: {e}",
                rule_index=index,
                operation=rule.operation,
            ) from e

    def _format_output(self, accumulator: dict[str, Any]) -> Any:
        if self.output_format == "array":
            return list(accumulator.values())
        if self.output_format == "primitive" and len(accumulator) == 1:
            return next(iter(accumulator.values()))
        return accumulator
