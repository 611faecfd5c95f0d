# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Condition evaluation engine.

This module defines the Condition and ConditionGroup models and the
ConditionEvaluator that walks nested AND/OR trees over typed field
comparisons. It is used by branching nodes, loop guards, and transform
rule guards.

Operators never raise on bad input. Non-numeric operands to numeric
operators, missing fields, and invalid regex patterns all evaluate to
false (``not_*`` operators negate their positive counterpart).
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from nodeflow.engine.paths import UNDEFINED, resolve_field
from nodeflow.exceptions import ConditionError

logger = logging.getLogger(__name__)

Operator = Literal[
    "equals",
    "not_equals",
    "greater_than",
    "less_than",
    "greater_than_or_equal",
    "less_than_or_equal",
    "contains",
    "not_contains",
    "starts_with",
    "ends_with",
    "is_empty",
    "is_not_empty",
    "in",
    "not_in",
    "matches_regex",
    "is_null",
    "is_not_null",
]

ValueType = Literal["string", "number", "boolean", "date", "array", "object"]

EQUALITY_OPERATORS = ("equals", "not_equals")
ORDERING_OPERATORS = (
    "greater_than",
    "less_than",
    "greater_than_or_equal",
    "less_than_or_equal",
)
STRING_OPERATORS = ("contains", "not_contains", "starts_with", "ends_with")
EMPTINESS_OPERATORS = ("is_empty", "is_not_empty")
MEMBERSHIP_OPERATORS = ("in", "not_in")
NULLNESS_OPERATORS = ("is_null", "is_not_null")

VALUELESS_OPERATORS = frozenset(EMPTINESS_OPERATORS + NULLNESS_OPERATORS)
"""Operators that do not take a comparison value."""

OPERATORS_BY_TYPE: dict[str, tuple[str, ...]] = {
    "string": EQUALITY_OPERATORS
    + STRING_OPERATORS
    + EMPTINESS_OPERATORS
    + ("matches_regex",)
    + MEMBERSHIP_OPERATORS
    + NULLNESS_OPERATORS,
    "number": EQUALITY_OPERATORS + ORDERING_OPERATORS + MEMBERSHIP_OPERATORS + NULLNESS_OPERATORS,
    "boolean": EQUALITY_OPERATORS + NULLNESS_OPERATORS,
    "date": EQUALITY_OPERATORS + ORDERING_OPERATORS + NULLNESS_OPERATORS,
    "array": ("contains", "not_contains") + EMPTINESS_OPERATORS + NULLNESS_OPERATORS,
    "object": EMPTINESS_OPERATORS + NULLNESS_OPERATORS,
}


class Condition(BaseModel):
    """A single typed field comparison."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None

    field: str
    """Dot path into the data value, or a ``$variable`` reference."""

    operator: Operator = "equals"

    value: Any = None
    """Comparison value. Ignored by emptiness and nullness operators."""

    type: ValueType = "string"
    """Declared value type, which constrains the legal operators."""


class ConditionGroup(BaseModel):
    """An AND/OR combination of conditions and nested groups."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    operator: Literal["AND", "OR"] = "AND"
    conditions: list[Union[Condition, ConditionGroup]] = Field(default_factory=list)


ConditionGroup.model_rebuild()


def available_operators(value_type: str) -> list[str]:
    """Return the operators legal for a declared value type."""
    return list(OPERATORS_BY_TYPE.get(value_type, OPERATORS_BY_TYPE["string"]))


def is_empty(value: Any) -> bool:
    """Return True for None, UNDEFINED, and empty strings, sequences or mappings."""
    if value is None or value is UNDEFINED:
        return True
    if isinstance(value, (str, list, tuple, set, dict)):
        return len(value) == 0
    return False


def strict_equals(left: Any, right: Any) -> bool:
    """Compare two values without cross-type coercion.

    UNDEFINED equals only UNDEFINED, and booleans never equal numbers.
    """
    if left is UNDEFINED or right is UNDEFINED:
        return left is UNDEFINED and right is UNDEFINED
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def to_number(value: Any) -> float | None:
    """Coerce a value to float, or None if it is not numeric."""
    if value is None or value is UNDEFINED or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def to_datetime(value: Any) -> datetime | None:
    """Coerce an ISO-8601 string or datetime to a datetime, or None."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def compile_pattern(pattern: Any) -> re.Pattern[str] | None:
    """Compile a regex pattern, returning None if it is invalid."""
    if not isinstance(pattern, str):
        return None
    try:
        return re.compile(pattern)
    except re.error:
        return None


class ConditionEvaluator:
    """Evaluates conditions and condition groups against data and variables.

    Example:
        >>> evaluator = ConditionEvaluator()
        >>> group = ConditionGroup(
        ...     operator="AND",
        ...     conditions=[Condition(field="age", operator="greater_than", value=18, type="number")],
        ... )
        >>> evaluator.evaluate_group(group, {"age": 21}, {})
        True
    """

    def __init__(self, case_sensitive: bool = False) -> None:
        """Initialize the evaluator.

        Args:
            case_sensitive: Whether string operators compare case-sensitively.
        """
        self.case_sensitive = case_sensitive

    def evaluate_group(
        self,
        group: ConditionGroup,
        data: Any,
        variables: Mapping[str, Any] | None = None,
    ) -> bool:
        """Evaluate a condition group.

        AND short-circuits on the first false child; OR on the first true
        child. An empty AND group is true and an empty OR group is false.

        Raises:
            ConditionError: If the group contains itself.
        """
        return self._evaluate_group(group, data, variables or {}, set())

    def _evaluate_group(
        self,
        group: ConditionGroup,
        data: Any,
        variables: Mapping[str, Any],
        active: set[int],
    ) -> bool:
        marker = id(group)
        if marker in active:
            raise ConditionError(
                f"Condition group '{group.id or '<anonymous>'}' contains itself",
                suggestion="Condition groups must form a tree; remove the cyclic reference",
            )
        active.add(marker)
        try:
            if group.operator == "AND":
                return all(self._evaluate_entry(entry, data, variables, active) for entry in group.conditions)
            return any(self._evaluate_entry(entry, data, variables, active) for entry in group.conditions)
        finally:
            active.discard(marker)

    def _evaluate_entry(
        self,
        entry: Condition | ConditionGroup,
        data: Any,
        variables: Mapping[str, Any],
        active: set[int],
    ) -> bool:
        if isinstance(entry, ConditionGroup):
            return self._evaluate_group(entry, data, variables, active)
        return self.evaluate_condition(entry, data, variables)

    def evaluate_condition(
        self,
        condition: Condition,
        data: Any,
        variables: Mapping[str, Any] | None = None,
    ) -> bool:
        """Evaluate a single condition.

        Args:
            condition: The condition to evaluate.
            data: Data value the field path is resolved against.
            variables: Variable store for ``$`` references.

        Returns:
            The boolean outcome.
        """
        actual = resolve_field(condition.field, data, variables)
        return self.compare(actual, condition.operator, condition.value, condition.type)

    def compare(self, actual: Any, operator: str, expected: Any, value_type: str = "string") -> bool:
        """Apply an operator to a resolved value and a comparison value."""
        if operator == "equals":
            return self._equals(actual, expected, value_type)
        if operator == "not_equals":
            return not self._equals(actual, expected, value_type)
        if operator in ORDERING_OPERATORS:
            return self._ordering(actual, operator, expected, value_type)
        if operator == "contains":
            return self._contains(actual, expected)
        if operator == "not_contains":
            return not self._contains(actual, expected)
        if operator == "starts_with":
            return self._affix(actual, expected, str.startswith)
        if operator == "ends_with":
            return self._affix(actual, expected, str.endswith)
        if operator == "is_empty":
            return is_empty(actual)
        if operator == "is_not_empty":
            return not is_empty(actual)
        if operator == "in":
            return isinstance(expected, (list, tuple)) and any(strict_equals(actual, v) for v in expected)
        if operator == "not_in":
            return not isinstance(expected, (list, tuple)) or not any(
                strict_equals(actual, v) for v in expected
            )
        if operator == "matches_regex":
            return self._matches(actual, expected)
        if operator == "is_null":
            return actual is None or actual is UNDEFINED
        if operator == "is_not_null":
            return actual is not None and actual is not UNDEFINED

        logger.warning(f"Unknown condition operator '{operator}' evaluated as false")
        return False

    def _normalize(self, value: str) -> str:
        return value if self.case_sensitive else value.lower()

    def _equals(self, actual: Any, expected: Any, value_type: str) -> bool:
        if value_type == "date":
            left, right = to_datetime(actual), to_datetime(expected)
            if left is not None and right is not None:
                return left == right
        return strict_equals(actual, expected)

    def _ordering(self, actual: Any, operator: str, expected: Any, value_type: str) -> bool:
        left: Any
        right: Any
        if value_type == "date":
            left, right = to_datetime(actual), to_datetime(expected)
        else:
            left, right = to_number(actual), to_number(expected)
        if left is None or right is None:
            return False
        try:
            if operator == "greater_than":
                return left > right
            if operator == "less_than":
                return left < right
            if operator == "greater_than_or_equal":
                return left >= right
            return left <= right
        except TypeError:
            # naive and aware datetimes
            return False

    def _contains(self, actual: Any, expected: Any) -> bool:
        if isinstance(actual, (list, tuple, set)):
            if isinstance(expected, str) and not self.case_sensitive:
                return any(isinstance(v, str) and v.lower() == expected.lower() for v in actual)
            return any(strict_equals(v, expected) for v in actual)
        if isinstance(actual, str) and expected is not None and expected is not UNDEFINED:
            return self._normalize(str(expected)) in self._normalize(actual)
        return False

    def _affix(self, actual: Any, expected: Any, test: Any) -> bool:
        if not isinstance(actual, str) or expected is None or expected is UNDEFINED:
            return False
        return bool(test(self._normalize(actual), self._normalize(str(expected))))

    def _matches(self, actual: Any, pattern: Any) -> bool:
        if actual is None or actual is UNDEFINED:
            return False
        compiled = compile_pattern(pattern)
        if compiled is None:
            logger.warning(f"Invalid regex pattern {pattern!r} in condition evaluated as false")
            return False
        return compiled.search(str(actual)) is not None


def validate_condition(condition: Condition, path: str = "condition") -> list[str]:
    """Return configuration errors for a single condition."""
    errors = []
    if not condition.field or not condition.field.strip():
        errors.append(f"{path}: field is required")
    if condition.operator not in VALUELESS_OPERATORS and condition.value is None:
        errors.append(f"{path}: value is required for operator '{condition.operator}'")
    if condition.operator not in OPERATORS_BY_TYPE.get(condition.type, ()):
        errors.append(
            f"{path}: operator '{condition.operator}' is not valid for type '{condition.type}'"
        )
    if condition.operator == "matches_regex" and compile_pattern(condition.value) is None:
        errors.append(f"{path}: invalid regex pattern {condition.value!r}")
    return errors


def validate_group(group: ConditionGroup, path: str = "group") -> list[str]:
    """Return configuration errors for a condition group and its children."""
    errors = []
    if not group.conditions:
        errors.append(f"{path}: condition group must contain at least one condition")
    for index, entry in enumerate(group.conditions):
        child_path = f"{path}.conditions.{index}"
        if isinstance(entry, ConditionGroup):
            errors.extend(validate_group(entry, child_path))
        else:
            errors.extend(validate_condition(entry, child_path))
    return errors
