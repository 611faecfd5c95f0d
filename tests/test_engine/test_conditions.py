"""Unit tests for the condition evaluation engine.

Tests cover:
- Every operator family
- AND/OR group semantics, nesting, and short-circuiting
- Fail-closed behavior for missing fields and invalid patterns
- Case sensitivity of string operators
- Configuration validation of conditions and groups
"""

from __future__ import annotations

import pytest

from nodeflow.engine.conditions import (
    Condition,
    ConditionEvaluator,
    ConditionGroup,
    available_operators,
    validate_condition,
    validate_group,
)
from nodeflow.exceptions import ConditionError


def cond(field: str, operator: str, value: object = None, type: str = "string") -> Condition:
    return Condition(field=field, operator=operator, value=value, type=type)


class TestOperators:
    """Tests for individual operators."""

    @pytest.fixture
    def evaluator(self) -> ConditionEvaluator:
        return ConditionEvaluator()

    def test_equals_is_strict(self, evaluator: ConditionEvaluator) -> None:
        """Test equality does not coerce across types."""
        assert evaluator.evaluate_condition(cond("n", "equals", 5, "number"), {"n": 5})
        assert not evaluator.evaluate_condition(cond("n", "equals", "5", "number"), {"n": 5})
        assert not evaluator.evaluate_condition(cond("flag", "equals", 1, "boolean"), {"flag": True})

    def test_not_equals(self, evaluator: ConditionEvaluator) -> None:
        """Test not_equals negates equals."""
        assert evaluator.evaluate_condition(cond("status", "not_equals", "open"), {"status": "closed"})

    def test_numeric_ordering(self, evaluator: ConditionEvaluator) -> None:
        """Test ordering operators coerce numeric strings."""
        data = {"age": "21"}
        assert evaluator.evaluate_condition(cond("age", "greater_than", 18, "number"), data)
        assert evaluator.evaluate_condition(cond("age", "greater_than_or_equal", 21, "number"), data)
        assert not evaluator.evaluate_condition(cond("age", "less_than", 21, "number"), data)
        assert evaluator.evaluate_condition(cond("age", "less_than_or_equal", 21, "number"), data)

    def test_non_numeric_ordering_is_false(self, evaluator: ConditionEvaluator) -> None:
        """Test non-numeric operands make ordering operators false."""
        assert not evaluator.evaluate_condition(cond("age", "greater_than", 18, "number"), {"age": "old"})
        assert not evaluator.evaluate_condition(cond("age", "less_than", 18, "number"), {"age": "old"})

    def test_date_ordering(self, evaluator: ConditionEvaluator) -> None:
        """Test dates compare chronologically."""
        data = {"created": "2024-03-01T10:00:00Z"}
        assert evaluator.evaluate_condition(
            cond("created", "greater_than", "2024-01-01T00:00:00Z", "date"), data
        )

    def test_string_contains_is_case_insensitive_by_default(self, evaluator: ConditionEvaluator) -> None:
        """Test contains ignores case unless case_sensitive is set."""
        data = {"message": "I need a REFUND please"}
        assert evaluator.evaluate_condition(cond("message", "contains", "refund"), data)
        strict = ConditionEvaluator(case_sensitive=True)
        assert not strict.evaluate_condition(cond("message", "contains", "refund"), data)

    def test_array_contains(self, evaluator: ConditionEvaluator) -> None:
        """Test contains checks membership for arrays."""
        data = {"tags": ["vip", "beta"]}
        assert evaluator.evaluate_condition(cond("tags", "contains", "VIP", "array"), data)
        assert evaluator.evaluate_condition(cond("tags", "not_contains", "trial", "array"), data)

    def test_starts_and_ends_with(self, evaluator: ConditionEvaluator) -> None:
        """Test affix operators."""
        data = {"email": "ada@example.com"}
        assert evaluator.evaluate_condition(cond("email", "starts_with", "ADA"), data)
        assert evaluator.evaluate_condition(cond("email", "ends_with", ".com"), data)

    def test_emptiness(self, evaluator: ConditionEvaluator) -> None:
        """Test is_empty treats missing, None, and empty collections as empty."""
        assert evaluator.evaluate_condition(cond("missing", "is_empty"), {})
        assert evaluator.evaluate_condition(cond("items", "is_empty", type="array"), {"items": []})
        assert evaluator.evaluate_condition(cond("name", "is_not_empty"), {"name": "x"})

    def test_membership(self, evaluator: ConditionEvaluator) -> None:
        """Test in and not_in against a list value."""
        data = {"tier": "gold"}
        assert evaluator.evaluate_condition(cond("tier", "in", ["gold", "platinum"]), data)
        assert evaluator.evaluate_condition(cond("tier", "not_in", ["silver"]), data)

    def test_nullness(self, evaluator: ConditionEvaluator) -> None:
        """Test is_null holds for None and missing fields."""
        assert evaluator.evaluate_condition(cond("a", "is_null"), {"a": None})
        assert evaluator.evaluate_condition(cond("b", "is_null"), {})
        assert evaluator.evaluate_condition(cond("a", "is_not_null"), {"a": 0})

    def test_regex(self, evaluator: ConditionEvaluator) -> None:
        """Test matches_regex searches the string form."""
        assert evaluator.evaluate_condition(cond("code", "matches_regex", r"^[A-Z]{3}-\d+$"), {"code": "ABC-12"})

    def test_invalid_regex_is_false(self, evaluator: ConditionEvaluator) -> None:
        """Test an invalid pattern evaluates false instead of raising."""
        assert not evaluator.evaluate_condition(cond("code", "matches_regex", "(unclosed"), {"code": "x"})

    def test_missing_field_fails_closed(self, evaluator: ConditionEvaluator) -> None:
        """Test comparisons against a missing field are false."""
        assert not evaluator.evaluate_condition(cond("missing", "equals", "x"), {})
        assert not evaluator.evaluate_condition(cond("missing", "greater_than", 1, "number"), {})

    def test_variable_reference(self, evaluator: ConditionEvaluator) -> None:
        """Test $ fields read from the variable store."""
        condition = cond("$customer.tier", "equals", "gold")
        assert evaluator.evaluate_condition(condition, {}, {"customer": {"tier": "gold"}})


class TestGroups:
    """Tests for AND/OR groups."""

    @pytest.fixture
    def evaluator(self) -> ConditionEvaluator:
        return ConditionEvaluator()

    def test_and_or(self, evaluator: ConditionEvaluator) -> None:
        """Test AND needs every child and OR needs any child."""
        adult = cond("age", "greater_than", 18, "number")
        gold = cond("tier", "equals", "gold")
        data = {"age": 30, "tier": "silver"}
        assert not evaluator.evaluate_group(ConditionGroup(operator="AND", conditions=[adult, gold]), data)
        assert evaluator.evaluate_group(ConditionGroup(operator="OR", conditions=[adult, gold]), data)

    def test_single_condition_group_matches_condition(self, evaluator: ConditionEvaluator) -> None:
        """Test one-condition AND and OR groups agree with the bare condition."""
        condition = cond("age", "greater_than", 18, "number")
        for data in ({"age": 10}, {"age": 30}, {}):
            expected = evaluator.evaluate_condition(condition, data)
            for operator in ("AND", "OR"):
                group = ConditionGroup(operator=operator, conditions=[condition])
                assert evaluator.evaluate_group(group, data) is expected

    def test_empty_groups(self, evaluator: ConditionEvaluator) -> None:
        """Test an empty AND is true and an empty OR is false."""
        assert evaluator.evaluate_group(ConditionGroup(operator="AND"), {})
        assert not evaluator.evaluate_group(ConditionGroup(operator="OR"), {})

    def test_nested_groups(self, evaluator: ConditionEvaluator) -> None:
        """Test groups nest."""
        group = ConditionGroup.model_validate(
            {
                "operator": "AND",
                "conditions": [
                    {"field": "active", "operator": "equals", "value": True, "type": "boolean"},
                    {
                        "operator": "OR",
                        "conditions": [
                            {"field": "tier", "operator": "equals", "value": "gold"},
                            {"field": "spend", "operator": "greater_than", "value": 1000, "type": "number"},
                        ],
                    },
                ],
            }
        )
        assert evaluator.evaluate_group(group, {"active": True, "tier": "silver", "spend": 5000})
        assert not evaluator.evaluate_group(group, {"active": False, "tier": "gold"})

    def test_cyclic_group_raises(self, evaluator: ConditionEvaluator) -> None:
        """Test a group that contains itself raises ConditionError."""
        group = ConditionGroup(id="loop", operator="AND")
        group.conditions.append(group)
        with pytest.raises(ConditionError, match="contains itself"):
            evaluator.evaluate_group(group, {})


class TestValidation:
    """Tests for condition validation helpers."""

    def test_operator_not_valid_for_type(self) -> None:
        """Test type-incompatible operators are reported."""
        errors = validate_condition(cond("age", "starts_with", "1", "number"))
        assert any("not valid for type 'number'" in e for e in errors)

    def test_missing_value(self) -> None:
        """Test operators that need a value report a missing one."""
        errors = validate_condition(cond("age", "greater_than", None, "number"))
        assert any("value is required" in e for e in errors)

    def test_invalid_regex_reported(self) -> None:
        """Test an invalid regex pattern is a configuration error."""
        errors = validate_condition(cond("code", "matches_regex", "(unclosed"))
        assert any("invalid regex" in e for e in errors)

    def test_empty_group_reported(self) -> None:
        """Test an empty group is reported with its path."""
        assert validate_group(ConditionGroup(), "g") == ["g: condition group must contain at least one condition"]

    def test_available_operators(self) -> None:
        """Test operator lists per type."""
        assert "matches_regex" in available_operators("string")
        assert "greater_than" in available_operators("date")
        assert "contains" not in available_operators("number")
