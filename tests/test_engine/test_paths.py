"""Unit tests for field path resolution.

Tests cover:
- Dot paths through mappings and lists
- UNDEFINED for missing segments
- Variable references
- Copy-on-write writes with set_path
"""

from __future__ import annotations

import copy

import pytest

from nodeflow.engine.paths import UNDEFINED, get_path, has_path, resolve_field, set_path


class TestGetPath:
    """Tests for get_path."""

    def test_nested_mapping(self) -> None:
        """Test reading a nested mapping value."""
        data = {"user": {"address": {"city": "Oslo"}}}
        assert get_path(data, "user.address.city") == "Oslo"

    def test_list_index(self) -> None:
        """Test integer segments index into lists."""
        data = {"items": [{"name": "a"}, {"name": "b"}]}
        assert get_path(data, "items.1.name") == "b"

    def test_missing_segment_is_undefined(self) -> None:
        """Test a missing segment yields UNDEFINED, not None."""
        data = {"user": {"name": None}}
        assert get_path(data, "user.email") is UNDEFINED
        assert get_path(data, "user.name") is None

    def test_non_numeric_list_segment(self) -> None:
        """Test a non-numeric segment on a list is UNDEFINED."""
        assert get_path({"items": [1, 2]}, "items.first") is UNDEFINED

    def test_out_of_range_index(self) -> None:
        """Test an out-of-range index is UNDEFINED."""
        assert get_path({"items": [1, 2]}, "items.5") is UNDEFINED

    def test_empty_path_returns_root(self) -> None:
        """Test an empty path returns the value itself."""
        data = {"a": 1}
        assert get_path(data, "") is data

    def test_undefined_is_falsy_and_survives_deepcopy(self) -> None:
        """Test the sentinel is falsy and stays a singleton."""
        assert not UNDEFINED
        assert copy.deepcopy(UNDEFINED) is UNDEFINED


class TestResolveField:
    """Tests for resolve_field."""

    def test_variable_reference(self) -> None:
        """Test $name.path reads from the variable store."""
        variables = {"customer": {"tier": "gold"}}
        assert resolve_field("$customer.tier", {"tier": "silver"}, variables) == "gold"

    def test_data_reference(self) -> None:
        """Test a plain path reads from the data value."""
        assert resolve_field("tier", {"tier": "silver"}, {"tier": "gold"}) == "silver"

    def test_has_path(self) -> None:
        """Test has_path distinguishes None from missing."""
        assert has_path({"a": None}, "a")
        assert not has_path({"a": None}, "b")


class TestSetPath:
    """Tests for set_path."""

    def test_creates_intermediate_mappings(self) -> None:
        """Test intermediate mappings are created."""
        target: dict = {}
        set_path(target, "a.b.c", 1)
        assert target == {"a": {"b": {"c": 1}}}

    def test_does_not_mutate_shared_nested_values(self) -> None:
        """Test nested mappings shared with the caller are copied before writing."""
        original = {"user": {"name": "Ada"}}
        target = dict(original)
        set_path(target, "user.name", "Grace")
        assert target["user"]["name"] == "Grace"
        assert original["user"]["name"] == "Ada"

    def test_empty_path_raises(self) -> None:
        """Test an empty path is rejected."""
        with pytest.raises(ValueError):
            set_path({}, "", 1)
