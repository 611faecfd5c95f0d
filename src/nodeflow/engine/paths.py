# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Field path resolution over structured data.

Paths use dot notation (``user.address.city``). Integer segments index
into lists (``items.0.name``). A path prefixed with ``$`` reads from the
variable store instead of the data value (``$customer.tier``).

Missing paths resolve to the ``UNDEFINED`` sentinel, which is distinct
from ``None``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

VARIABLE_PREFIX = "$"


class _Undefined:
    """Sentinel type for a field path that does not resolve."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Undefined:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Undefined:
        return self

    def __reduce__(self) -> str:
        return "UNDEFINED"


UNDEFINED: Any = _Undefined()


def split_path(path: str) -> list[str]:
    """Split a dot path into segments, ignoring empty segments."""
    return [part for part in path.split(".") if part]


def get_path(value: Any, path: str | list[str]) -> Any:
    """Read a dot path from a value.

    Args:
        value: The root mapping or list.
        path: Dot path string or pre-split segments. An empty path returns
            the root value.

    Returns:
        The resolved value, or UNDEFINED if any segment is missing.
    """
    parts = split_path(path) if isinstance(path, str) else path
    current = value
    for part in parts:
        if isinstance(current, Mapping):
            if part not in current:
                return UNDEFINED
            current = current[part]
        elif isinstance(current, (list, tuple)):
            try:
                index = int(part)
            except ValueError:
                return UNDEFINED
            if not -len(current) <= index < len(current):
                return UNDEFINED
            current = current[index]
        else:
            return UNDEFINED
    return current


def has_path(value: Any, path: str) -> bool:
    """Return True if the dot path resolves to a defined value."""
    return get_path(value, path) is not UNDEFINED


def set_path(target: dict[str, Any], path: str, new_value: Any) -> dict[str, Any]:
    """Write a value at a dot path, creating intermediate mappings.

    Intermediate mappings along the path are replaced by shallow copies
    before being written to, so nested structures shared with the caller's
    input are never mutated. The root mapping itself is modified in place.

    Args:
        target: Root mapping to write into.
        path: Dot path of the field to write.
        new_value: The value to store.

    Returns:
        The root mapping.
    """
    parts = split_path(path)
    if not parts:
        raise ValueError("Cannot set an empty field path")

    current = target
    for part in parts[:-1]:
        child = current.get(part)
        child = dict(child) if isinstance(child, Mapping) else {}
        current[part] = child
        current = child
    current[parts[-1]] = new_value
    return target


def is_variable_reference(field: str) -> bool:
    """Return True if the field refers to the variable store."""
    return field.startswith(VARIABLE_PREFIX)


def resolve_field(field: str, data: Any, variables: Mapping[str, Any] | None = None) -> Any:
    """Resolve a condition or mapping field against data and variables.

    Args:
        field: Dot path into ``data`` or a ``$name.path`` variable reference.
        data: The data value flowing through the node.
        variables: The variable store of the execution context.

    Returns:
        The resolved value, or UNDEFINED if it does not exist.
    """
    if is_variable_reference(field):
        return get_path(variables or {}, field[len(VARIABLE_PREFIX):])
    return get_path(data, field)
