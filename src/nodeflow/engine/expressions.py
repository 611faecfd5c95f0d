# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Restricted expression language for calculate and map rules.

Field references (``data.total``, ``item.price``) and variable references
(``$discount``) are resolved first and bound as literal values under
generated names. The rewritten expression is then evaluated by simpleeval
with a fixed function whitelist and no other names, so an expression has
no ambient access to the host process.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from simpleeval import EvalWithCompoundTypes, InvalidExpression

from nodeflow.engine.paths import UNDEFINED, get_path
from nodeflow.exceptions import ExpressionError

SAFE_FUNCTIONS: dict[str, Any] = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "len": len,
    "sum": sum,
    "int": int,
    "float": float,
    "str": str,
    "bool": bool,
}

# $name or $name.path
_VARIABLE_REF = re.compile(r"\$([A-Za-z_]\w*(?:\.\w+)*)")
# data.path or item.path (not preceded by an identifier character or dot)
_FIELD_REF = re.compile(r"(?<![\w.])(data|item)((?:\.\w+)+)")
_STRING_LITERAL = re.compile(r"(\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*')")

_REF_PREFIX = "nf_ref_"


def _bind(value: Any) -> Any:
    return None if value is UNDEFINED else value


def _rewrite(
    expression: str,
    roots: Mapping[str, Any],
    variables: Mapping[str, Any],
) -> tuple[str, dict[str, Any]]:
    """Replace references outside string literals with bound names."""
    bound: dict[str, Any] = {}

    def bind(value: Any) -> str:
        name = f"{_REF_PREFIX}{len(bound)}"
        bound[name] = _bind(value)
        return name

    def replace_variable(match: re.Match[str]) -> str:
        return bind(get_path(variables, match.group(1)))

    def replace_field(match: re.Match[str]) -> str:
        root = roots.get(match.group(1), UNDEFINED)
        return bind(get_path(root, match.group(2)))

    parts = _STRING_LITERAL.split(expression)
    for index in range(0, len(parts), 2):
        segment = _VARIABLE_REF.sub(replace_variable, parts[index])
        parts[index] = _FIELD_REF.sub(replace_field, segment)
    return "".join(parts), bound


def evaluate_expression(
    expression: str,
    *,
    data: Any = None,
    variables: Mapping[str, Any] | None = None,
    names: Mapping[str, Any] | None = None,
) -> Any:
    """Evaluate a restricted expression.

    Args:
        expression: The expression, e.g. ``data.price * (1 - $discount)``.
        data: Value bound to ``data`` and used for ``data.*`` references.
        variables: Variable store for ``$`` references.
        names: Extra bare names such as ``item`` and ``index``.

    Returns:
        The evaluated value.

    Raises:
        ExpressionError: If the expression cannot be parsed or evaluated.
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ExpressionError("Expression must be a non-empty string", expression=str(expression))

    roots: dict[str, Any] = {"data": data}
    roots.update(names or {})
    rewritten, bound = _rewrite(expression, roots, variables or {})

    evaluator = EvalWithCompoundTypes(
        functions=dict(SAFE_FUNCTIONS),
        names={**{k: _bind(v) for k, v in roots.items()}, **bound},
    )
    try:
        return evaluator.eval(rewritten.strip())
    except (InvalidExpression, SyntaxError) as e:
        raise ExpressionError(f"Invalid expression '{expression}': {e}", expression=expression) from e
    except (ArithmeticError, TypeError, ValueError, KeyError, IndexError) as e:
        raise ExpressionError(
            f"Expression '{expression}' failed: {type(e).__name__}: {e}",
            expression=expression,
        ) from e
