# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Static checks for script node source.

A script body is wrapped as the body of a function taking ``data``,
``variables`` and ``log`` and checked with ``ast`` before it is ever sent
to the runner process. The guard rejects the constructs that reach
outside the restricted namespace: imports, ``global``/``nonlocal``,
dunder names and attributes, and calls to the reflective builtins.
"""

from __future__ import annotations

import ast
import textwrap

SCRIPT_FUNCTION = "_script_main"

ALLOWED_MODULES = ("math", "json", "datetime", "re")

BLOCKED_CALLS = frozenset(
    {
        "eval",
        "exec",
        "compile",
        "open",
        "getattr",
        "setattr",
        "delattr",
        "globals",
        "locals",
        "vars",
        "dir",
        "__import__",
        "breakpoint",
        "input",
    }
)


def wrap_source(code: str) -> str:
    """Wrap a script body as the ``_script_main(data, variables, log)`` function."""
    body = textwrap.dedent(code).strip("\n") or "pass"
    return f"def {SCRIPT_FUNCTION}(data, variables, log):\n{textwrap.indent(body, '    ')}\n"


def check_source(code: str) -> list[str]:
    """Return every problem found in a script body.

    Line numbers refer to the unwrapped body.
    """
    try:
        tree = ast.parse(wrap_source(code), filename="<script>")
    except SyntaxError as e:
        line = (e.lineno or 2) - 1
        return [f"Syntax error on line {line}: {e.msg}"]

    errors = []
    for node in ast.walk(tree):
        line = getattr(node, "lineno", 1) - 1
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            errors.append(f"line {line}: imports are not allowed, use the pre-loaded modules")
        elif isinstance(node, (ast.Global, ast.Nonlocal)):
            errors.append(f"line {line}: global and nonlocal statements are not allowed")
        elif isinstance(node, ast.Attribute) and node.attr.startswith("__"):
            errors.append(f"line {line}: access to '{node.attr}' is not allowed")
        elif isinstance(node, ast.Name) and node.id.startswith("__"):
            errors.append(f"line {line}: name '{node.id}' is not allowed")
        elif isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id in BLOCKED_CALLS:
            errors.append(f"line {line}: function '{node.func.id}' is not allowed")
    return errors
