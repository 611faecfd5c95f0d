# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Jinja2-based template renderer for node messages and prompts.

This module provides the TemplateRenderer class used by response,
send-message and AI nodes to render their text bodies against the data
flowing through the node and the run's variables.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateSyntaxError
from jinja2 import UndefinedError as Jinja2UndefinedError

from nodeflow.exceptions import TemplateError

if TYPE_CHECKING:
    from nodeflow.engine.context import ExecutionContext


def build_template_context(context: ExecutionContext, data: Any) -> dict[str, Any]:
    """Build the variables visible to a node template.

    Variables are exposed both under ``variables`` and as top-level names.
    ``data``, ``variables`` and ``metadata`` take precedence over variables
    of the same name.
    """
    return {
        **context.variables,
        "data": data if data is not None else {},
        "variables": context.variables,
        "metadata": context.metadata,
    }


class TemplateRenderer:
    """Jinja2-based template renderer.

    Uses StrictUndefined to fail fast on missing variables and provides
    custom filters for JSON serialization and defaults.

    Example:
        >>> renderer = TemplateRenderer()
        >>> renderer.render("Hello {{ name }}!", {"name": "World"})
        'Hello World!'
    """

    def __init__(self) -> None:
        """Initialize the template renderer with Jinja2 environment."""
        self.env = Environment(
            loader=BaseLoader(),
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )

        self.env.filters["json"] = self._json_filter
        self.env.filters["default"] = self._default_filter

    @staticmethod
    def _json_filter(value: Any, indent: int | None = None) -> str:
        return json.dumps(value, indent=indent, default=str)

    @staticmethod
    def _default_filter(value: Any, default: Any = "") -> Any:
        """Return default if value is None or undefined."""
        if value is None or isinstance(value, StrictUndefined):
            return default
        return value

    def render(self, template: str, context: dict[str, Any]) -> str:
        """Render a template string with the given context.

        Args:
            template: Jinja2 template string.
            context: Variables available in the template.

        Returns:
            Rendered string.

        Raises:
            TemplateError: If rendering fails due to missing variables or syntax errors.
        """
        try:
            tmpl = self.env.from_string(template)
            return tmpl.render(**context)
        except Jinja2UndefinedError as e:
            variable_name = self._extract_variable_name(str(e))
            raise TemplateError(
                f"Undefined variable in template: {e}",
                undefined_variable=variable_name,
            ) from e
        except TemplateSyntaxError as e:
            raise TemplateError(
                f"Template syntax error: {e}",
                line_number=e.lineno,
            ) from e
        except Exception as e:
            raise TemplateError(
                f"Template rendering failed: {e}",
                suggestion="Check template and context for errors",
            ) from e

    def check_syntax(self, template: str) -> str | None:
        """Return a syntax error message for a template, or None if it parses."""
        try:
            self.env.parse(template)
        except TemplateSyntaxError as e:
            return f"line {e.lineno}: {e.message}"
        return None

    @staticmethod
    def _extract_variable_name(error_msg: str) -> str:
        # Jinja2 error messages are like "'name' is undefined"
        if "'" in error_msg:
            parts = error_msg.split("'")
            if len(parts) >= 2:
                return parts[1]
        return "unknown"
