"""Unit tests for the script source guard and runner."""

from __future__ import annotations

from nodeflow.sandbox.guard import check_source, wrap_source
from nodeflow.sandbox.runner import execute


class TestCheckSource:
    """Tests for check_source."""

    def test_clean_script(self) -> None:
        """Test an ordinary script passes."""
        assert check_source("x = [i * 2 for i in range(3)]\nreturn x") == []

    def test_rejected_constructs(self) -> None:
        """Test imports, dunders and blocked calls are rejected."""
        assert check_source("import os")
        assert check_source("from os import path")
        assert check_source("return ().__class__")
        assert check_source("return eval('1')")
        assert check_source("global x")

    def test_syntax_error_line_number(self) -> None:
        """Test syntax errors report the body line number."""
        errors = check_source("x = 1\ny = (")
        assert len(errors) == 1
        assert errors[0].startswith("Syntax error on line")

    def test_wrap_source(self) -> None:
        """Test the body becomes the function body."""
        assert wrap_source("return 1").startswith("def _script_main(data, variables, log):\n    return 1")


class TestRunner:
    """Tests for the in-process part of the runner."""

    def test_execute_success(self) -> None:
        """Test a wrapped script runs and returns its result."""
        response = execute(
            {
                "source": wrap_source("variables['n'] = data * 2\nlog('done')\nreturn json.dumps([1])"),
                "data": 4,
                "variables": {},
                "allowed_modules": ["json"],
            }
        )
        assert response["ok"] is True
        assert response["result"] == "[1]"
        assert response["variables"] == {"n": 8}
        assert response["logs"] == [{"level": "info", "message": "done"}]

    def test_module_not_allowed(self) -> None:
        """Test modules outside allowed_modules are not bound."""
        response = execute(
            {"source": wrap_source("return math.pi"), "data": None, "variables": {}, "allowed_modules": []}
        )
        assert response["ok"] is False
        assert "NameError" in response["error"]
