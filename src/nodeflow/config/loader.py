# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""YAML configuration loader with environment variable resolution.

This module handles loading YAML workflow files, resolving environment
variables, and parsing them into typed Pydantic models.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from nodeflow.config.schema import WorkflowConfig
from nodeflow.exceptions import ConfigurationError

# Pattern to match ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def resolve_env_vars(value: str, max_depth: int = 10) -> str:
    """Resolve ${ENV:-default} patterns in strings.

    Supports recursive resolution where environment variable values
    may themselves contain environment variable references.

    Args:
        value: The string potentially containing env var references.
        max_depth: Maximum recursion depth to prevent infinite loops.

    Returns:
        The string with all environment variables resolved.

    Raises:
        ConfigurationError: If a required environment variable is missing
            (no default provided) or recursion limit is exceeded.
    """
    if max_depth <= 0:
        raise ConfigurationError(
            f"Maximum recursion depth exceeded while resolving environment variables in: {value}",
            suggestion="Check for circular references in your environment variables.",
        )

    def replace_env_var(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2)

        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        if default_value is not None:
            return default_value
        raise ConfigurationError(
            f"Required environment variable '{var_name}' is not set",
            suggestion=f"Set the environment variable '{var_name}' or provide a default "
            f"value using the syntax: ${{{var_name}:-default_value}}",
        )

    result = ENV_VAR_PATTERN.sub(replace_env_var, value)

    if ENV_VAR_PATTERN.search(result):
        return resolve_env_vars(result, max_depth - 1)

    return result


def resolve_env_vars_recursive(data: Any) -> Any:
    """Resolve environment variables in every string of a data structure."""
    if isinstance(data, dict):
        return {k: resolve_env_vars_recursive(v) for k, v in data.items()}
    if isinstance(data, list):
        return [resolve_env_vars_recursive(item) for item in data]
    if isinstance(data, str):
        return resolve_env_vars(data)
    return data


class ConfigLoader:
    """Loads and validates workflow configuration from YAML files.

    This class handles:
    - YAML parsing with line numbers in error messages
    - Environment variable resolution
    - Pydantic schema validation
    """

    def __init__(self) -> None:
        """Initialize the config loader with a safe ruamel.yaml parser."""
        self._yaml = YAML(typ="safe")

    def load(self, path: str | Path) -> WorkflowConfig:
        """Load a workflow configuration from a YAML file.

        Args:
            path: Path to the YAML workflow file.

        Returns:
            A validated WorkflowConfig object.

        Raises:
            ConfigurationError: If the file cannot be read, contains invalid
                YAML syntax, or fails schema validation.
        """
        path = Path(path)

        if not path.exists():
            raise ConfigurationError(
                f"Workflow file not found: {path}",
                suggestion="Check that the file path is correct and the file exists.",
            )

        if not path.is_file():
            raise ConfigurationError(
                f"Path is not a file: {path}",
                suggestion="Provide a path to a YAML file, not a directory.",
            )

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read workflow file '{path}': {e}",
                suggestion="Check file permissions and ensure the file is readable.",
            ) from e

        return self.load_string(content, source_path=path)

    def load_string(self, content: str, source_path: Path | None = None) -> WorkflowConfig:
        """Load a workflow configuration from a YAML string.

        Args:
            content: The YAML content as a string.
            source_path: Optional path for error messages.

        Returns:
            A validated WorkflowConfig object.

        Raises:
            ConfigurationError: If the YAML is invalid or fails validation.
        """
        source = str(source_path) if source_path else "<string>"

        try:
            data = self._yaml.load(content)
        except YAMLError as e:
            line_number = None
            line_info = ""
            mark = getattr(e, "problem_mark", None)
            if mark is not None:
                line_number = mark.line + 1
                line_info = f" at line {line_number}, column {mark.column + 1}"

            raise ConfigurationError(
                f"Invalid YAML syntax in '{source}'{line_info}: {e}",
                suggestion="Check the YAML syntax. Common issues include incorrect "
                "indentation, missing colons, or unquoted special characters.",
                file_path=str(source_path) if source_path else None,
                line_number=line_number,
            ) from e

        if data is None:
            raise ConfigurationError(
                f"Empty configuration file: {source}",
                suggestion="Add workflow configuration to the YAML file.",
            )

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Invalid configuration format in '{source}': "
                f"expected a mapping, got {type(data).__name__}",
                suggestion="Ensure the YAML file contains a valid workflow configuration.",
            )

        data = resolve_env_vars_recursive(data)
        return self._validate(data, source)

    def _validate(self, data: dict[str, Any], source: str) -> WorkflowConfig:
        """Validate configuration data against the Pydantic schema.

        Raises:
            ConfigurationError: If the data fails schema validation.
        """
        try:
            return WorkflowConfig.model_validate(data)
        except PydanticValidationError as e:
            formatted = []
            for err in e.errors():
                loc = ".".join(str(x) for x in err.get("loc", ()))
                msg = err.get("msg", "Unknown error")
                formatted.append(f"  - {loc}: {msg}" if loc else f"  - {msg}")

            raise ConfigurationError(
                f"Configuration validation failed in '{source}':\n" + "\n".join(formatted),
                suggestion="Check the workflow configuration against the schema. "
                "Ensure all required fields are present and have valid values.",
            ) from e


def load_config(path: str | Path) -> WorkflowConfig:
    """Convenience function to load a workflow configuration.

    Raises:
        ConfigurationError: If loading or validation fails.
    """
    return ConfigLoader().load(path)


def load_config_string(content: str, source_path: Path | None = None) -> WorkflowConfig:
    """Convenience function to load a workflow configuration from a string.

    Raises:
        ConfigurationError: If loading or validation fails.
    """
    return ConfigLoader().load_string(content, source_path)
