# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Configuration module for nodeflow.

This module handles loading, parsing, and validating workflow YAML files.
"""

from nodeflow.config.loader import ConfigLoader, load_config, load_config_string, resolve_env_vars
from nodeflow.config.schema import ConnectionDef, NodeDef, WorkflowConfig, WorkflowDef
from nodeflow.config.validator import validate_graph

__all__ = [
    "ConfigLoader",
    "ConnectionDef",
    "NodeDef",
    "WorkflowConfig",
    "WorkflowDef",
    "load_config",
    "load_config_string",
    "resolve_env_vars",
    "validate_graph",
]
