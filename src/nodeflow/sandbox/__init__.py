# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Isolated execution of script node bodies."""

from nodeflow.sandbox.executor import ScriptOutcome, run_script
from nodeflow.sandbox.guard import ALLOWED_MODULES, check_source, wrap_source

__all__ = [
    "ALLOWED_MODULES",
    "ScriptOutcome",
    "check_source",
    "run_script",
    "wrap_source",
]
