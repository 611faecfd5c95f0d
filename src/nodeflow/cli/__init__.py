# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""CLI module for nodeflow.

This module provides the command-line interface using Typer.
"""

from nodeflow.cli.app import app

__all__ = ["app"]
