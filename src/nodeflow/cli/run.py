# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Implementation of the 'nodeflow run' command.

This module provides helper functions for executing workflow files and the
verbose progress hooks the graph executor calls.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.text import Text

from nodeflow.config.loader import load_config
from nodeflow.config.validator import validate_graph
from nodeflow.engine.graph import GraphExecutor
from nodeflow.nodes.registry import create_default_registry
from nodeflow.providers.base import NodeServices
from nodeflow.providers.local import LocalWorkflowClient
from nodeflow.providers.memory import (
    InMemorySearchProvider,
    RecordingChannelAdapter,
    StaticCompletionProvider,
)

# Verbose console for logging (stderr)
_verbose_console = Console(stderr=True, highlight=False)


def verbose_log(message: str, style: str = "dim") -> None:
    """Log a message if verbose mode is enabled.

    Args:
        message: The message to log.
        style: Rich style for the message.
    """
    from nodeflow.cli.app import is_verbose

    if is_verbose():
        _verbose_console.print(f"[{style}]{message}[/{style}]")


def verbose_log_node_start(node_id: str, node_type: str) -> None:
    """Log node execution start with visual formatting."""
    from nodeflow.cli.app import is_verbose

    if is_verbose():
        text = Text()
        text.append("┌─ ", style="cyan")
        text.append("Node: ", style="cyan")
        text.append(node_id, style="cyan bold")
        text.append(f" [{node_type}]", style="dim")
        _verbose_console.print(text)


def verbose_log_node_complete(node_id: str, elapsed: float, ports: list[str]) -> None:
    """Log node completion with the ports it selected.

    Args:
        node_id: Id of the node that completed.
        elapsed: Elapsed time in seconds.
        ports: Output ports the node selected.
    """
    from nodeflow.cli.app import is_verbose

    if is_verbose():
        parts = [f"{elapsed:.2f}s"]
        if ports:
            parts.append(f"→ {', '.join(ports)}")

        text = Text()
        text.append("└─ ", style="green")
        text.append("✓ ", style="green")
        text.append(node_id, style="green")
        text.append(f"  ({', '.join(parts)})", style="dim")
        _verbose_console.print(text)


def verbose_log_node_failed(node_id: str, elapsed: float, error: str | None) -> None:
    """Log a node failure."""
    from nodeflow.cli.app import is_verbose

    if is_verbose():
        text = Text()
        text.append("└─ ", style="red")
        text.append("✗ ", style="red")
        text.append(node_id, style="red")
        text.append(f"  ({elapsed:.2f}s)", style="dim")
        if error:
            text.append(f"\n   {error}", style="red dim")
        _verbose_console.print(text)


def verbose_log_timing(operation: str, elapsed: float) -> None:
    """Log timing information for an operation."""
    verbose_log(f"⏱ {operation}: {elapsed:.2f}s")


def parse_input_flags(raw_inputs: list[str]) -> dict[str, Any]:
    """Parse --input name=value flags into a dictionary.

    Supports type coercion for common types:
    - "true"/"false" -> bool
    - numeric strings -> int/float
    - JSON arrays/objects -> parsed JSON
    - everything else -> string

    Args:
        raw_inputs: List of "name=value" strings from CLI.

    Returns:
        Dictionary of parsed input name-value pairs.

    Raises:
        typer.BadParameter: If input format is invalid.
    """
    inputs: dict[str, Any] = {}

    for raw in raw_inputs:
        if "=" not in raw:
            raise typer.BadParameter(f"Invalid input format: '{raw}'. Expected format: name=value")

        name, value = raw.split("=", 1)
        name = name.strip()
        if not name:
            raise typer.BadParameter(f"Empty input name in: '{raw}'")

        inputs[name] = coerce_value(value.strip())

    return inputs


def coerce_value(value: str) -> Any:
    """Coerce a string value to an appropriate Python type.

    Args:
        value: The string value to coerce.

    Returns:
        The coerced value (bool, None, int, float, list, dict, or str).
    """
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    if value.lower() == "null":
        return None

    if value.startswith(("[", "{")):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass

    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        pass

    return value


def build_default_services() -> NodeServices:
    """Services used by CLI runs: in-memory collaborators and local subworkflows."""
    return NodeServices(
        channel=RecordingChannelAdapter(),
        completion=StaticCompletionProvider(),
        search=InMemorySearchProvider(),
    )


async def run_workflow_async(workflow_path: Path, inputs: dict[str, Any]) -> dict[str, Any]:
    """Load, validate and run a workflow.

    Args:
        workflow_path: Path to the workflow YAML file.
        inputs: Run inputs.

    Returns:
        A JSON-ready summary with the run status, final variables,
        branch outputs and emitted events.

    Raises:
        ConfigurationError: If the workflow fails to load or validate.
    """
    import time

    config = load_config(workflow_path)

    services = build_default_services()
    automation = LocalWorkflowClient(workflows=[config], services=services)
    services.automation = automation
    registry = create_default_registry(services)

    for warning in validate_graph(config, registry):
        verbose_log(f"⚠ {warning}", style="yellow")

    executor = GraphExecutor(config, registry)
    start = time.monotonic()
    try:
        context = await executor.run(inputs)
    finally:
        await automation.close()
    verbose_log_timing(f"Workflow '{config.workflow.id}'", time.monotonic() - start)

    return {
        "run_id": context.run_id,
        "status": context.status,
        "variables": context.variables,
        "outputs": context.outputs,
        "failed_nodes": context.failed_nodes,
        "events": [event.to_dict() for event in context.events],
    }
