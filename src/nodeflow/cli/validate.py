# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Implementation of the 'nodeflow validate' and 'nodeflow types' commands.

This module provides functionality to validate workflow YAML files
without executing them, displaying detailed error information.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from nodeflow.config.loader import load_config
from nodeflow.config.validator import validate_graph
from nodeflow.exceptions import NodeflowError
from nodeflow.nodes.registry import NodeRegistry, create_default_registry

if TYPE_CHECKING:
    from nodeflow.config.schema import WorkflowConfig


def validate_workflow(
    workflow_path: Path,
    console: Console | None = None,
    registry: NodeRegistry | None = None,
) -> tuple[bool, WorkflowConfig | None, list[str]]:
    """Validate a workflow YAML file.

    Loads the file, then checks node types, node configurations and
    connections against the registry.

    Args:
        workflow_path: Path to the workflow YAML file.
        console: Optional Rich console for output.
        registry: Registry to validate against. Defaults to the built-in types.

    Returns:
        A tuple of (is_valid, config_or_none, warnings).
    """
    output_console = console if console is not None else Console()

    try:
        config = load_config(workflow_path)
        warnings = validate_graph(config, registry or create_default_registry())
        return True, config, warnings
    except NodeflowError as e:
        display_validation_error(e, workflow_path, output_console)
        return False, None, []
    except Exception as e:
        output_console.print(
            Panel(
                f"[bold red]Unexpected Error[/bold red]\n\n{e}",
                title="[red]Validation Failed[/red]",
                border_style="red",
            )
        )
        return False, None, []


def display_validation_error(
    error: NodeflowError,
    workflow_path: Path,
    console: Console,
) -> None:
    """Display a validation error with Rich formatting.

    Args:
        error: The NodeflowError that occurred.
        workflow_path: Path to the workflow file.
        console: Rich console for output.
    """
    content = f"[bold red]{error.error_type}[/bold red]\n\n"
    content += f"[dim]File:[/dim] {workflow_path}\n\n"
    content += error.message

    if error.line_number:
        content += f"\n\n[dim]Line:[/dim] {error.line_number}"

    if error.suggestion:
        content += f"\n\n[yellow]💡 Suggestion:[/yellow] {error.suggestion}"

    console.print(
        Panel(
            content,
            title="[red]Validation Failed[/red]",
            border_style="red",
        )
    )


def display_validation_success(
    config: WorkflowConfig,
    workflow_path: Path,
    warnings: list[str],
    console: Console,
) -> None:
    """Display validation success with a workflow summary.

    Args:
        config: The validated workflow configuration.
        workflow_path: Path to the workflow file.
        warnings: Non-fatal findings from graph validation.
        console: Rich console for output.
    """
    type_counts: dict[str, int] = {}
    for node in config.nodes:
        type_counts[node.type] = type_counts.get(node.type, 0) + 1

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("File", str(workflow_path))
    table.add_row("Name", config.workflow.name or config.workflow.id)
    if config.workflow.description:
        table.add_row("Description", config.workflow.description)
    table.add_row("Entry Point", config.workflow.entry_point)
    table.add_row("Nodes", str(len(config.nodes)))
    table.add_row("Connections", str(len(config.connections)))
    if config.variables:
        table.add_row("Variables", ", ".join(sorted(config.variables)))
    table.add_row("Types", ", ".join(f"{t} ({n})" for t, n in sorted(type_counts.items())))

    console.print(
        Panel(
            table,
            title="[green]Validation Successful[/green]",
            border_style="green",
        )
    )

    node_table = Table(title="Nodes", show_lines=True)
    node_table.add_column("Id", style="cyan")
    node_table.add_column("Type", width=18)
    node_table.add_column("Routes")

    for node in config.nodes:
        routes = [f"{c.source_port} → {c.target}" for c in config.connections if c.source == node.id]
        if routes:
            routes_str = ", ".join(routes[:3])
            if len(routes) > 3:
                routes_str += f" (+{len(routes) - 3} more)"
        else:
            routes_str = "[dim]none[/dim]"
        node_table.add_row(node.id, node.type, routes_str)

    console.print(node_table)

    for warning in warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")


def display_node_types(console: Console, registry: NodeRegistry | None = None) -> None:
    """Print the registered node types grouped by category."""
    registry = registry or create_default_registry()

    table = Table(title="Node Types", show_lines=True)
    table.add_column("Category", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Outputs")
    table.add_column("Description")

    for category, node_types in registry.get_node_types_by_category().items():
        for node_type in node_types:
            info = registry.get_type_info(node_type)
            if info is None:
                continue
            outputs = ", ".join(port.name for port in info.output_ports) or "[dim]none[/dim]"
            table.add_row(category, node_type, outputs, info.description)

    console.print(table)
