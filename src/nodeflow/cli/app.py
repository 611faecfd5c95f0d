# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Typer application definition for the nodeflow CLI.

This module defines the main Typer app and global options.
"""

from __future__ import annotations

import contextvars
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from nodeflow import __version__

app = typer.Typer(
    name="nodeflow",
    help="nodeflow - Run node-graph workflows defined in YAML.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console(stderr=True)
output_console = Console()

# Context variable for verbose mode (default True - show progress output)
verbose_mode: contextvars.ContextVar[bool] = contextvars.ContextVar("verbose_mode", default=True)


def is_verbose() -> bool:
    """Check if verbose mode is enabled (default True)."""
    return verbose_mode.get()


def format_error(error: Exception) -> Panel:
    """Format an exception for Rich console display.

    Creates a styled Panel with error type, message, location (if available),
    and suggestion (if available).

    Args:
        error: The exception to format.

    Returns:
        Rich Panel with formatted error content.
    """
    from nodeflow.exceptions import NodeflowError

    content = Text()
    message = error.message if isinstance(error, NodeflowError) else str(error)
    content.append(message, style="bold red")

    if isinstance(error, NodeflowError):
        if error.file_path or error.line_number:
            content.append("\n\n")
            content.append("📍 Location: ", style="yellow")
            if error.file_path:
                content.append(error.file_path, style="cyan")
            if error.line_number:
                if error.file_path:
                    content.append(":", style="yellow")
                content.append(f"line {error.line_number}", style="cyan")

        field_path = getattr(error, "field_path", None)
        if field_path:
            content.append("\n")
            content.append("📋 Field: ", style="yellow")
            content.append(field_path, style="cyan")

        if error.suggestion:
            content.append("\n\n")
            content.append("💡 Suggestion: ", style="green")
            content.append(error.suggestion, style="white")

    error_type = error.error_type if isinstance(error, NodeflowError) else type(error).__name__

    return Panel(
        content,
        title=f"[bold red]❌ {error_type}[/bold red]",
        border_style="red",
        padding=(1, 2),
    )


def print_error(error: Exception) -> None:
    """Print a formatted error to stderr."""
    console.print(format_error(error))


def version_callback(value: bool) -> None:
    """Display version information and exit."""
    if value:
        output_console.print(f"nodeflow v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """nodeflow - Run node-graph workflows defined in YAML."""


@app.command()
def run(
    workflow: Annotated[
        Path,
        typer.Argument(
            help="Path to the workflow YAML file.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ],
    raw_inputs: Annotated[
        list[str] | None,
        typer.Option(
            "--input",
            "-i",
            help="Workflow inputs in name=value format. Can be repeated.",
        ),
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Hide per-node progress output.",
        ),
    ] = False,
) -> None:
    """Run a workflow from a YAML file.

    Inputs given with --input are layered over the workflow's variables.
    The final variables, status and outputs are printed as JSON.

    \b
    Examples:
        nodeflow run workflow.yaml
        nodeflow run workflow.yaml --input age=21
        nodeflow run workflow.yaml -i name="Ada" -i tags='["a","b"]' --quiet
    """
    import asyncio
    import json

    from nodeflow.cli.run import parse_input_flags, run_workflow_async

    if quiet:
        verbose_mode.set(False)

    inputs: dict[str, Any] = parse_input_flags(raw_inputs) if raw_inputs else {}

    try:
        result = asyncio.run(run_workflow_async(workflow, inputs))
        output_console.print_json(json.dumps(result, default=str))
    except Exception as e:
        print_error(e)
        raise typer.Exit(code=1) from None

    if result["status"] != "completed":
        raise typer.Exit(code=1)


@app.command()
def validate(
    workflow: Annotated[
        Path,
        typer.Argument(
            help="Path to the workflow YAML file to validate.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ],
) -> None:
    """Validate a workflow YAML file without executing it.

    Checks the workflow file for:
    - Valid YAML syntax
    - Valid schema structure
    - Registered node types and valid node configurations
    - Valid connections and port cardinality

    \b
    Examples:
        nodeflow validate workflow.yaml
    """
    from nodeflow.cli.validate import display_validation_success, validate_workflow

    is_valid, config, warnings = validate_workflow(workflow, output_console)

    if is_valid and config is not None:
        display_validation_success(config, workflow, warnings, output_console)
    else:
        raise typer.Exit(code=1)


@app.command()
def types() -> None:
    """List the registered node types by category.

    \b
    Examples:
        nodeflow types
    """
    from nodeflow.cli.validate import display_node_types

    display_node_types(output_console)
