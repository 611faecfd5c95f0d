# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Pydantic models for workflow configuration.

This module defines the models that workflow YAML files are parsed into:
the workflow header, node descriptors and port connections. Per-type node
configuration stays a free-form mapping here; it is validated by each node
type's own config model.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class WorkflowDef(BaseModel):
    """Top-level workflow settings."""

    id: str
    """Unique workflow identifier."""

    name: str | None = None
    """Human-readable workflow name."""

    description: str | None = None
    """Human-readable workflow description."""

    version: str | None = None
    """Semantic version string."""

    entry_point: str
    """Id of the node the run starts at."""


class NodeDef(BaseModel):
    """A node instance in the workflow graph."""

    id: str
    """Unique node id within the workflow."""

    type: str
    """Registered node type, e.g. ``conditional_logic`` or ``loop``."""

    name: str | None = None
    """Display name."""

    config: dict[str, Any] = Field(default_factory=dict)
    """Type-specific configuration."""

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Ensure node ids are non-empty and contain no dots."""
        if not v.strip():
            raise ValueError("node id must not be empty")
        if "." in v:
            raise ValueError(f"node id '{v}' must not contain '.'")
        return v


class ConnectionDef(BaseModel):
    """A directed edge from an output port to an input port."""

    source: str
    """Id of the source node."""

    source_port: str
    """Output port on the source node."""

    target: str
    """Id of the target node."""

    target_port: str = "input"
    """Input port on the target node."""


class WorkflowConfig(BaseModel):
    """Complete workflow configuration file."""

    workflow: WorkflowDef
    """Workflow-level settings."""

    nodes: list[NodeDef]
    """Node instances."""

    connections: list[ConnectionDef] = Field(default_factory=list)
    """Port connections between nodes."""

    variables: dict[str, Any] = Field(default_factory=dict)
    """Initial variable store, overridden by run inputs."""

    @model_validator(mode="after")
    def validate_references(self) -> WorkflowConfig:
        """Validate node ids are unique and all references exist."""
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"Duplicate node id '{node.id}'")
            seen.add(node.id)

        if self.workflow.entry_point not in seen:
            raise ValueError(f"entry_point '{self.workflow.entry_point}' not found in nodes")

        for index, connection in enumerate(self.connections):
            for end in (connection.source, connection.target):
                if end not in seen:
                    raise ValueError(f"Connection {index} references unknown node '{end}'")

        return self

    def get_node(self, node_id: str) -> NodeDef | None:
        return next((node for node in self.nodes if node.id == node_id), None)
