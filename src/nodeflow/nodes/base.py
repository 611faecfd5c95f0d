# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Node contract and port model.

Every node type subclasses ``Node`` and implements ``run``, which
``execute`` calls once the configuration has been validated. Ports are
declared on the class, configuration is validated through a per-type
pydantic model, and ``validate`` is pure so an editor can call it before
a run.

Nodes never raise for expected failures. They return
``ExecutionResult.failure(...)`` and leave raising to programming errors,
which the graph executor converts at the invocation boundary.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

if TYPE_CHECKING:
    from nodeflow.engine.context import ExecutionContext, LogEntry, LogLevel
    from nodeflow.providers.base import NodeServices

PortKind = Literal["data", "control", "event"]
NodeCategory = Literal["triggers", "actions", "conditions", "integrations", "utilities"]


@dataclass(frozen=True)
class Port:
    """A named, typed socket on a node.

    Ports are declared by the node type, not by node instances. The
    ``connected`` flag is only set on copies produced for a concrete graph.
    """

    name: str
    kind: PortKind = "data"
    data_type: str = "any"
    required: bool = False
    description: str = ""
    connected: bool = False

    @property
    def id(self) -> str:
        return self.name


def create_port(
    name: str,
    kind: PortKind = "data",
    data_type: str = "any",
    required: bool = False,
    description: str = "",
) -> Port:
    """Create a port declaration."""
    return Port(
        name=name,
        kind=kind,
        data_type=data_type,
        required=required,
        description=description,
    )


@dataclass
class ExecutionResult:
    """Outcome of a single node invocation.

    Attributes:
        success: Whether the node's operation succeeded.
        data: Output value delivered to downstream nodes.
        next_nodes: Names of the output ports to follow.
        error: Human-readable description of a failure.
        logs: Log entries produced by this invocation.
    """

    success: bool
    data: Any = None
    next_nodes: list[str] = field(default_factory=list)
    error: str | None = None
    logs: list[LogEntry] = field(default_factory=list)

    @classmethod
    def ok(
        cls,
        data: Any = None,
        next_nodes: list[str] | None = None,
        logs: list[LogEntry] | None = None,
    ) -> ExecutionResult:
        return cls(success=True, data=data, next_nodes=list(next_nodes or []), logs=logs or [])

    @classmethod
    def failure(
        cls,
        error: str,
        data: Any = None,
        next_nodes: list[str] | None = None,
        logs: list[LogEntry] | None = None,
    ) -> ExecutionResult:
        return cls(
            success=False,
            data=data,
            next_nodes=list(next_nodes or []),
            error=error,
            logs=logs or [],
        )


@dataclass
class ValidationResult:
    """Result of validating a node's configuration."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)


class NodeConfig(BaseModel):
    """Base class for per-type node configuration models."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def format_pydantic_errors(error: PydanticValidationError) -> list[str]:
    """Format pydantic errors as ``loc: msg`` strings."""
    formatted = []
    for err in error.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        msg = err.get("msg", "Unknown error")
        formatted.append(f"{loc}: {msg}" if loc else msg)
    return formatted


class Node(ABC):
    """Abstract base class for all node types.

    Subclasses declare their type tag, category, ports and configuration
    model as class attributes and implement ``run``. Type-specific
    semantic checks go in ``_validate_config``.

    Example:
        >>> class EchoNode(Node):
        ...     node_type = "echo"
        ...     output_ports = (create_port("output"),)
        ...     async def run(self, context, data, config):
        ...         return ExecutionResult.ok(data, ["output"])
    """

    node_type: ClassVar[str] = ""
    category: ClassVar[NodeCategory] = "utilities"
    display_name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    version: ClassVar[str] = "1.0.0"
    config_model: ClassVar[type[NodeConfig]] = NodeConfig
    input_ports: ClassVar[tuple[Port, ...]] = (create_port("input", required=True),)
    output_ports: ClassVar[tuple[Port, ...]] = ()

    def __init__(
        self,
        node_id: str,
        config: dict[str, Any] | None = None,
        *,
        name: str | None = None,
        services: NodeServices | None = None,
    ) -> None:
        """Initialize a node instance.

        Args:
            node_id: Unique id of the node within its graph.
            config: Free-form configuration for this node type.
            name: Optional display name.
            services: External collaborators available to the node.
        """
        self.id = node_id
        self.name = name or self.display_name or node_id
        self.services = services
        self._config: dict[str, Any] = dict(config or {})
        self.is_valid = True
        self.errors: list[str] = []
        self._refresh_validation()

    @property
    def type(self) -> str:
        """The node's type tag. Immutable after creation."""
        return self.node_type

    @property
    def config(self) -> dict[str, Any]:
        """A copy of the raw configuration mapping."""
        return copy.deepcopy(self._config)

    def get_config(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def update_configuration(self, **changes: Any) -> ValidationResult:
        """Merge configuration changes and revalidate.

        Args:
            **changes: Configuration keys to set.

        Returns:
            The validation result of the merged configuration.
        """
        self._config.update(changes)
        return self._refresh_validation()

    def _refresh_validation(self) -> ValidationResult:
        result = self.validate()
        self.is_valid = result.is_valid
        self.errors = list(result.errors)
        return result

    def _check(self) -> tuple[Any, list[str]]:
        try:
            config = self.config_model.model_validate(self._config)
        except PydanticValidationError as e:
            return None, format_pydantic_errors(e)
        return config, self._validate_config(config)

    def validate(self) -> ValidationResult:
        """Validate the node's configuration without side effects.

        Returns:
            A ValidationResult listing every problem found.
        """
        _, errors = self._check()
        return ValidationResult(is_valid=not errors, errors=errors)

    def _validate_config(self, config: Any) -> list[str]:
        """Return type-specific configuration errors."""
        return []

    def get_input_ports(self) -> list[Port]:
        return list(self.input_ports)

    def get_output_ports(self) -> list[Port]:
        return list(self.output_ports)

    def has_output_port(self, name: str) -> bool:
        return any(port.name == name for port in self.get_output_ports())

    def has_input_port(self, name: str) -> bool:
        return any(port.name == name for port in self.get_input_ports())

    def get_metadata(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.node_type,
            "name": self.name,
            "category": self.category,
            "version": self.version,
        }

    def clone(self, new_id: str | None = None) -> Node:
        """Create a copy of this node with a new id and copied configuration."""
        return type(self)(
            new_id or f"{self.id}_copy",
            copy.deepcopy(self._config),
            name=self.name,
            services=self.services,
        )

    def log(
        self,
        context: ExecutionContext,
        level: LogLevel,
        message: str,
        data: Any = None,
    ) -> LogEntry:
        """Record a log entry attributed to this node."""
        return context.log(level, message, data, node_id=self.id)

    def emit(self, context: ExecutionContext, name: str, data: Any = None) -> None:
        context.emit(name, data, node_id=self.id)

    async def execute(self, context: ExecutionContext, data: Any = None) -> ExecutionResult:
        """Execute the node.

        Validates the configuration first. An invalid configuration yields a
        failed result without calling ``run``.

        Args:
            context: The run's execution context.
            data: The value delivered on the node's input port.

        Returns:
            The execution result. Expected failures are returned, not raised.
        """
        config, errors = self._check()
        if errors:
            message = f"Invalid configuration for node '{self.id}': " + "; ".join(errors)
            entry = self.log(context, "error", message)
            return ExecutionResult.failure(message, data=data, logs=[entry])
        return await self.run(context, data, config)

    @abstractmethod
    async def run(self, context: ExecutionContext, data: Any, config: Any) -> ExecutionResult:
        """Run the node with an already validated configuration."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, type={self.node_type!r})"
