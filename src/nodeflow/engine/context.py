# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Execution context management for nodeflow.

This module provides the ExecutionContext class, the per-run mutable state
threaded through every node invocation: the variable store, accumulated
log entries and emitted events, caller metadata, and step history.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from nodeflow.nodes.base import ExecutionResult

logger = logging.getLogger(__name__)

LogLevel = Literal["debug", "info", "warning", "error"]
RunStatus = Literal["running", "completed", "failed"]

BodyRunner = Callable[[str, str, Any, "ExecutionContext"], Awaitable["ExecutionResult"]]
"""Runs the subgraph attached to ``(node_id, port)`` with the given data and context."""

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LogEntry:
    """A single log line recorded during a run."""

    level: LogLevel
    message: str
    data: Any = None
    timestamp: datetime = field(default_factory=_now)
    node_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "message": self.message,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "node_id": self.node_id,
        }


@dataclass
class EmittedEvent:
    """A fire-and-forget event emitted by a node."""

    name: str
    data: Any = None
    timestamp: datetime = field(default_factory=_now)
    node_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "node_id": self.node_id,
        }


@dataclass
class StepRecord:
    """Record of one node invocation, kept in the context's history."""

    node_id: str
    node_type: str
    success: bool
    next_nodes: list[str]
    error: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "node_type": self.node_type,
            "success": self.success,
            "next_nodes": list(self.next_nodes),
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 6),
        }


@dataclass
class ExecutionContext:
    """Per-run mutable state passed through every node invocation.

    The context is created at run start, mutated by every node the run
    visits, and discarded at run end. Nothing is persisted implicitly.

    Parallel loop iterations never share a context. They receive a fork
    (see ``fork``) with a private copy of the variable store, and the loop
    controller folds forks back with ``merge_from`` at the join point.

    Example:
        >>> ctx = ExecutionContext(workflow_id="support")
        >>> ctx.set_variable("tier", "gold")
        >>> ctx.get_variable("tier")
        'gold'
        >>> ctx.log("info", "hello").message
        'hello'
    """

    workflow_id: str = ""
    """Identifier of the workflow being run."""

    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    """Unique identifier of this run."""

    user_id: str | None = None
    """Identity of the caller that started the run."""

    variables: dict[str, Any] = field(default_factory=dict)
    """Mutable key/value variable store."""

    logs: list[LogEntry] = field(default_factory=list)
    """Accumulated log entries."""

    events: list[EmittedEvent] = field(default_factory=list)
    """Accumulated emitted events."""

    metadata: dict[str, Any] = field(default_factory=dict)
    """Free-form caller metadata such as channel or conversation ids."""

    history: list[StepRecord] = field(default_factory=list)
    """Ordered record of node invocations."""

    outputs: dict[str, Any] = field(default_factory=dict)
    """Data of the nodes that ended a branch, keyed by node id."""

    failed_nodes: list[str] = field(default_factory=list)
    """Nodes whose failure halted their branch."""

    status: RunStatus = "running"
    """Overall run status, set by the graph executor."""

    started_at: datetime = field(default_factory=_now)
    completed_at: datetime | None = None

    body_runner: BodyRunner | None = field(default=None, repr=False, compare=False)
    """Installed by the graph executor so loop nodes can run their body subgraph."""

    baseline: dict[str, Any] | None = field(default=None, init=False, repr=False, compare=False)
    """Variable snapshot a fork was taken from. None for a root context."""

    def set_variable(self, name: str, value: Any) -> None:
        self.variables[name] = value

    def get_variable(self, name: str, default: Any = None) -> Any:
        return self.variables.get(name, default)

    def log(
        self,
        level: LogLevel,
        message: str,
        data: Any = None,
        node_id: str | None = None,
    ) -> LogEntry:
        """Record a log entry and mirror it to the module logger.

        Args:
            level: Severity of the entry.
            message: Human-readable message.
            data: Optional structured payload.
            node_id: Node that produced the entry.

        Returns:
            The recorded entry.
        """
        entry = LogEntry(
            level=level,
            message=message,
            data=data,
            node_id=node_id,
        )
        self.logs.append(entry)
        logger.log(_LEVELS.get(level, logging.INFO), f"[{entry.node_id or '-'}] {message}")
        return entry

    def emit(self, name: str, data: Any = None, node_id: str | None = None) -> EmittedEvent:
        """Record an emitted event.

        Args:
            name: Event name (e.g. ``message_received``).
            data: Optional event payload.
            node_id: Emitting node.

        Returns:
            The recorded event.
        """
        event = EmittedEvent(name=name, data=data, node_id=node_id)
        self.events.append(event)
        return event

    def get_logs(self) -> list[LogEntry]:
        return list(self.logs)

    def get_events(self) -> list[EmittedEvent]:
        return list(self.events)

    def drain(self) -> tuple[list[LogEntry], list[EmittedEvent]]:
        """Return and clear the accumulated logs and events.

        Returns:
            A tuple of (logs, events) recorded since the last drain.
        """
        logs, events = self.logs, self.events
        self.logs, self.events = [], []
        return logs, events

    def fork(self, bindings: dict[str, Any] | None = None) -> ExecutionContext:
        """Create an isolated copy for a loop iteration.

        The fork shares identity and metadata with this context but has a
        deep-copied variable store and empty log, event and history lists.

        Args:
            bindings: Per-iteration variables to set on the fork only.

        Returns:
            The forked context.
        """
        forked = ExecutionContext(
            workflow_id=self.workflow_id,
            run_id=self.run_id,
            user_id=self.user_id,
            variables=copy.deepcopy(self.variables),
            metadata=dict(self.metadata),
            started_at=self.started_at,
            body_runner=self.body_runner,
        )
        forked.baseline = copy.deepcopy(self.variables)
        if bindings:
            forked.variables.update(bindings)
        return forked

    def merge_from(self, other: ExecutionContext, exclude: Iterable[str] = ()) -> None:
        """Reconcile a fork back into this context.

        Variables the fork added or changed since it was taken overwrite
        this context's values, and variables it deleted are removed, except
        names listed in ``exclude``. Values the fork left untouched never
        clobber writes made by sibling forks.
        Logs, events and history are appended in order.

        Args:
            other: The fork to reconcile.
            exclude: Variable names that stay private to the fork.
        """
        excluded = set(exclude)
        baseline = other.baseline
        for name, value in other.variables.items():
            if name in excluded:
                continue
            if baseline is not None and name in baseline and baseline[name] == value:
                continue
            self.variables[name] = value
        if baseline is not None:
            for name in baseline:
                if name not in excluded and name not in other.variables:
                    self.variables.pop(name, None)
        self.logs.extend(other.logs)
        self.events.extend(other.events)
        self.history.extend(other.history)

    def record_step(self, step: StepRecord) -> None:
        self.history.append(step)

    def mark_completed(self, status: RunStatus) -> None:
        self.status = status
        self.completed_at = _now()

    def to_dict(self) -> dict[str, Any]:
        """Serialize the context for reporting."""
        return {
            "workflow_id": self.workflow_id,
            "run_id": self.run_id,
            "user_id": self.user_id,
            "status": self.status,
            "variables": self.variables,
            "metadata": self.metadata,
            "logs": [entry.to_dict() for entry in self.logs],
            "events": [event.to_dict() for event in self.events],
            "history": [step.to_dict() for step in self.history],
            "outputs": self.outputs,
            "failed_nodes": list(self.failed_nodes),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
