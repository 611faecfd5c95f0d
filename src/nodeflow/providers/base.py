# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Interfaces for the external collaborators nodes depend on.

The engine never talks to a chat channel, a model API, an automation
platform or a search index directly. Nodes receive a ``NodeServices``
bundle and call these narrow interfaces, so hosts can plug in their own
implementations and tests can substitute in-memory ones.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    import httpx

ExecutionState = Literal["new", "running", "waiting", "success", "error", "canceled"]

TERMINAL_STATES: frozenset[str] = frozenset({"success", "error", "canceled"})


@dataclass
class ExecutionHandle:
    """Handle returned when an external workflow execution starts."""

    id: str
    status: ExecutionState = "running"


@dataclass
class ExecutionStatus:
    """Status and data of an external workflow execution.

    Attributes:
        id: The execution handle id.
        status: Current lifecycle state.
        data: Result data once the execution has finished.
        error: Error message for failed executions.
    """

    id: str
    status: ExecutionState
    data: Any = None
    error: str | None = None

    @property
    def finished(self) -> bool:
        return self.status in TERMINAL_STATES


@dataclass
class SearchResult:
    """A single ranked result from a knowledge search."""

    content: str
    score: float = 0.0
    source: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "score": self.score,
            "source": self.source,
            "metadata": self.metadata,
        }


class ChannelAdapter(ABC):
    """Sends messages to a conversation on a communication channel."""

    @abstractmethod
    async def send_message(self, conversation_id: str, content: str) -> bool:
        """Send a message.

        Args:
            conversation_id: Target conversation.
            content: Message text.

        Returns:
            True if the channel accepted the message.
        """
        ...


class CompletionProvider(ABC):
    """Produces text completions from an AI model."""

    @abstractmethod
    async def complete(self, prompt: str, parameters: dict[str, Any] | None = None) -> str:
        """Complete a prompt.

        Args:
            prompt: The rendered prompt.
            parameters: Model parameters such as temperature or max tokens.

        Returns:
            The completion text.
        """
        ...


class AutomationClient(ABC):
    """Client for an external automation platform that hosts workflows.

    Implementations must provide:
    - execute_workflow(): Start an execution and return its handle
    - get_execution(): Fetch the status of an execution
    - build_webhook_url(): Build the public webhook URL of a workflow

    Platforms that can stop executions override cancel().
    """

    @abstractmethod
    async def execute_workflow(self, workflow_id: str, input_data: dict[str, Any]) -> ExecutionHandle:
        """Start executing a workflow.

        Raises:
            ProviderError: If the platform rejects the request.
        """
        ...

    @abstractmethod
    async def get_execution(self, execution_id: str) -> ExecutionStatus:
        """Fetch an execution's status and data.

        Raises:
            ProviderError: If the execution cannot be fetched.
        """
        ...

    @abstractmethod
    def build_webhook_url(self, workflow_id: str, path: str | None = None) -> str:
        """Return the webhook URL for a workflow."""
        ...

    async def cancel(self, execution_id: str) -> None:
        """Stop an execution nobody is waiting for anymore.

        The default does nothing, for platforms that cannot stop executions.
        """
        return None

    async def close(self) -> None:
        """Release resources held by the client."""
        return None


class SearchProvider(ABC):
    """Searches a knowledge base or document index."""

    @abstractmethod
    async def search(self, query: str, filters: dict[str, Any] | None = None) -> list[SearchResult]:
        """Search for documents matching a query.

        Args:
            query: The search query.
            filters: Optional provider-specific filters.

        Returns:
            Results ordered by descending relevance.
        """
        ...


@dataclass
class NodeServices:
    """External collaborators made available to node instances.

    Any collaborator may be left unset. Nodes that need a missing
    collaborator fail with a descriptive error instead of raising.
    """

    channel: ChannelAdapter | None = None
    completion: CompletionProvider | None = None
    automation: AutomationClient | None = None
    search: SearchProvider | None = None
    http_client: httpx.AsyncClient | None = None
    """Shared HTTP client for webhook calls. A temporary client is used when unset."""
