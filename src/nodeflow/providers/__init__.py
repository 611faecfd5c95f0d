# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Provider module for nodeflow.

This module defines the interfaces nodes use to reach external
collaborators, plus HTTP, in-process and in-memory implementations.
"""

from nodeflow.providers.base import (
    AutomationClient,
    ChannelAdapter,
    CompletionProvider,
    ExecutionHandle,
    ExecutionStatus,
    NodeServices,
    SearchProvider,
    SearchResult,
)
from nodeflow.providers.http import HttpAutomationClient, send_webhook
from nodeflow.providers.local import LocalWorkflowClient
from nodeflow.providers.memory import (
    InMemorySearchProvider,
    RecordingChannelAdapter,
    StaticCompletionProvider,
)

__all__ = [
    "AutomationClient",
    "ChannelAdapter",
    "CompletionProvider",
    "ExecutionHandle",
    "ExecutionStatus",
    "HttpAutomationClient",
    "InMemorySearchProvider",
    "LocalWorkflowClient",
    "NodeServices",
    "RecordingChannelAdapter",
    "SearchProvider",
    "SearchResult",
    "StaticCompletionProvider",
    "send_webhook",
]
