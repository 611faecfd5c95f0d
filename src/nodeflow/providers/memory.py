# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""In-memory collaborator implementations.

Used as the CLI's default services and in tests. They keep everything in
process and never reach the network.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from nodeflow.providers.base import (
    ChannelAdapter,
    CompletionProvider,
    SearchProvider,
    SearchResult,
)


@dataclass
class SentMessage:
    conversation_id: str
    content: str


class RecordingChannelAdapter(ChannelAdapter):
    """Channel adapter that records every message it is asked to send."""

    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.sent: list[SentMessage] = []

    async def send_message(self, conversation_id: str, content: str) -> bool:
        self.sent.append(SentMessage(conversation_id, content))
        return self.accept


class StaticCompletionProvider(CompletionProvider):
    """Completion provider that returns canned responses.

    Responses are returned in order; the last one repeats once the list is
    exhausted. Every prompt received is recorded.
    """

    def __init__(self, responses: list[str] | str = "") -> None:
        self.responses = [responses] if isinstance(responses, str) else list(responses)
        self.prompts: list[str] = []
        self.parameters: list[dict[str, Any]] = []

    async def complete(self, prompt: str, parameters: dict[str, Any] | None = None) -> str:
        self.prompts.append(prompt)
        self.parameters.append(dict(parameters or {}))
        if not self.responses:
            return ""
        index = min(len(self.prompts) - 1, len(self.responses) - 1)
        return self.responses[index]


@dataclass
class InMemorySearchProvider(SearchProvider):
    """Keyword search over a fixed list of documents.

    A document scores the fraction of query terms it contains. Filters
    match exact values in a document's metadata.
    """

    documents: list[SearchResult] = field(default_factory=list)

    def add(self, content: str, source: str | None = None, **metadata: Any) -> None:
        self.documents.append(SearchResult(content=content, source=source, metadata=metadata))

    async def search(self, query: str, filters: dict[str, Any] | None = None) -> list[SearchResult]:
        terms = [term for term in query.lower().split() if term]
        if not terms:
            return []

        results = []
        for doc in self.documents:
            if filters and any(doc.metadata.get(k) != v for k, v in filters.items()):
                continue
            text = doc.content.lower()
            matched = sum(1 for term in terms if term in text)
            if matched:
                results.append(
                    SearchResult(
                        content=doc.content,
                        score=matched / len(terms),
                        source=doc.source,
                        metadata=dict(doc.metadata),
                    )
                )
        results.sort(key=lambda r: r.score, reverse=True)
        return results
