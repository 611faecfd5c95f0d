# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Nodes that call external collaborators.

Each node renders a jinja2 template against the incoming data and the
run's variables, then calls one of the interfaces in
``nodeflow.providers.base``. A missing collaborator or a ProviderError
routes to the node's ``error`` port.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from nodeflow.engine.context import ExecutionContext
from nodeflow.engine.template import TemplateRenderer, build_template_context
from nodeflow.exceptions import ProviderError, TemplateError
from nodeflow.nodes.base import ExecutionResult, Node, NodeConfig, create_port

_ERROR_PORT = create_port("error", data_type="object", description="Taken when the call fails")


def _template_errors(field_name: str, template: str) -> list[str]:
    if not template.strip():
        return [f"{field_name} is required"]
    syntax_error = TemplateRenderer().check_syntax(template)
    return [f"{field_name}: template {syntax_error}"] if syntax_error else []


class _ServiceNode(Node):
    """Shared rendering and failure handling for provider-backed nodes."""

    def _render(self, context: ExecutionContext, template: str, data: Any) -> str:
        return TemplateRenderer().render(template, build_template_context(context, data))

    def _fail(self, context: ExecutionContext, message: str, data: Any) -> ExecutionResult:
        entry = self.log(context, "error", message)
        return ExecutionResult.failure(message, data=data, next_nodes=["error"], logs=[entry])


class SendMessageConfig(NodeConfig):
    content: str = ""
    conversation_id: str | None = None
    """Target conversation. Falls back to the ``conversation_id`` run metadata."""


class SendMessageNode(_ServiceNode):
    """Sends a rendered message through the channel adapter."""

    node_type = "send_message"
    category = "integrations"
    display_name = "Send Message"
    description = "Sends a message to a conversation"
    config_model = SendMessageConfig
    output_ports = (create_port("sent", data_type="object", description="The message was accepted"), _ERROR_PORT)

    def _validate_config(self, config: SendMessageConfig) -> list[str]:
        return _template_errors("content", config.content)

    async def run(self, context: ExecutionContext, data: Any, config: SendMessageConfig) -> ExecutionResult:
        channel = self.services.channel if self.services else None
        if channel is None:
            return self._fail(context, "No channel adapter is configured", data)
        conversation_id = config.conversation_id or context.metadata.get("conversation_id")
        if not conversation_id:
            return self._fail(context, "No conversation_id in config or run metadata", data)

        try:
            content = self._render(context, config.content, data)
            accepted = await channel.send_message(conversation_id, content)
        except (TemplateError, ProviderError) as e:
            return self._fail(context, e.message, data)
        if not accepted:
            return self._fail(context, f"Channel rejected message for conversation '{conversation_id}'", data)

        self.emit(context, "message_sent", {"conversation_id": conversation_id, "content": content})
        entry = self.log(context, "info", f"Message sent to conversation '{conversation_id}'")
        output = {"conversation_id": conversation_id, "content": content, "sent": True}
        return ExecutionResult.ok(output, ["sent"], logs=[entry])


class AIResponseConfig(NodeConfig):
    prompt: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)
    """Model parameters passed through to the completion provider."""

    output_variable: str = "ai_response"


class AIResponseNode(_ServiceNode):
    """Generates text with the completion provider."""

    node_type = "ai_response"
    category = "actions"
    display_name = "AI Response"
    description = "Generates a reply with an AI model"
    config_model = AIResponseConfig
    output_ports = (create_port("output", data_type="object", description="The generated text"), _ERROR_PORT)

    def _validate_config(self, config: AIResponseConfig) -> list[str]:
        errors = _template_errors("prompt", config.prompt)
        if not config.output_variable:
            errors.append("output_variable is required")
        return errors

    async def run(self, context: ExecutionContext, data: Any, config: AIResponseConfig) -> ExecutionResult:
        provider = self.services.completion if self.services else None
        if provider is None:
            return self._fail(context, "No completion provider is configured", data)

        try:
            prompt = self._render(context, config.prompt, data)
            text = await provider.complete(prompt, dict(config.parameters))
        except (TemplateError, ProviderError) as e:
            return self._fail(context, e.message, data)

        context.set_variable(config.output_variable, text)
        entry = self.log(context, "info", f"Generated {len(text)} characters")
        base = data if isinstance(data, dict) else {}
        return ExecutionResult.ok({**base, config.output_variable: text}, ["output"], logs=[entry])


class KnowledgeSearchConfig(NodeConfig):
    query: str = ""
    filters: dict[str, Any] = Field(default_factory=dict)
    limit: int = 5
    output_variable: str = "search_results"


class KnowledgeSearchNode(_ServiceNode):
    """Searches the knowledge base and stores the top results."""

    node_type = "knowledge_search"
    category = "integrations"
    display_name = "Knowledge Search"
    description = "Looks up documents relevant to a query"
    config_model = KnowledgeSearchConfig
    output_ports = (
        create_port("results", data_type="array", description="At least one result was found"),
        create_port("no_results", data_type="object", description="Nothing matched the query"),
        _ERROR_PORT,
    )

    def _validate_config(self, config: KnowledgeSearchConfig) -> list[str]:
        errors = _template_errors("query", config.query)
        if config.limit <= 0:
            errors.append("limit must be greater than 0")
        if not config.output_variable:
            errors.append("output_variable is required")
        return errors

    async def run(self, context: ExecutionContext, data: Any, config: KnowledgeSearchConfig) -> ExecutionResult:
        provider = self.services.search if self.services else None
        if provider is None:
            return self._fail(context, "No search provider is configured", data)

        try:
            query = self._render(context, config.query, data)
            found = await provider.search(query, dict(config.filters))
        except (TemplateError, ProviderError) as e:
            return self._fail(context, e.message, data)

        results = [result.to_dict() for result in found[: config.limit]]
        context.set_variable(config.output_variable, results)
        base = data if isinstance(data, dict) else {}
        output = {**base, "query": query, config.output_variable: results}
        if not results:
            entry = self.log(context, "info", f"No results for '{query}'")
            return ExecutionResult.ok(output, ["no_results"], logs=[entry])
        entry = self.log(context, "info", f"Found {len(results)} result(s) for '{query}'")
        return ExecutionResult.ok(output, ["results"], logs=[entry])
