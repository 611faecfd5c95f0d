# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Response node."""

from __future__ import annotations

from typing import Any, Literal

from nodeflow.engine.context import ExecutionContext
from nodeflow.engine.template import TemplateRenderer, build_template_context
from nodeflow.exceptions import TemplateError
from nodeflow.nodes.base import ExecutionResult, Node, NodeConfig


class ResponseConfig(NodeConfig):
    message: str = ""
    response_type: Literal["text", "markdown", "json"] = "text"


class ResponseNode(Node):
    """Renders the reply to the user and ends the branch.

    Emits a ``response`` event with the rendered message and stores it in
    the ``last_response`` variable.
    """

    node_type = "response"
    category = "actions"
    display_name = "Response"
    description = "Sends a templated reply to the user"
    config_model = ResponseConfig
    output_ports = ()

    def _validate_config(self, config: ResponseConfig) -> list[str]:
        if not config.message.strip():
            return ["message is required"]
        syntax_error = TemplateRenderer().check_syntax(config.message)
        return [f"message: template {syntax_error}"] if syntax_error else []

    async def run(self, context: ExecutionContext, data: Any, config: ResponseConfig) -> ExecutionResult:
        try:
            message = TemplateRenderer().render(config.message, build_template_context(context, data))
        except TemplateError as e:
            entry = self.log(context, "error", e.message)
            return ExecutionResult.failure(e.message, data=data, logs=[entry])

        context.set_variable("last_response", message)
        self.emit(context, "response", {"message": message, "response_type": config.response_type})
        entry = self.log(context, "info", "Response sent")
        return ExecutionResult.ok({"message": message, "response_type": config.response_type}, logs=[entry])
