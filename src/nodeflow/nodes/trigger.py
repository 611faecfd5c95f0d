# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Trigger nodes that start a workflow run."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import Field

from nodeflow.engine.context import ExecutionContext
from nodeflow.nodes.base import ExecutionResult, Node, NodeConfig, create_port


class StartConfig(NodeConfig):
    trigger_type: str = "manual"


class StartNode(Node):
    """Entry node that passes the run input through unchanged."""

    node_type = "start"
    category = "triggers"
    display_name = "Start"
    description = "Starts the workflow with the run input"
    config_model = StartConfig
    input_ports = ()
    output_ports = (create_port("output", description="The run input"),)

    async def run(self, context: ExecutionContext, data: Any, config: StartConfig) -> ExecutionResult:
        context.set_variable("trigger_type", config.trigger_type)
        context.set_variable("triggered_at", datetime.now(timezone.utc).isoformat())
        payload = data if data is not None else dict(context.variables)
        entry = self.log(context, "info", f"Workflow started ({config.trigger_type})")
        return ExecutionResult.ok(payload, ["output"], logs=[entry])


class MessageTriggerConfig(NodeConfig):
    keywords: list[str] = Field(default_factory=list)
    """Only fire when the message contains one of these words (case-insensitive)."""

    channels: list[str] = Field(default_factory=list)
    """Only fire for messages from these channels. Empty accepts every channel."""


class MessageTriggerNode(Node):
    """Entry node fired by an incoming conversation message.

    Reads ``message``, ``sender`` and ``channel`` from the input (falling
    back to variables of the same name) and stores them as
    ``trigger_message``, ``trigger_sender`` and ``trigger_channel``.
    """

    node_type = "message_trigger"
    category = "triggers"
    display_name = "Message Trigger"
    description = "Starts the workflow when a message is received"
    config_model = MessageTriggerConfig
    input_ports = ()
    output_ports = (create_port("output", data_type="object", description="The received message"),)

    def _validate_config(self, config: MessageTriggerConfig) -> list[str]:
        return [f"keywords.{i}: keyword must not be empty" for i, k in enumerate(config.keywords) if not k.strip()]

    async def run(self, context: ExecutionContext, data: Any, config: MessageTriggerConfig) -> ExecutionResult:
        source = data if isinstance(data, dict) else {}

        def pick(key: str) -> Any:
            return source.get(key, context.get_variable(key))

        message = pick("message")
        sender = pick("sender")
        channel = pick("channel")

        if message is None or message == "":
            return ExecutionResult.failure("No message found in trigger input")
        if config.channels and channel not in config.channels:
            entry = self.log(context, "debug", f"Ignoring message from channel '{channel}'")
            return ExecutionResult.failure(f"Channel '{channel}' is not accepted", logs=[entry])
        if config.keywords:
            text = str(message).lower()
            if not any(keyword.lower() in text for keyword in config.keywords):
                entry = self.log(context, "debug", "Message did not match any trigger keyword")
                return ExecutionResult.failure("Message did not match any trigger keyword", logs=[entry])

        context.set_variable("trigger_message", message)
        context.set_variable("trigger_sender", sender)
        context.set_variable("trigger_channel", channel)
        payload = {"message": message, "sender": sender, "channel": channel}
        self.emit(context, "message_received", payload)
        entry = self.log(context, "info", f"Message received from {sender or 'unknown sender'}")
        return ExecutionResult.ok({**source, **payload}, ["output"], logs=[entry])
