# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Sandboxed script node.

The script body is Python, run as the body of a function whose
parameters are ``data``, ``variables`` and ``log``::

    total = sum(item["price"] for item in data["items"])
    variables["total"] = total
    log(f"total is {total}")
    return total

The body executes in a separate interpreter (see ``nodeflow.sandbox``)
that is killed when ``timeout_seconds`` elapses.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import Field

from nodeflow.engine.context import ExecutionContext
from nodeflow.exceptions import ScriptError
from nodeflow.nodes.base import ExecutionResult, Node, NodeConfig, create_port
from nodeflow.sandbox import ALLOWED_MODULES, check_source, run_script

_LOG_LEVELS = {"debug", "info", "warning", "error"}


class ScriptConfig(NodeConfig):
    code: str = ""
    timeout_seconds: float = 5.0
    return_variable: str = "result"
    allowed_modules: list[str] = Field(default_factory=lambda: list(ALLOWED_MODULES))
    sandboxed: bool = True


class ScriptNode(Node):
    """Runs a user script and routes its return value to ``output``.

    Variables the script changes are written back to the context and its
    ``log`` calls are copied into the context logs. A script that raises
    or times out routes to ``error``.
    """

    node_type = "script"
    category = "utilities"
    display_name = "Script"
    description = "Runs a sandboxed Python snippet"
    config_model = ScriptConfig
    output_ports = (
        create_port("output", data_type="object", description="The script's return value"),
        create_port("error", data_type="object", description="Taken when the script fails or times out"),
    )

    def _validate_config(self, config: ScriptConfig) -> list[str]:
        errors = []
        if not config.code.strip():
            errors.append("code is required")
        else:
            errors.extend(check_source(config.code))
        if config.timeout_seconds <= 0:
            errors.append("timeout_seconds must be greater than 0")
        if not config.return_variable:
            errors.append("return_variable is required")
        unknown = sorted(set(config.allowed_modules) - set(ALLOWED_MODULES))
        if unknown:
            errors.append(
                f"allowed_modules: {', '.join(unknown)} not available "
                f"(choose from {', '.join(ALLOWED_MODULES)})"
            )
        return errors

    async def run(self, context: ExecutionContext, data: Any, config: ScriptConfig) -> ExecutionResult:
        if not config.sandboxed:
            self.log(context, "warning", "Scripts always run sandboxed; ignoring sandboxed=false")

        # Only variables that differ from what the runner received are written back.
        sent = json.loads(json.dumps(context.variables, default=str))
        try:
            outcome = await run_script(
                config.code,
                data,
                context.variables,
                timeout_seconds=config.timeout_seconds,
                allowed_modules=config.allowed_modules,
                node_id=self.id,
            )
        except ScriptError as e:
            entry = self.log(context, "error", e.message)
            return ExecutionResult.failure(e.message, data=data, next_nodes=["error"], logs=[entry])

        entries = []
        for line in outcome.logs:
            level = line.get("level", "info")
            entries.append(
                self.log(context, level if level in _LOG_LEVELS else "info", line.get("message", ""))
            )

        for name, value in outcome.variables.items():
            if name not in sent or sent[name] != value:
                context.set_variable(name, value)

        if not outcome.ok:
            message = f"Script failed: {outcome.error}"
            entries.append(self.log(context, "error", message))
            return ExecutionResult.failure(message, data=data, next_nodes=["error"], logs=entries)

        entries.append(self.log(context, "debug", "Script completed"))
        return ExecutionResult.ok({config.return_variable: outcome.result}, ["output"], logs=entries)
