# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Runs script bodies in a child interpreter with a hard timeout."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from nodeflow.exceptions import ScriptError, ScriptTimeoutError
from nodeflow.sandbox.guard import ALLOWED_MODULES, wrap_source

logger = logging.getLogger(__name__)

RUNNER_PATH = Path(__file__).with_name("runner.py")


@dataclass
class ScriptOutcome:
    """Response of the runner process."""

    ok: bool
    result: Any = None
    variables: dict[str, Any] = field(default_factory=dict)
    logs: list[dict[str, str]] = field(default_factory=list)
    error: str | None = None


async def run_script(
    code: str,
    data: Any,
    variables: dict[str, Any],
    *,
    timeout_seconds: float,
    allowed_modules: list[str] | tuple[str, ...] = ALLOWED_MODULES,
    node_id: str | None = None,
) -> ScriptOutcome:
    """Run a script body in an isolated subprocess.

    Args:
        code: The unwrapped script body.
        data: Value bound to ``data``. Must be JSON-serializable; other
            values are sent as strings.
        variables: Value bound to ``variables``.
        timeout_seconds: Wall-clock limit. The process is killed when it
            is exceeded.
        allowed_modules: Pre-loaded modules visible to the script.
        node_id: Id of the calling node, for error reporting.

    Returns:
        The runner's response. A script that raised is ``ok=False``.

    Raises:
        ScriptTimeoutError: If the script did not finish in time.
        ScriptError: If the runner process failed or answered garbage.
    """
    request = json.dumps(
        {
            "source": wrap_source(code),
            "data": data,
            "variables": variables,
            "allowed_modules": list(allowed_modules),
        },
        default=str,
    ).encode()

    proc = await asyncio.create_subprocess_exec(
        sys.executable,
        "-I",
        str(RUNNER_PATH),
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(request), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning(f"Script in node '{node_id}' killed after {timeout_seconds}s")
        raise ScriptTimeoutError(
            f"Script execution timed out after {timeout_seconds}s",
            timeout_seconds=timeout_seconds,
            node_id=node_id,
        ) from None

    if proc.returncode != 0:
        detail = stderr.decode(errors="replace").strip().splitlines()
        raise ScriptError(
            f"Script runner exited with code {proc.returncode}"
            + (f": {detail[-1]}" if detail else ""),
            node_id=node_id,
        )

    try:
        response = json.loads(stdout.decode())
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ScriptError("Script runner returned malformed output", node_id=node_id) from e

    return ScriptOutcome(
        ok=bool(response.get("ok")),
        result=response.get("result"),
        variables=response.get("variables") or {},
        logs=response.get("logs") or [],
        error=response.get("error"),
    )
