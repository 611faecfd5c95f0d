# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Script runner executed in a separate interpreter.

Started as ``python -I runner.py`` by ``nodeflow.sandbox.executor``. Reads
one JSON request from stdin::

    {"source": ..., "data": ..., "variables": {...}, "allowed_modules": [...]}

and writes one JSON response to stdout::

    {"ok": ..., "result": ..., "variables": {...}, "logs": [...], "error": ...}

This module only imports the standard library so it runs in isolated mode.
"""

import datetime
import json
import math
import re
import sys

SCRIPT_FUNCTION = "_script_main"

MODULES = {"math": math, "json": json, "datetime": datetime, "re": re}

SAFE_BUILTINS = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "dict": dict,
    "enumerate": enumerate,
    "filter": filter,
    "float": float,
    "int": int,
    "isinstance": isinstance,
    "len": len,
    "list": list,
    "map": map,
    "max": max,
    "min": min,
    "range": range,
    "reversed": reversed,
    "round": round,
    "set": set,
    "sorted": sorted,
    "str": str,
    "sum": sum,
    "tuple": tuple,
    "zip": zip,
    "True": True,
    "False": False,
    "None": None,
    "Exception": Exception,
    "ValueError": ValueError,
    "TypeError": TypeError,
    "KeyError": KeyError,
}


def execute(request):
    variables = request.get("variables") or {}
    logs = []

    def log(message, level="info"):
        logs.append({"level": str(level), "message": str(message)})

    namespace = {"__builtins__": dict(SAFE_BUILTINS)}
    for name in request.get("allowed_modules") or ():
        if name in MODULES:
            namespace[name] = MODULES[name]

    try:
        exec(compile(request["source"], "<script>", "exec"), namespace)
        result = namespace[SCRIPT_FUNCTION](request.get("data"), variables, log)
    except Exception as e:
        return {"ok": False, "result": None, "variables": variables, "logs": logs, "error": f"{type(e).__name__}: {e}"}
    return {"ok": True, "result": result, "variables": variables, "logs": logs, "error": None}


def main():
    request = json.loads(sys.stdin.read())
    response = execute(request)
    sys.stdout.write(json.dumps(response, default=str))
    sys.stdout.flush()


if __name__ == "__main__":
    main()
