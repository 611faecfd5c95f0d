# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""nodeflow - A node-graph workflow execution engine for conversational agents.

nodeflow interprets a directed graph of typed nodes (branches, loops, data
transforms, sandboxed scripts, and external workflow calls) and drives them
to completion against a shared execution context.

Example:
    Run a workflow from the command line::

        $ nodeflow run workflow.yaml --input age=21

    Or use the library programmatically::

        from nodeflow.config.loader import load_config
        from nodeflow.engine.graph import GraphExecutor
        from nodeflow.nodes.registry import create_default_registry

        config = load_config("workflow.yaml")
        executor = GraphExecutor(config, create_default_registry())
        context = await executor.run({"age": 21})

Modules:
    config: Workflow file loading, schema validation, and graph validation.
    engine: Execution context, conditions, expressions, transforms, and the graph executor.
    nodes: Node contract, registry, and the built-in node types.
    providers: Interfaces and clients for external collaborators.
    sandbox: Subprocess runner for script nodes.
    cli: Command-line interface commands.
    exceptions: Custom exception hierarchy.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
