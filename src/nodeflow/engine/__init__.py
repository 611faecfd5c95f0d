# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Engine module for nodeflow.

This module contains the execution context, the condition, expression and
transform engines, and the graph executor.
"""

from nodeflow.engine.conditions import Condition, ConditionEvaluator, ConditionGroup
from nodeflow.engine.context import EmittedEvent, ExecutionContext, LogEntry, StepRecord
from nodeflow.engine.graph import GraphExecutor
from nodeflow.engine.transforms import TransformPipeline, TransformRule

__all__ = [
    "Condition",
    "ConditionEvaluator",
    "ConditionGroup",
    "EmittedEvent",
    "ExecutionContext",
    "GraphExecutor",
    "LogEntry",
    "StepRecord",
    "TransformPipeline",
    "TransformRule",
]
