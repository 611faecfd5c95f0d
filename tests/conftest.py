"""Pytest configuration and shared fixtures for nodeflow tests.

This module contains fixtures used across multiple test modules.
"""

from pathlib import Path

import pytest

from nodeflow.engine.context import ExecutionContext
from nodeflow.nodes.registry import NodeRegistry, create_default_registry
from nodeflow.providers.base import NodeServices
from nodeflow.providers.memory import (
    InMemorySearchProvider,
    RecordingChannelAdapter,
    StaticCompletionProvider,
)


@pytest.fixture
def context() -> ExecutionContext:
    """Return an empty execution context."""
    return ExecutionContext(workflow_id="test-workflow")


@pytest.fixture
def services() -> NodeServices:
    """Return in-memory services for nodes that call collaborators."""
    search = InMemorySearchProvider()
    search.add("Refunds are processed within 5 business days.", source="refunds.md", topic="billing")
    search.add("Reset your password from the account page.", source="password.md", topic="account")
    return NodeServices(
        channel=RecordingChannelAdapter(),
        completion=StaticCompletionProvider("Hello from the model"),
        search=search,
    )


@pytest.fixture
def registry(services: NodeServices) -> NodeRegistry:
    """Return a registry with every built-in node type."""
    return create_default_registry(services)


@pytest.fixture
def age_routing_yaml() -> str:
    """Return a workflow that routes adults and minors to different responses."""
    return """\
workflow:
  id: age-routing
  name: Age routing
  entry_point: start

variables:
  age: 0

nodes:
  - id: start
    type: start
  - id: check_age
    type: conditional_logic
    config:
      condition_groups:
        - id: adult
          operator: AND
          conditions:
            - field: age
              operator: greater_than
              value: 18
              type: number
      paths:
        adult_path:
          name: Adult
          condition_group_id: adult
      default_path: default
  - id: adult_reply
    type: response
    config:
      message: "Welcome, adult aged {{ data.age }}"
  - id: minor_reply
    type: response
    config:
      message: "Sorry, you must be over 18"

connections:
  - source: start
    source_port: output
    target: check_age
  - source: check_age
    source_port: adult_path
    target: adult_reply
  - source: check_age
    source_port: default
    target: minor_reply
"""


@pytest.fixture
def tmp_workflow_file(tmp_path: Path, age_routing_yaml: str) -> Path:
    """Create a temporary workflow YAML file."""
    workflow_file = tmp_path / "age-routing.yaml"
    workflow_file.write_text(age_routing_yaml)
    return workflow_file
