# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Exception hierarchy for nodeflow.

This module defines all custom exceptions used throughout the engine.
All exceptions inherit from NodeflowError and support optional suggestions
to help users resolve issues.

Node implementations do not raise these for expected failures. They return
a failed ExecutionResult instead, and raising is reserved for configuration
loading and programming errors.
"""

from __future__ import annotations


class NodeflowError(Exception):
    """Base exception for all nodeflow errors.

    Supports optional file path, line number, and suggestion to help
    users understand what went wrong and how to fix it.

    Attributes:
        suggestion: Optional actionable advice for resolving the error.
        file_path: Optional path to the file where the error occurred.
        line_number: Optional line number where the error occurred.
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        file_path: str | None = None,
        line_number: int | None = None,
    ) -> None:
        """Initialize a NodeflowError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            file_path: Optional path to the file where the error occurred.
            line_number: Optional line number where the error occurred.
        """
        self.suggestion = suggestion
        self.file_path = file_path
        self.line_number = line_number
        super().__init__(message)

    @property
    def message(self) -> str:
        """Return the bare message without location or suggestion."""
        return self.args[0] if self.args else ""

    def _format_location(self) -> str:
        if not (self.file_path or self.line_number):
            return ""
        location_parts = []
        if self.file_path:
            location_parts.append(f"File: {self.file_path}")
        if self.line_number:
            location_parts.append(f"Line: {self.line_number}")
        return "\n\n📍 Location: " + ", ".join(location_parts)

    def __str__(self) -> str:
        """Format the error message with location and suggestion."""
        msg = self.message + self._format_location()
        if self.suggestion:
            msg += f"\n\n💡 Suggestion: {self.suggestion}"
        return msg

    @property
    def error_type(self) -> str:
        """Return the type name for display purposes."""
        return self.__class__.__name__


class ConfigurationError(NodeflowError):
    """Raised when a workflow or node configuration is invalid.

    This includes malformed YAML, missing required fields, unknown node
    types, dangling connections, and out-of-range parameters.

    Attributes:
        field_path: Optional path to the invalid field (e.g., 'nodes.2.config.step').
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        file_path: str | None = None,
        line_number: int | None = None,
        field_path: str | None = None,
    ) -> None:
        """Initialize a ConfigurationError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            file_path: Optional path to the file where the error occurred.
            line_number: Optional line number where the error occurred.
            field_path: Optional path to the invalid configuration field.
        """
        self.field_path = field_path

        if suggestion is None:
            suggestion = self._generate_suggestion(message, field_path)

        super().__init__(message, suggestion, file_path, line_number)

    def _generate_suggestion(self, message: str, field_path: str | None) -> str | None:
        """Generate helpful suggestions based on error message and field."""
        msg_lower = message.lower()

        if "entry_point" in msg_lower:
            return "Ensure entry_point matches a node id defined in the 'nodes' list"

        if "unknown node type" in msg_lower:
            return "Run 'nodeflow types' to list the registered node types"

        if "connection" in msg_lower and "unknown" in msg_lower:
            return "Check that every connection references existing node ids and port names"

        if "required" in msg_lower:
            return f"Add the missing required field{' at ' + field_path if field_path else ''}"

        if "type" in msg_lower or "validation" in msg_lower:
            return "Check the field type matches the expected schema type"

        return None

    def __str__(self) -> str:
        """Format the error message with field path, location and suggestion."""
        msg = self.message

        if self.field_path:
            msg += f"\n\n📋 Field: {self.field_path}"

        msg += self._format_location()

        if self.suggestion:
            msg += f"\n\n💡 Suggestion: {self.suggestion}"
        return msg


class TemplateError(NodeflowError):
    """Raised when Jinja2 template rendering fails.

    This includes undefined variables, syntax errors, and filter errors
    in message, content, and prompt templates.
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        file_path: str | None = None,
        line_number: int | None = None,
        undefined_variable: str | None = None,
    ) -> None:
        """Initialize a TemplateError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            file_path: Optional path to the file where the error occurred.
            line_number: Optional line number where the error occurred.
            undefined_variable: Optional name of the undefined variable.
        """
        self.undefined_variable = undefined_variable

        if suggestion is None:
            if undefined_variable:
                suggestion = (
                    f"Variable '{undefined_variable}' is not defined. "
                    "Templates can use data.*, variables.*, metadata.* and any variable name"
                )
            elif "syntax" in message.lower():
                suggestion = (
                    "Check Jinja2 template syntax: ensure {{ }} are balanced "
                    "and filters use | correctly"
                )

        super().__init__(message, suggestion, file_path, line_number)


class ConditionError(NodeflowError):
    """Raised when a condition tree cannot be evaluated.

    Operator failures never raise; they evaluate to false. This error is
    reserved for structural problems such as a group that contains itself.
    """


class ExpressionError(NodeflowError):
    """Raised when a restricted expression fails to parse or evaluate."""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        expression: str | None = None,
    ) -> None:
        """Initialize an ExpressionError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            expression: The expression that failed.
        """
        self.expression = expression
        if suggestion is None:
            suggestion = (
                "Expressions may use arithmetic, comparisons, data.*, item.*, $variables "
                "and the functions abs, round, min, max, len, sum, int, float, str, bool"
            )
        super().__init__(message, suggestion)


class TransformError(NodeflowError):
    """Raised when a single transform rule fails.

    Attributes:
        rule_index: Position of the failing rule in the pipeline.
        operation: The operation tag of the failing rule.
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        rule_index: int | None = None,
        operation: str | None = None,
    ) -> None:
        """Initialize a TransformError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            rule_index: Position of the failing rule in the pipeline.
            operation: The operation tag of the failing rule.
        """
        self.rule_index = rule_index
        self.operation = operation
        super().__init__(message, suggestion)


class ProviderError(NodeflowError):
    """Raised when an external collaborator fails.

    This includes HTTP errors from automation platforms, channel adapter
    failures, and completion or search provider errors.
    """

    # HTTP status codes that should NOT be retried
    NON_RETRYABLE_CODES = {400, 401, 403, 404, 422}

    # HTTP status codes that SHOULD be retried
    RETRYABLE_CODES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        file_path: str | None = None,
        line_number: int | None = None,
        status_code: int | None = None,
        provider_name: str | None = None,
        is_retryable: bool | None = None,
    ) -> None:
        """Initialize a ProviderError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            file_path: Optional path to the file where the error occurred.
            line_number: Optional line number where the error occurred.
            status_code: Optional HTTP status code from the provider.
            provider_name: Optional name of the provider.
            is_retryable: Optional override for retryability. If None, determined by status_code.
        """
        self.status_code = status_code
        self.provider_name = provider_name

        if is_retryable is not None:
            self._is_retryable = is_retryable
        elif status_code is not None:
            self._is_retryable = status_code in self.RETRYABLE_CODES
        else:
            self._is_retryable = "connection" in message.lower() or "timeout" in message.lower()

        if suggestion is None:
            suggestion = self._generate_suggestion(message, status_code)

        super().__init__(message, suggestion, file_path, line_number)

    def _generate_suggestion(self, message: str, status_code: int | None) -> str | None:
        """Generate helpful suggestions based on error status code."""
        if status_code == 401:
            return "Check the API key configured for the automation platform"
        elif status_code == 403:
            return "Check your access permissions. You may not have access to this resource"
        elif status_code == 404:
            return "The requested workflow or execution was not found"
        elif status_code == 429:
            return "Rate limit exceeded. Configure retry_count to retry automatically"
        elif status_code and 500 <= status_code < 600:
            return "Server error. Configure retry_count to retry automatically"
        elif "connection" in message.lower():
            return "Check your network connection and try again"
        return None

    @property
    def is_retryable(self) -> bool:
        """Return whether this error should trigger a retry."""
        return self._is_retryable


class ExecutionError(NodeflowError):
    """Raised when node or graph execution fails.

    Base class for execution-related errors. More specific execution
    errors inherit from this class.
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        file_path: str | None = None,
        line_number: int | None = None,
        node_id: str | None = None,
    ) -> None:
        """Initialize an ExecutionError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            file_path: Optional path to the file where the error occurred.
            line_number: Optional line number where the error occurred.
            node_id: Optional id of the node where the error occurred.
        """
        self.node_id = node_id
        super().__init__(message, suggestion, file_path, line_number)


class ScriptError(ExecutionError):
    """Raised when a sandboxed script fails to run or returns an error."""


class ScriptTimeoutError(ScriptError):
    """Raised when a sandboxed script exceeds its timeout.

    Attributes:
        timeout_seconds: The configured timeout limit.
    """

    def __init__(
        self,
        message: str,
        *,
        timeout_seconds: float,
        node_id: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        """Initialize a ScriptTimeoutError.

        Args:
            message: The error message describing what went wrong.
            timeout_seconds: The configured timeout limit.
            node_id: Optional id of the script node.
            suggestion: Optional advice for resolving the error.
        """
        self.timeout_seconds = timeout_seconds
        if suggestion is None:
            suggestion = (
                f"Increase timeout_seconds (currently {timeout_seconds}s) "
                "or check the script for unbounded loops"
            )
        super().__init__(message, suggestion, node_id=node_id)


class SubworkflowError(ExecutionError):
    """Raised when a subworkflow invocation fails.

    Attributes:
        workflow_id: The id of the invoked workflow.
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        node_id: str | None = None,
        workflow_id: str | None = None,
    ) -> None:
        """Initialize a SubworkflowError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            node_id: Optional id of the subworkflow node.
            workflow_id: The id of the invoked workflow.
        """
        self.workflow_id = workflow_id
        super().__init__(message, suggestion, node_id=node_id)


class SubworkflowTimeoutError(SubworkflowError):
    """Raised when a synchronous subworkflow does not finish in time.

    Attributes:
        execution_id: The handle of the execution that was still running.
        timeout_seconds: The configured timeout limit.
    """

    def __init__(
        self,
        message: str,
        *,
        timeout_seconds: float,
        execution_id: str | None = None,
        workflow_id: str | None = None,
    ) -> None:
        """Initialize a SubworkflowTimeoutError.

        Args:
            message: The error message describing what went wrong.
            timeout_seconds: The configured timeout limit.
            execution_id: The handle of the execution that was still running.
            workflow_id: The id of the invoked workflow.
        """
        self.timeout_seconds = timeout_seconds
        self.execution_id = execution_id
        super().__init__(
            message,
            suggestion=f"Increase timeout_seconds (currently {timeout_seconds}s) "
            "or use execution_mode 'async'",
            workflow_id=workflow_id,
        )


class NodeRegistrationError(NodeflowError):
    """Raised when a node type cannot be registered.

    This includes duplicate type identifiers and classes that do not
    implement the Node contract.
    """
