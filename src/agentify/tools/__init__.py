"""Tool registration, validation and execution."""

from .executor import DEFAULT_TOOL_TIMEOUT, ToolExecutor
from .registry import ToolRegistry
from .types import ToolDefinition, ToolExecutionResult, ToolHandler, ToolRegistrationOutcome
from .validation import check_tool_schema, json_type_name, validate_tool, validate_tool_parameters

__all__ = [
    # types.py
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolHandler",
    "ToolRegistrationOutcome",
    # registry.py
    "ToolRegistry",
    # executor.py
    "ToolExecutor",
    "DEFAULT_TOOL_TIMEOUT",
    # validation.py
    "validate_tool",
    "validate_tool_parameters",
    "check_tool_schema",
    "json_type_name",
]
