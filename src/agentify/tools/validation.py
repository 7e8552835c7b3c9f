"""Definition and parameter validation for registered tools."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, MutableMapping

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError, UndefinedTypeCheck

from ..errors import ErrorManager, SystemCodes, ToolCodes, ToolError
from ..utils.formatters import format_tool_parameters
from .types import ToolDefinition

__all__ = [
    "validate_tool",
    "check_tool_schema",
    "validate_tool_parameters",
    "json_type_name",
]

_TYPE_CHECKER = Draft202012Validator.TYPE_CHECKER


def json_type_name(value: Any) -> str:
    """JSON type name for a Python value."""

    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def validate_tool(tool: Any, error_manager: ErrorManager) -> None:
    """Check the shape of a tool definition before registration.

    Raises:
        AgentifySystemError: INVALID_PARAMETER when ``tool`` is not a mapping or
            definition, VALIDATION_FAILED for bad field values.
    """

    if isinstance(tool, ToolDefinition):
        fields: Mapping[str, Any] = {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters,
            "execute": tool.execute,
        }
    elif isinstance(tool, Mapping):
        fields = tool
    else:
        raise error_manager.create_system_error(
            "Tool must be an object",
            SystemCodes.INVALID_PARAMETER,
            {"provided_type": type(tool).__name__},
        )

    name = fields.get("name")
    if not isinstance(name, str) or not name.strip():
        raise error_manager.create_system_error(
            "Tool must have a valid name",
            SystemCodes.VALIDATION_FAILED,
            {"tool": _describe(fields)},
        )
    description = fields.get("description")
    if not isinstance(description, str) or not description.strip():
        raise error_manager.create_system_error(
            "Tool must have a valid description",
            SystemCodes.VALIDATION_FAILED,
            {"tool_name": name},
        )
    parameters = fields.get("parameters")
    if parameters is not None and not isinstance(parameters, Mapping):
        raise error_manager.create_system_error(
            "Tool parameters must be an object",
            SystemCodes.VALIDATION_FAILED,
            {"tool_name": name, "provided_type": type(parameters).__name__},
        )
    execute = fields.get("execute")
    if execute is not None and not callable(execute):
        raise error_manager.create_system_error(
            "Tool execute must be a function",
            SystemCodes.VALIDATION_FAILED,
            {"tool_name": name, "provided_type": type(execute).__name__},
        )


def check_tool_schema(tool: ToolDefinition, error_manager: ErrorManager) -> dict[str, Any]:
    """Return the JSON schema generated for ``tool`` after checking it is valid."""

    schema = format_tool_parameters(tool.parameters)
    try:
        Draft202012Validator.check_schema(schema)
    except SchemaError as exc:
        raise error_manager.create_tool_error(
            f"Invalid parameter schema for tool: {tool.name}",
            ToolCodes.INVALID_DEFINITION,
            {"tool_name": tool.name, "original_error": exc.message, "schema": schema},
        ) from exc
    return schema


def validate_tool_parameters(
    tool: ToolDefinition,
    parameters: MutableMapping[str, Any],
    error_manager: ErrorManager,
) -> bool:
    """Check ``parameters`` against the tool's declared parameter types.

    Numbers passed for ``string`` parameters are converted in place. Type
    membership follows the JSON Schema type checker, so ``3.0`` is an
    ``integer``; declared types it does not define are not checked.

    Raises:
        ToolError: INVALID_PARAMS for a missing required value or a type
            mismatch; details name the parameter.
    """

    for key, definition, required in _iter_declared(tool.parameters):
        value = parameters.get(key)
        if required and value is None:
            raise error_manager.create_tool_error(
                f"Missing required parameter: {key}",
                ToolCodes.INVALID_PARAMS,
                {"tool_name": tool.name, "parameter": key, "provided": dict(parameters)},
            )
        expected = definition.get("type")
        if value is None or not isinstance(expected, str) or not _is_known_type(expected):
            continue
        if expected == "array" and not _TYPE_CHECKER.is_type(value, "array"):
            raise _type_error(error_manager, tool.name, key, expected, value, f"Parameter {key} must be an array")
        if expected == "string" and isinstance(value, (int, float)) and not isinstance(value, bool):
            parameters[key] = _number_text(value)
        elif not _TYPE_CHECKER.is_type(value, expected):
            raise _type_error(error_manager, tool.name, key, expected, value, f"Parameter {key} has wrong type")
    return True


def _is_known_type(name: str) -> bool:
    try:
        _TYPE_CHECKER.is_type(None, name)
    except UndefinedTypeCheck:
        return False
    return True


def _iter_declared(schema: Mapping[str, Any] | None):
    if not schema:
        return
    if schema.get("type") == "object" and isinstance(schema.get("properties"), Mapping):
        required = set(schema.get("required") or ())
        for key, definition in schema["properties"].items():
            if isinstance(definition, Mapping):
                yield key, definition, key in required or definition.get("required") is True
        return
    for key, definition in schema.items():
        if isinstance(definition, Mapping):
            yield key, definition, definition.get("required") is True
        elif isinstance(definition, str):
            yield key, {"type": definition}, False


def _number_text(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _type_error(
    error_manager: ErrorManager,
    tool_name: str,
    key: str,
    expected: str,
    value: Any,
    message: str,
) -> ToolError:
    return error_manager.create_tool_error(
        message,
        ToolCodes.INVALID_PARAMS,
        {
            "tool_name": tool_name,
            "parameter": key,
            "expected_type": expected,
            "actual_type": json_type_name(value),
        },
    )


def _describe(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if key != "execute"}

