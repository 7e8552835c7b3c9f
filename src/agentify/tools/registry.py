"""Tool registry keyed by tool name.

Tools arrive as mappings or :class:`ToolDefinition` instances. Instruction
text can come inline or from a source resolved through :mod:`agentify.loaders`.
Registering a name that already exists replaces the previous definition.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ..errors import AgentifySystemError, ErrorManager, SystemCodes, ToolCodes, ToolError
from ..loaders import read_text_source, source_name
from ..model_types import ProviderKind
from ..utils.formatters import format_tool_parameters
from .types import ToolDefinition, ToolRegistrationOutcome
from .validation import check_tool_schema, validate_tool

__all__ = ["ToolRegistry"]

LOGGER = logging.getLogger(__name__)


class ToolRegistry:
    """Registry for managing tool registrations.

    Example:
        registry = ToolRegistry(ErrorManager())
        await registry.register_tool({
            "name": "search",
            "description": "Search the web",
            "parameters": {"q": {"type": "string", "required": True}},
            "execute": search,
        })
        registry.get_tool_definitions(ProviderKind.ANTHROPIC)
    """

    def __init__(self, error_manager: ErrorManager) -> None:
        self._error_manager = error_manager
        self._tools: dict[str, ToolDefinition] = {}

    async def register_tool(self, tool: Mapping[str, Any] | ToolDefinition) -> ToolDefinition:
        """Validate and store a tool definition.

        Args:
            tool: Mapping with ``name``, ``description`` and optional
                ``parameters``, ``execute``, ``instruction`` and
                ``instruction_file``; or a ``ToolDefinition``.

        Returns:
            The stored definition.

        Raises:
            AgentifySystemError: invalid definition, or the instruction file
                could not be loaded (INIT_FAILED).
            ToolError: INVALID_DEFINITION for an unusable parameter schema,
                REGISTRATION_FAILED for anything else.
        """

        validate_tool(tool, self._error_manager)
        raw = _as_mapping(tool)
        name = raw["name"]

        try:
            instruction = raw.get("instruction") or ""
            instruction_file = raw.get("instruction_file")
            if instruction_file is not None:
                instruction = await self._load_instruction(instruction_file)

            definition = ToolDefinition(
                name=name,
                description=raw["description"],
                parameters=dict(raw.get("parameters") or {}),
                execute=raw.get("execute"),
                instruction=instruction,
                instruction_file=instruction_file,
            )
            check_tool_schema(definition, self._error_manager)
        except (AgentifySystemError, ToolError):
            raise
        except Exception as exc:
            raise self._error_manager.create_tool_error(
                f"Failed to register tool: {name}",
                ToolCodes.REGISTRATION_FAILED,
                {"tool_name": name, "original_error": str(exc)},
            ) from exc

        if name in self._tools:
            LOGGER.debug("Replacing existing tool registration: %s", name)
        self._tools[name] = definition
        LOGGER.debug("Registered tool: %s", name)
        return definition

    async def register_tools(self, tools: Sequence[Mapping[str, Any] | ToolDefinition]) -> list[ToolRegistrationOutcome]:
        """Register each tool independently and report per-item outcomes."""

        if isinstance(tools, (str, bytes, Mapping)) or not isinstance(tools, Sequence):
            raise self._error_manager.create_system_error(
                "Tools must be an array",
                SystemCodes.INVALID_PARAMETER,
                {"provided_type": type(tools).__name__},
            )

        outcomes: list[ToolRegistrationOutcome] = []
        for tool in tools:
            try:
                registered = await self.register_tool(tool)
            except (AgentifySystemError, ToolError) as exc:
                outcomes.append(ToolRegistrationOutcome(False, _tool_name(tool), error=exc))
            else:
                outcomes.append(ToolRegistrationOutcome(True, registered.name, tool=registered))
        return outcomes

    async def _load_instruction(self, source: Any) -> str:
        try:
            return await read_text_source(source)
        except Exception as exc:
            raise self._error_manager.create_system_error(
                "Failed to load instruction file",
                SystemCodes.INIT_FAILED,
                {"file_name": source_name(source), "original_error": str(exc)},
            ) from exc

    def get_tool(self, name: str) -> ToolDefinition:
        """Return the tool registered as ``name``.

        Raises:
            ToolError: NOT_FOUND, with the available names in ``details``.
        """

        tool = self._tools.get(name)
        if tool is None:
            raise self._error_manager.create_tool_error(
                f"Tool not found: {name}",
                ToolCodes.NOT_FOUND,
                {"tool_name": name, "available_tools": list(self._tools)},
            )
        return tool

    def get_all_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def get_tool_definitions(self, provider: ProviderKind | str = ProviderKind.OPENAI) -> list[dict[str, Any]]:
        """Project every tool into the shape ``provider``'s ``format_tools`` expects.

        Descriptions carry the instruction text after a blank line.
        """

        kind = ProviderKind.coerce(provider)
        definitions: list[dict[str, Any]] = []
        for tool in self._tools.values():
            name = tool.name or ""
            description = tool.full_description or ""
            schema = format_tool_parameters(tool.parameters)
            if kind in (ProviderKind.OPENAI, ProviderKind.DEEPSEEK):
                definitions.append(
                    {"type": "function", "function": {"name": name, "description": description, "parameters": schema}}
                )
            elif kind is ProviderKind.ANTHROPIC:
                definitions.append({"name": name, "description": description, "input_schema": schema})
            else:
                definitions.append({"name": name, "description": description, "parameters": schema})
        return definitions

    def remove_tool(self, name: str) -> bool:
        existed = name in self._tools
        self._tools.pop(name, None)
        if existed:
            LOGGER.debug("Removed tool: %s", name)
        return existed

    def clear_tools(self) -> None:
        self._tools.clear()

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get_tool_count(self) -> int:
        return len(self._tools)

    def names(self) -> list[str]:
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools


def _as_mapping(tool: Mapping[str, Any] | ToolDefinition) -> Mapping[str, Any]:
    if isinstance(tool, ToolDefinition):
        return {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters,
            "execute": tool.execute,
            "instruction": tool.instruction,
            "instruction_file": tool.instruction_file,
        }
    return tool


def _tool_name(tool: Any) -> str | None:
    if isinstance(tool, ToolDefinition):
        return tool.name
    if isinstance(tool, Mapping):
        name = tool.get("name")
        return name if isinstance(name, str) else None
    return None
