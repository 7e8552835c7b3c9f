"""Records used by the tool registry and executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Union

from ..errors import AgentifyError

__all__ = [
    "ToolHandler",
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolRegistrationOutcome",
]


# -----------------------------------------------------------------------------
# Tool Handler Types
# -----------------------------------------------------------------------------

# Handlers receive the validated parameter mapping; sync or async.
ToolHandler = Callable[[dict[str, Any]], Union[Any, Awaitable[Any]]]


# -----------------------------------------------------------------------------
# Tool Definition
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolDefinition:
    """A registered tool.

    Attributes:
        name: Unique identifier for the tool.
        description: Human-readable description sent to the model.
        parameters: ``{name: {type, required, ...}}`` mapping or a full JSON
            object schema.
        execute: Optional handler invoked with the parameter mapping.
        instruction: Extra guidance appended to the description.
        instruction_file: Source the instruction was loaded from, if any.
    """

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)
    execute: ToolHandler | None = None
    instruction: str = ""
    instruction_file: Any = None

    @property
    def full_description(self) -> str:
        if self.instruction:
            return f"{self.description}\n\n{self.instruction}"
        return self.description

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "instruction": self.instruction,
            "parameters": dict(self.parameters),
            "has_execute": self.execute is not None,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ToolDefinition":
        return cls(
            name=data["name"],
            description=data["description"],
            parameters=dict(data.get("parameters") or {}),
            execute=data.get("execute"),
            instruction=data.get("instruction") or "",
            instruction_file=data.get("instruction_file"),
        )


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolExecutionResult:
    """Outcome of one successful (or failed) tool execution.

    ``duration`` is in milliseconds.
    """

    success: bool
    tool_name: str
    result: Any = None
    duration: float = 0.0
    error: AgentifyError | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "tool_name": self.tool_name,
            "result": self.result,
            "duration": self.duration,
        }
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        return payload


@dataclass(slots=True)
class ToolRegistrationOutcome:
    """Per-item result of :meth:`ToolRegistry.register_tools`."""

    success: bool
    tool_name: str | None
    tool: ToolDefinition | None = None
    error: BaseException | None = None
