"""Canonical records exchanged between the agentify components."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Mapping, Sequence

__all__ = [
    "ProviderKind",
    "MessageRole",
    "Message",
    "ToolCall",
    "ChatResponse",
    "parse_tool_arguments",
    "coerce_messages",
]

LOGGER = logging.getLogger(__name__)

MessageRole = Literal["system", "user", "assistant", "tool"]
_MESSAGE_ROLES: frozenset[str] = frozenset({"system", "user", "assistant", "tool"})


class ProviderKind(str, Enum):
    """Closed set of provider families understood by the core."""

    OPENAI = "openai"
    DEEPSEEK = "deepseek"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    CUSTOM = "custom"

    @classmethod
    def coerce(cls, value: "ProviderKind | str | None") -> "ProviderKind":
        """Resolve ``value`` to a member; unknown keys fall back to ``CUSTOM``."""

        if isinstance(value, ProviderKind):
            return value
        key = value.strip().lower() if isinstance(value, str) else ""
        try:
            return cls(key)
        except ValueError:
            if key or (value is not None and not isinstance(value, str)):
                LOGGER.debug("Unknown provider %r; using OpenAI-compatible custom handling", value)
            return cls.CUSTOM

    @property
    def is_openai_compatible(self) -> bool:
        return self in (ProviderKind.OPENAI, ProviderKind.DEEPSEEK, ProviderKind.CUSTOM)


@dataclass(slots=True)
class Message:
    """One conversation turn. Insertion order of a sequence is conversation order."""

    role: MessageRole
    content: str | None = ""
    tool_calls: list[dict[str, Any]] | None = None
    tool_call_id: str | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        if self.role not in _MESSAGE_ROLES:
            raise ValueError(f"Unsupported message role: {self.role!r}")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [dict(call) for call in self.tool_calls]
        if self.tool_call_id:
            payload["tool_call_id"] = self.tool_call_id
        if self.name:
            payload["name"] = self.name
        return payload

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Message":
        return cls(
            role=data.get("role", "user"),
            content=data.get("content", ""),
            tool_calls=list(data["tool_calls"]) if data.get("tool_calls") else None,
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )


@dataclass(slots=True)
class ToolCall:
    """A provider-emitted request to invoke a tool.

    ``arguments`` keeps whatever the provider sent: a mapping, or the raw JSON
    text accumulated from a stream. ``id`` may be absent (Gemini).
    """

    name: str
    arguments: Mapping[str, Any] | str = field(default_factory=dict)
    id: str | None = None
    type: str = "function"

    def parsed_arguments(self) -> dict[str, Any]:
        return parse_tool_arguments(self.arguments)

    def arguments_json(self) -> str:
        if isinstance(self.arguments, str):
            return self.arguments
        return json.dumps(dict(self.arguments or {}), ensure_ascii=False)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "arguments": self.arguments if isinstance(self.arguments, str) else dict(self.arguments or {}),
            "type": self.type,
        }
        if self.id is not None:
            payload["id"] = self.id
        return payload


@dataclass(slots=True)
class ChatResponse:
    """Normalized result of a single (non-streamed) completion."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None
    usage: Mapping[str, Any] | None = None
    thinking_content: str = ""

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "tool_calls": [call.to_dict() for call in self.tool_calls],
            "finish_reason": self.finish_reason,
            "usage": dict(self.usage) if self.usage else None,
            "thinking_content": self.thinking_content,
        }


def parse_tool_arguments(arguments: Any) -> dict[str, Any]:
    """Best-effort conversion of provider tool arguments into a mapping.

    JSON text is decoded; undecodable text or non-object JSON yields ``{}``.
    """

    if isinstance(arguments, str):
        if not arguments.strip():
            return {}
        try:
            parsed = json.loads(arguments)
        except ValueError:
            LOGGER.debug("Discarding undecodable tool arguments: %.200s", arguments)
            return {}
        return parsed if isinstance(parsed, dict) else {}
    if isinstance(arguments, Mapping):
        return dict(arguments)
    return {}


def coerce_messages(messages: Sequence[Message | Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Return plain mapping copies of ``messages`` preserving order."""

    normalized: list[dict[str, Any]] = []
    for message in messages:
        if isinstance(message, Message):
            normalized.append(message.to_dict())
        elif isinstance(message, Mapping):
            normalized.append(dict(message))
        else:
            raise TypeError("Messages must be Message instances or mapping-like objects")
    return normalized
