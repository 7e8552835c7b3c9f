"""Events, aggregates and callback bundle for streamed completions."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from ..model_types import ToolCall

__all__ = [
    "StreamEventType",
    "StreamEvent",
    "StreamResult",
    "StreamCallbacks",
    "StreamSession",
    "PendingToolCall",
]


class StreamEventType(str, Enum):
    TOKEN = "token"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    FINISH = "finish"
    ERROR = "error"


@dataclass(slots=True)
class StreamEvent:
    """One parsed unit of a provider stream.

    Only the field matching ``type`` is populated: ``content`` for token and
    thinking, ``tool_call`` for tool_call, ``reason`` for finish and ``error``
    for error.
    """

    type: StreamEventType
    content: str = ""
    tool_call: ToolCall | None = None
    reason: str | None = None
    error: Any = None

    @classmethod
    def token(cls, text: str) -> "StreamEvent":
        return cls(StreamEventType.TOKEN, content=text)

    @classmethod
    def thinking(cls, text: str) -> "StreamEvent":
        return cls(StreamEventType.THINKING, content=text)

    @classmethod
    def for_tool_call(cls, call: ToolCall) -> "StreamEvent":
        return cls(StreamEventType.TOOL_CALL, tool_call=call)

    @classmethod
    def finish(cls, reason: str) -> "StreamEvent":
        return cls(StreamEventType.FINISH, reason=reason)

    @classmethod
    def failure(cls, payload: Any) -> "StreamEvent":
        return cls(StreamEventType.ERROR, error=payload)


@dataclass(slots=True)
class StreamResult:
    """Aggregate handed to ``on_complete`` and returned by ``handle_stream``."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[dict[str, Any]] = field(default_factory=list)
    thinking_content: str = ""
    finish_reason: str = "stop"

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "tool_calls": [call.to_dict() for call in self.tool_calls],
            "tool_results": [
                {"tool_call": entry["tool_call"].to_dict(), "result": entry["result"]} for entry in self.tool_results
            ],
            "thinking_content": self.thinking_content,
            "finish_reason": self.finish_reason,
        }


_Callback = Callable[..., Union[Any, Awaitable[Any]]]


@dataclass(slots=True)
class StreamCallbacks:
    """Optional observers for a stream; any may return an awaitable."""

    on_token: _Callback | None = None
    on_thinking: _Callback | None = None
    on_tool_call: _Callback | None = None
    on_complete: _Callback | None = None
    on_error: _Callback | None = None


@dataclass(slots=True)
class PendingToolCall:
    """Fragments of one streamed tool call gathered by index."""

    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass(slots=True)
class StreamSession:
    """Per-stream parse state: undecoded text and the tool-call accumulator."""

    buffer: str = ""
    tool_calls: "OrderedDict[int, PendingToolCall]" = field(default_factory=OrderedDict)

    def reset(self) -> None:
        self.buffer = ""
        self.tool_calls.clear()

    def take_lines(self) -> list[str]:
        """Split off every complete line, keeping the trailing partial line."""

        lines = self.buffer.split("\n")
        self.buffer = lines.pop()
        return lines

    def flush_tool_calls(self) -> list[ToolCall]:
        calls = [
            ToolCall(name=pending.name, arguments=pending.arguments, id=pending.id or None)
            for pending in self.tool_calls.values()
            if pending.name
        ]
        self.tool_calls.clear()
        return calls
