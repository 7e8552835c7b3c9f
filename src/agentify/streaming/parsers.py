"""Line-oriented parsers for provider streaming formats.

Each parser consumes the complete lines of ``session.buffer``, leaves the
trailing partial line in place and returns the events in arrival order.
Lines that are not valid JSON, or are JSON of an unexpected shape, are skipped
on their own; the remaining lines of the batch are still parsed.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from ..model_types import ProviderKind, ToolCall
from .events import PendingToolCall, StreamEvent, StreamSession

__all__ = [
    "parse_openai_buffer",
    "parse_anthropic_buffer",
    "parse_gemini_buffer",
    "parser_for",
]

LOGGER = logging.getLogger(__name__)

_DATA_PREFIX = "data: "
_DONE = "[DONE]"
_SHAPE_ERRORS = (AttributeError, KeyError, TypeError, IndexError)

BufferParser = Callable[[StreamSession], list[StreamEvent]]
_LineParser = Callable[[StreamSession, str], list[StreamEvent]]


def _load(payload: str) -> Any:
    try:
        return json.loads(payload)
    except ValueError:
        LOGGER.debug("Skipping malformed stream line: %.200s", payload)
        return None


def _error_event(data: Any) -> StreamEvent | None:
    if isinstance(data, dict) and data.get("error") and (data.get("type") in (None, "error")):
        return StreamEvent.failure(data["error"])
    return None


def _parse_lines(session: StreamSession, parse_line: _LineParser) -> list[StreamEvent]:
    events: list[StreamEvent] = []
    for raw_line in session.take_lines():
        line = raw_line.strip()
        if not line:
            continue
        try:
            events.extend(parse_line(session, line))
        except _SHAPE_ERRORS as exc:
            LOGGER.debug("Skipping stream line with unexpected shape (%s): %.200s", exc, line)
    return events


# -----------------------------------------------------------------------------
# OpenAI-compatible SSE
# -----------------------------------------------------------------------------


def parse_openai_buffer(session: StreamSession) -> list[StreamEvent]:
    return _parse_lines(session, _openai_line)


def _openai_line(session: StreamSession, line: str) -> list[StreamEvent]:
    if not line.startswith(_DATA_PREFIX):
        return []
    payload = line[len(_DATA_PREFIX):]
    if payload.strip() == _DONE:
        return []
    data = _load(payload)
    if not isinstance(data, dict):
        return []
    failure = _error_event(data)
    if failure is not None:
        return [failure]
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return []
    choice = choices[0]
    delta = choice.get("delta") or {}

    events: list[StreamEvent] = []
    if delta.get("reasoning_content"):
        events.append(StreamEvent.thinking(delta["reasoning_content"]))
    if delta.get("content"):
        events.append(StreamEvent.token(delta["content"]))
    for fragment in delta.get("tool_calls") or ():
        _accumulate(session, fragment)

    finish_reason = choice.get("finish_reason")
    if finish_reason == "tool_calls":
        events.extend(StreamEvent.for_tool_call(call) for call in session.flush_tool_calls())
    if finish_reason:
        events.append(StreamEvent.finish(finish_reason))
    return events


def _accumulate(session: StreamSession, fragment: dict[str, Any]) -> None:
    index = fragment.get("index") or 0
    pending = session.tool_calls.get(index)
    if pending is None:
        pending = session.tool_calls[index] = PendingToolCall(id=fragment.get("id") or "")
    if fragment.get("id"):
        pending.id = fragment["id"]
    function = fragment.get("function") or {}
    if function.get("name"):
        pending.name = function["name"]
    if function.get("arguments"):
        pending.arguments += function["arguments"]


# -----------------------------------------------------------------------------
# Anthropic SSE
# -----------------------------------------------------------------------------


def parse_anthropic_buffer(session: StreamSession) -> list[StreamEvent]:
    return _parse_lines(session, _anthropic_line)


def _anthropic_line(session: StreamSession, line: str) -> list[StreamEvent]:
    if not line.startswith(_DATA_PREFIX):
        return []
    data = _load(line[len(_DATA_PREFIX):])
    if not isinstance(data, dict):
        return []
    event_type = data.get("type")

    if event_type == "error":
        return [StreamEvent.failure(data.get("error") or data)]
    if event_type == "content_block_delta":
        delta = data.get("delta") or {}
        if delta.get("text"):
            return [StreamEvent.token(delta["text"])]
        if delta.get("thinking"):
            return [StreamEvent.thinking(delta["thinking"])]
    elif event_type == "content_block_start":
        block = data.get("content_block") or {}
        if block.get("type") == "tool_use":
            call = ToolCall(
                name=block.get("name", ""),
                arguments=dict(block.get("input") or {}),
                id=block.get("id"),
                type="tool_use",
            )
            return [StreamEvent.for_tool_call(call)]
    elif event_type == "message_stop":
        return [StreamEvent.finish("stop")]
    return []


# -----------------------------------------------------------------------------
# Gemini newline-delimited JSON
# -----------------------------------------------------------------------------


def parse_gemini_buffer(session: StreamSession) -> list[StreamEvent]:
    return _parse_lines(session, _gemini_line)


def _gemini_line(session: StreamSession, line: str) -> list[StreamEvent]:
    if line.startswith(_DATA_PREFIX):
        line = line[len(_DATA_PREFIX):]
    data = _load(line)
    if not isinstance(data, dict):
        return []
    failure = _error_event(data)
    if failure is not None:
        return [failure]
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return []
    candidate = candidates[0]

    events: list[StreamEvent] = []
    for part in (candidate.get("content") or {}).get("parts") or ():
        if part.get("text"):
            events.append(StreamEvent.token(part["text"]))
        if part.get("functionCall"):
            call = part["functionCall"]
            events.append(
                StreamEvent.for_tool_call(ToolCall(name=call.get("name", ""), arguments=dict(call.get("args") or {})))
            )
    if candidate.get("finishReason"):
        events.append(StreamEvent.finish(candidate["finishReason"]))
    return events


_PARSERS: dict[ProviderKind, BufferParser] = {
    ProviderKind.OPENAI: parse_openai_buffer,
    ProviderKind.DEEPSEEK: parse_openai_buffer,
    ProviderKind.ANTHROPIC: parse_anthropic_buffer,
    ProviderKind.GEMINI: parse_gemini_buffer,
    ProviderKind.CUSTOM: parse_openai_buffer,
}


def parser_for(provider: ProviderKind | str | None) -> BufferParser:
    """Parser for ``provider``; unknown providers use OpenAI framing."""

    return _PARSERS[ProviderKind.coerce(provider)]
