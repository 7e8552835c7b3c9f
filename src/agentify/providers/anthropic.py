"""Anthropic messages API adapter."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

from ..config import AgentConfig
from ..model_types import ChatResponse, Message, ProviderKind, ToolCall
from .base import ProviderAdapter, tool_fields

__all__ = ["AnthropicAdapter", "ANTHROPIC_VERSION", "DEFAULT_MAX_TOKENS"]

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicAdapter(ProviderAdapter):
    """Adapter for ``/v1/messages``.

    The system prompt moves to the top-level ``system`` field and
    ``max_tokens`` is always sent because the API requires it.
    """

    kind = ProviderKind.ANTHROPIC

    def format_request(
        self,
        messages: Sequence[Message | Mapping[str, Any]],
        tools: Sequence[Any] | None = None,
        config: AgentConfig | None = None,
    ) -> dict[str, Any]:
        settings = self._effective_config(config)
        system, conversation = self._split_system(messages)
        request: dict[str, Any] = {
            "model": settings.model,
            "messages": conversation,
            "temperature": settings.temperature,
            "stream": settings.stream,
            "max_tokens": settings.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if system is not None:
            request["system"] = system
        if tools:
            request["tools"] = self.format_tools(tools)
        return request

    def format_tools(self, tools: Iterable[Any]) -> list[dict[str, Any]]:
        formatted = []
        for tool in tools:
            name, description, parameters = tool_fields(tool)
            formatted.append({"name": name, "description": description, "input_schema": parameters})
        return formatted

    def parse_response(self, data: Mapping[str, Any]) -> ChatResponse:
        blocks = data.get("content")
        if not blocks or not isinstance(blocks, list):
            raise self._invalid_response("No content in response", data)

        text_parts: list[str] = []
        thinking_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in blocks:
            block_type = block.get("type")
            if block_type == "text":
                text_parts.append(block.get("text") or "")
            elif block_type == "tool_use":
                tool_calls.append(
                    ToolCall(
                        name=block.get("name", ""),
                        arguments=dict(block.get("input") or {}),
                        id=block.get("id"),
                        type="tool_use",
                    )
                )
            elif block_type == "thinking":
                thinking_parts.append(block.get("thinking") or "")

        return ChatResponse(
            content="".join(text_parts),
            tool_calls=tool_calls,
            finish_reason=data.get("stop_reason"),
            usage=data.get("usage"),
            thinking_content="".join(thinking_parts),
        )

    def extract_thinking(self, data: Mapping[str, Any]) -> str | None:
        for block in data.get("content") or ():
            if block.get("type") == "thinking":
                return block.get("thinking")
        return None

    def format_tool_results(self, tool_calls: Sequence[ToolCall], results: Sequence[Any]) -> list[dict[str, Any]]:
        blocks = [
            {
                "type": "tool_result",
                "tool_use_id": call.id,
                "content": self._result_json(results[index] if index < len(results) else None),
            }
            for index, call in enumerate(tool_calls)
        ]
        return [{"role": "user", "content": blocks}]

    def format_assistant_message(self, content: str, tool_calls: Sequence[ToolCall]) -> dict[str, Any]:
        blocks: list[dict[str, Any]] = []
        if content:
            blocks.append({"type": "text", "text": content})
        for call in tool_calls:
            blocks.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.parsed_arguments()})
        return {"role": "assistant", "content": blocks}

    def get_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.config.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
        }
