"""Adapter for generic endpoints that speak an OpenAI-like dialect."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from ..config import AgentConfig
from ..model_types import ChatResponse, Message, ProviderKind, ToolCall, parse_tool_arguments
from .openai_compatible import OpenAIAdapter

__all__ = ["CustomAdapter"]

_FLAT_TEXT_FIELDS = ("text", "response", "output")


class CustomAdapter(OpenAIAdapter):
    """OpenAI request framing plus ``custom_params``; lenient response parsing.

    Responses are tried as OpenAI, then Anthropic, then a flat
    ``text``/``response``/``output`` field, in that order. The lookup order is
    a heuristic: a payload matching several shapes resolves to the first.
    """

    kind = ProviderKind.CUSTOM

    def format_request(
        self,
        messages: Sequence[Message | Mapping[str, Any]],
        tools: Sequence[Any] | None = None,
        config: AgentConfig | None = None,
    ) -> dict[str, Any]:
        settings = self._effective_config(config)
        request = super().format_request(messages, tools, settings)
        request.pop("tool_choice", None)
        if settings.custom_params:
            request.update(settings.custom_params)
        return request

    def parse_response(self, data: Mapping[str, Any]) -> ChatResponse:
        choices = data.get("choices")
        if choices:
            choice = choices[0]
            message = choice.get("message") or {}
            return ChatResponse(
                content=message.get("content") or "",
                tool_calls=self._extract_tool_calls(message),
                finish_reason=choice.get("finish_reason"),
                usage=data.get("usage"),
                thinking_content=message.get("reasoning_content") or "",
            )

        blocks = data.get("content")
        if isinstance(blocks, list):
            text = ""
            tool_calls: list[ToolCall] = []
            for block in blocks:
                if block.get("type") == "text":
                    text += block.get("text") or ""
                elif block.get("type") == "tool_use":
                    tool_calls.append(
                        ToolCall(name=block.get("name", ""), arguments=dict(block.get("input") or {}), id=block.get("id"))
                    )
            return ChatResponse(
                content=text,
                tool_calls=tool_calls,
                finish_reason=data.get("stop_reason"),
                usage=data.get("usage"),
            )

        for key in _FLAT_TEXT_FIELDS:
            if data.get(key):
                return ChatResponse(content=str(data[key]), finish_reason="stop")

        raise self._invalid_response("Unable to parse custom API response format", data)

    def _extract_tool_calls(self, message: Mapping[str, Any]) -> list[ToolCall]:
        if message.get("tool_calls"):
            return self._parse_openai_tool_calls(message)
        legacy = message.get("function_call")
        if legacy:
            return [ToolCall(name=legacy.get("name", ""), arguments=parse_tool_arguments(legacy.get("arguments")))]
        return []

    @staticmethod
    def _tool_call_id(call: ToolCall, index: int) -> str | None:
        return call.id or f"call_{index}"
