"""OpenAI-compatible chat completions adapter (OpenAI, DeepSeek)."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Sequence, cast

from openai.types.chat import ChatCompletionMessageParam, ChatCompletionToolChoiceOptionParam
from openai.types.shared_params import FunctionDefinition

from ..config import AgentConfig
from ..model_types import ChatResponse, Message, ProviderKind, ToolCall, coerce_messages
from .base import ProviderAdapter, tool_fields

__all__ = ["OpenAIAdapter", "DeepSeekAdapter"]

_TOOL_CHOICE_AUTO: ChatCompletionToolChoiceOptionParam = "auto"


class OpenAIAdapter(ProviderAdapter):
    """Adapter for ``/chat/completions`` style endpoints.

    System messages stay inline. Tools accept both flat and nested
    ``function`` definitions so DeepSeek payloads pass through unchanged.
    """

    kind = ProviderKind.OPENAI

    def format_request(
        self,
        messages: Sequence[Message | Mapping[str, Any]],
        tools: Sequence[Any] | None = None,
        config: AgentConfig | None = None,
    ) -> dict[str, Any]:
        settings = self._effective_config(config)
        request: dict[str, Any] = {
            "model": settings.model,
            "messages": cast(List[ChatCompletionMessageParam], coerce_messages(messages)),
            "temperature": settings.temperature,
            "stream": settings.stream,
        }
        if settings.max_tokens:
            request["max_tokens"] = settings.max_tokens
        if tools:
            request["tools"] = self.format_tools(tools)
            request["tool_choice"] = _TOOL_CHOICE_AUTO
        return request

    def format_tools(self, tools: Iterable[Any]) -> list[dict[str, Any]]:
        formatted: list[dict[str, Any]] = []
        for tool in tools:
            name, description, parameters = tool_fields(tool)
            function: FunctionDefinition = {"name": name, "description": description, "parameters": parameters}
            formatted.append({"type": "function", "function": dict(function)})
        return formatted

    def parse_response(self, data: Mapping[str, Any]) -> ChatResponse:
        choices = data.get("choices")
        if not choices:
            raise self._invalid_response("No choices in response", data)
        choice = choices[0]
        message = choice.get("message") or {}
        return ChatResponse(
            content=message.get("content") or "",
            tool_calls=self._parse_openai_tool_calls(message),
            finish_reason=choice.get("finish_reason"),
            usage=data.get("usage"),
            thinking_content=message.get("reasoning_content") or "",
        )

    def extract_thinking(self, data: Mapping[str, Any]) -> str | None:
        choices = data.get("choices") or []
        if not choices:
            return None
        return (choices[0].get("message") or {}).get("reasoning_content") or None

    def format_tool_results(self, tool_calls: Sequence[ToolCall], results: Sequence[Any]) -> list[dict[str, Any]]:
        return [
            {
                "role": "tool",
                "tool_call_id": self._tool_call_id(call, index),
                "content": self._result_json(results[index] if index < len(results) else None),
            }
            for index, call in enumerate(tool_calls)
        ]

    def format_assistant_message(self, content: str, tool_calls: Sequence[ToolCall]) -> dict[str, Any]:
        message: dict[str, Any] = {"role": "assistant", "content": content or None}
        if tool_calls:
            message["tool_calls"] = [
                {
                    "id": self._tool_call_id(call, index),
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments_json()},
                }
                for index, call in enumerate(tool_calls)
            ]
        return message

    @staticmethod
    def _tool_call_id(call: ToolCall, index: int) -> str | None:
        return call.id


class DeepSeekAdapter(OpenAIAdapter):
    kind = ProviderKind.DEEPSEEK
