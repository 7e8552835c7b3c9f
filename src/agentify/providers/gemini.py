"""Google Gemini ``generateContent`` adapter."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..config import AgentConfig
from ..model_types import ChatResponse, Message, ProviderKind, ToolCall
from .base import ProviderAdapter, tool_fields

__all__ = ["GeminiAdapter", "DEFAULT_MAX_OUTPUT_TOKENS"]

DEFAULT_MAX_OUTPUT_TOKENS = 2048
_GENERATE = "generateContent"
_STREAM_GENERATE = "streamGenerateContent"


class GeminiAdapter(ProviderAdapter):
    """Adapter for the Gemini REST API.

    Credentials travel in the ``key`` query parameter instead of a header, and
    streaming swaps the ``generateContent`` path for ``streamGenerateContent``.
    """

    kind = ProviderKind.GEMINI

    def format_request(
        self,
        messages: Sequence[Message | Mapping[str, Any]],
        tools: Sequence[Any] | None = None,
        config: AgentConfig | None = None,
    ) -> dict[str, Any]:
        settings = self._effective_config(config)
        system, conversation = self._split_system(messages)
        request: dict[str, Any] = {
            "contents": [self._to_content(message) for message in conversation],
            "generationConfig": {
                "temperature": settings.temperature,
                "maxOutputTokens": settings.max_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
            },
        }
        if system is not None:
            request["systemInstruction"] = {"parts": [{"text": system}]}
        if tools:
            request["tools"] = [{"functionDeclarations": self.format_tools(tools)}]
        return request

    @staticmethod
    def _to_content(message: Mapping[str, Any]) -> dict[str, Any]:
        if isinstance(message.get("parts"), list):
            return dict(message)
        role = "model" if message.get("role") in ("assistant", "model") else "user"
        return {"role": role, "parts": [{"text": message.get("content") or ""}]}

    def format_tools(self, tools: Iterable[Any]) -> list[dict[str, Any]]:
        formatted = []
        for tool in tools:
            name, description, parameters = tool_fields(tool)
            formatted.append({"name": name, "description": description, "parameters": parameters})
        return formatted

    def parse_response(self, data: Mapping[str, Any]) -> ChatResponse:
        candidates = data.get("candidates")
        if not candidates:
            raise self._invalid_response("No candidates in response", data)
        candidate = candidates[0]
        content = candidate.get("content") or {}

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for part in content.get("parts") or ():
            if part.get("text"):
                text_parts.append(part["text"])
            elif part.get("functionCall"):
                call = part["functionCall"]
                tool_calls.append(ToolCall(name=call.get("name", ""), arguments=dict(call.get("args") or {})))

        return ChatResponse(
            content="".join(text_parts),
            tool_calls=tool_calls,
            finish_reason=candidate.get("finishReason"),
            usage=data.get("usageMetadata"),
        )

    def format_tool_results(self, tool_calls: Sequence[ToolCall], results: Sequence[Any]) -> dict[str, Any]:
        return {
            "role": "function",
            "parts": [
                {
                    "functionResponse": {
                        "name": call.name,
                        "response": _as_response_object(results[index] if index < len(results) else None),
                    }
                }
                for index, call in enumerate(tool_calls)
            ],
        }

    def format_assistant_message(self, content: str, tool_calls: Sequence[ToolCall]) -> dict[str, Any]:
        parts: list[dict[str, Any]] = []
        if content:
            parts.append({"text": content})
        for call in tool_calls:
            parts.append({"functionCall": {"name": call.name, "args": call.parsed_arguments()}})
        return {"role": "model", "parts": parts}

    def get_headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def get_endpoint(self, stream: bool | None = None) -> str:
        streaming = self.config.stream if stream is None else stream
        parts = urlsplit(self.config.api_url or "")
        path = parts.path
        if streaming and _STREAM_GENERATE not in path:
            path = path.replace(_GENERATE, _STREAM_GENERATE)
        query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != "key"]
        query.append(("key", self.config.api_key or ""))
        return urlunsplit((parts.scheme, parts.netloc, path, urlencode(query), parts.fragment))

    def redact_endpoint(self, endpoint: str) -> str:
        parts = urlsplit(endpoint)
        query = [
            (key, "***" if key == "key" else value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
        ]
        return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def _as_response_object(result: Any) -> Any:
    if isinstance(result, Mapping):
        return dict(result)
    return {"result": result}
