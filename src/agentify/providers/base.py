"""Shared adapter contract and HTTP plumbing for provider families."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import AgentConfig
from ..errors import ErrorManager, ModelCodes, NetworkCodes
from ..model_types import ChatResponse, Message, ProviderKind, ToolCall, coerce_messages, parse_tool_arguments
from ..utils.formatters import format_tool_parameters

__all__ = ["ProviderAdapter", "tool_fields"]

LOGGER = logging.getLogger(__name__)

_EMPTY_SCHEMA: Mapping[str, Any] = {"type": "object", "properties": {}}


def tool_fields(tool: Any) -> tuple[str, str, dict[str, Any]]:
    """Return ``(name, description, parameters)`` for any accepted tool shape.

    Accepts flat mappings, mappings with a nested ``function`` object,
    Anthropic-style mappings carrying ``input_schema`` and definition objects
    exposing ``name``/``description``/``parameters`` attributes.
    """

    if isinstance(tool, Mapping):
        nested = tool.get("function")
        fn = nested if isinstance(nested, Mapping) else tool
        name = fn.get("name") or tool.get("name") or ""
        description = fn.get("description") or tool.get("description") or ""
        parameters = fn.get("parameters") or tool.get("parameters") or tool.get("input_schema")
    else:
        name = getattr(tool, "name", "") or ""
        description = getattr(tool, "description", "") or ""
        parameters = getattr(tool, "parameters", None)
    schema = format_tool_parameters(parameters) if isinstance(parameters, Mapping) else dict(_EMPTY_SCHEMA)
    return str(name), str(description), schema


class ProviderAdapter(ABC):
    """Translate between canonical chat records and one provider's wire format.

    Adapters own an ``httpx.AsyncClient`` unless one is injected; injected
    clients are left open by :meth:`aclose`.
    """

    kind: ProviderKind = ProviderKind.CUSTOM

    def __init__(
        self,
        config: AgentConfig,
        error_manager: ErrorManager,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.error_manager = error_manager
        self._client = client
        self._owns_client = client is None

    # ------------------------------------------------------------------
    # Wire formatting
    # ------------------------------------------------------------------
    @abstractmethod
    def format_request(
        self,
        messages: Sequence[Message | Mapping[str, Any]],
        tools: Sequence[Any] | None = None,
        config: AgentConfig | None = None,
    ) -> dict[str, Any]:
        """Build the JSON body for one completion request."""

    @abstractmethod
    def format_tools(self, tools: Iterable[Any]) -> list[dict[str, Any]]:
        """Project tool definitions into this provider's schema shape."""

    @abstractmethod
    def parse_response(self, data: Mapping[str, Any]) -> ChatResponse:
        """Normalize a complete (non-streamed) response body."""

    @abstractmethod
    def format_tool_results(self, tool_calls: Sequence[ToolCall], results: Sequence[Any]) -> Any:
        """Build the follow-up message(s) carrying tool results."""

    @abstractmethod
    def format_assistant_message(self, content: str, tool_calls: Sequence[ToolCall]) -> dict[str, Any]:
        """Echo an assistant turn that requested tools, in provider shape."""

    def extract_thinking(self, data: Mapping[str, Any]) -> str | None:
        return None

    def get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def get_endpoint(self, stream: bool | None = None) -> str:
        return self.config.api_url or ""

    def redact_endpoint(self, endpoint: str) -> str:
        """Endpoint form safe to place in logs and error details."""

        return endpoint

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    async def make_request(self, body: Mapping[str, Any], *, stream: bool = False) -> httpx.Response:
        """POST ``body`` and return the response.

        This is one POST unless ``config.retry_attempts`` is raised above 1,
        which re-sends it after transport failures only.

        Streaming responses are returned open; the caller must consume and
        close them. Non-2xx statuses raise the mapped ``NetworkError``.
        """

        endpoint = self.get_endpoint(stream)
        public_endpoint = self.redact_endpoint(endpoint)
        headers = {**self.get_headers(), **dict(self.config.extra_headers or {})}
        client = self._ensure_client()
        if self.config.debug_logging:
            _log_request_payload(public_endpoint, body)

        try:
            async for attempt in self._retrying():
                with attempt:
                    request = client.build_request("POST", endpoint, headers=headers, json=dict(body))
                    response = await client.send(request, stream=stream)
        except httpx.TimeoutException as exc:
            raise self.error_manager.create_network_error(
                "Request timed out",
                NetworkCodes.TIMEOUT,
                {"endpoint": public_endpoint, "original_error": repr(exc)},
            ) from exc
        except httpx.TransportError as exc:
            raise self.error_manager.create_network_error(
                "Failed to connect to API",
                NetworkCodes.CONNECTION_FAILED,
                {"endpoint": public_endpoint, "original_error": repr(exc)},
            ) from exc

        if not response.is_success:
            try:
                error = await self.error_manager.handle_fetch_error(response, public_endpoint)
            finally:
                await response.aclose()
            raise error

        LOGGER.debug("POST %s -> HTTP %s (stream=%s)", public_endpoint, response.status_code, stream)
        return response

    async def fetch_response(self, body: Mapping[str, Any]) -> ChatResponse:
        """Issue a non-streamed request and parse the reply."""

        response = await self.make_request(body, stream=False)
        try:
            data = response.json()
        except ValueError as exc:
            raise self.error_manager.create_model_error(
                "Response body is not valid JSON",
                ModelCodes.RESPONSE_PARSE_FAILED,
                {"endpoint": self.redact_endpoint(str(response.request.url)), "response_body": response.text[:2000]},
            ) from exc
        if not isinstance(data, Mapping):
            raise self.error_manager.create_model_error(
                "Response body is not a JSON object",
                ModelCodes.INVALID_RESPONSE,
                {"response": data},
            )
        return self.parse_response(data)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
            self._owns_client = True
        return self._client

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self.config.retry_attempts)),
            wait=wait_exponential(
                multiplier=self.config.retry_min_seconds,
                max=self.config.retry_max_seconds,
            ),
            retry=retry_if_exception_type(httpx.TransportError),
        )

    # ------------------------------------------------------------------
    # Helpers shared by the variants
    # ------------------------------------------------------------------
    def _effective_config(self, config: AgentConfig | None) -> AgentConfig:
        return config if config is not None else self.config

    @staticmethod
    def _split_system(messages: Sequence[Message | Mapping[str, Any]]) -> tuple[str | None, list[dict[str, Any]]]:
        """Pull the first system message out of ``messages``."""

        system: str | None = None
        remaining: list[dict[str, Any]] = []
        for message in coerce_messages(messages):
            if message.get("role") == "system":
                if system is None:
                    system = message.get("content") or ""
                continue
            remaining.append(message)
        return system, remaining

    def _invalid_response(self, message: str, data: Any):
        return self.error_manager.create_model_error(message, ModelCodes.INVALID_RESPONSE, {"response": data})

    @staticmethod
    def _parse_openai_tool_calls(message: Mapping[str, Any]) -> list[ToolCall]:
        calls: list[ToolCall] = []
        for raw in message.get("tool_calls") or ():
            fn = raw.get("function") or {}
            calls.append(
                ToolCall(
                    name=fn.get("name", ""),
                    arguments=parse_tool_arguments(fn.get("arguments")),
                    id=raw.get("id"),
                    type=raw.get("type") or "function",
                )
            )
        return calls

    @staticmethod
    def _result_json(result: Any) -> str:
        return json.dumps(result, ensure_ascii=False, default=str)


def _log_request_payload(endpoint: str, payload: Mapping[str, Any]) -> None:
    try:
        serialized = json.dumps(payload, ensure_ascii=False, indent=2)
    except (TypeError, ValueError):
        LOGGER.debug("Request payload for %s (unserializable): %s", endpoint, payload)
    else:
        LOGGER.debug("Request payload for %s:\n%s", endpoint, serialized)
