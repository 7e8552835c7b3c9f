"""Chat orchestrator that wires providers, tools, streaming and tracking."""

from __future__ import annotations

import copy
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

import httpx

from .config import AgentConfig
from .errors import AgentifyError, ErrorManager, SystemCodes
from .events import EventLog, EventType
from .instructions import InstructionComposer
from .model_types import ChatResponse, ToolCall
from .providers import ProviderAdapter, create_adapter
from .streaming import StreamCallbacks, StreamProcessor, StreamResult
from .thinking import ThinkingStatus, ThinkingTracker
from .tools import DEFAULT_TOOL_TIMEOUT, ToolDefinition, ToolExecutor, ToolRegistrationOutcome, ToolRegistry
from .utils.formatters import format_duration, format_messages, truncate_text

__all__ = ["Agent", "ChatResult", "DEFAULT_MAX_TOOL_ROUNDS"]

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ROUNDS = 10
_TOOLS_FOOTER = "Use these tools when appropriate to help answer user questions."


@dataclass(slots=True)
class ChatResult:
    """Outcome of one :meth:`Agent.chat` call across all tool rounds."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[dict[str, Any]] = field(default_factory=list)
    thinking_content: str = ""
    finish_reason: str = "stop"
    rounds: int = 0
    chat_id: str | None = None
    duration: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "tool_calls": [call.to_dict() for call in self.tool_calls],
            "tool_results": [
                {"tool_call": entry["tool_call"].to_dict(), "result": entry["result"]} for entry in self.tool_results
            ],
            "thinking_content": self.thinking_content,
            "finish_reason": self.finish_reason,
            "rounds": self.rounds,
            "chat_id": self.chat_id,
            "duration": self.duration,
        }


class Agent:
    """Conversational front door over a single provider endpoint.

    The agent keeps the conversation history in provider wire shape so that
    assistant tool-call echoes and tool results round-trip unchanged. One
    :meth:`chat` call may span several requests: each round executes the tool
    calls the model asked for and sends the results back, until the model
    answers without tools or ``max_tool_rounds`` is reached.

    Example:
        async with Agent(AgentConfig(model="gpt-4o-mini", api_url=URL, api_key=KEY)) as agent:
            await agent.add_tool({"name": "now", "description": "Clock", "execute": clock})
            reply = await agent.chat("What time is it?")
    """

    def __init__(
        self,
        config: AgentConfig | None = None,
        *,
        error_manager: ErrorManager | None = None,
        event_log: EventLog | None = None,
        client: httpx.AsyncClient | None = None,
        tool_timeout: float = DEFAULT_TOOL_TIMEOUT,
    ) -> None:
        self.config = config or AgentConfig.from_env()
        self.error_manager = error_manager or ErrorManager()
        self.events = event_log or EventLog(self.error_manager)
        self.tools = ToolRegistry(self.error_manager)
        self.executor = ToolExecutor(self.tools, self.error_manager, timeout=tool_timeout)
        self.instructions = InstructionComposer(self.error_manager)
        self.thinking = ThinkingTracker()
        self._client = client
        self._adapter: ProviderAdapter = create_adapter(self.config, self.error_manager, client=client)
        self._history: list[dict[str, Any]] = []
        self._turn_start = 0
        self._processor: StreamProcessor | None = None
        self.events.log_event(
            EventType.AGENT_INITIALIZED,
            {"provider": self.config.provider_kind.value, "model": self.config.model},
        )

    async def __aenter__(self) -> "Agent":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @property
    def adapter(self) -> ProviderAdapter:
        return self._adapter

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    async def update_config(self, **changes: Any) -> AgentConfig:
        """Apply ``changes``; swaps the adapter when the provider family changes."""

        previous = self.config.provider_kind
        self.config.update(**changes)
        if self.config.provider_kind is not previous:
            await self._adapter.aclose()
            self._adapter = create_adapter(self.config, self.error_manager, client=self._client)
            LOGGER.info("Provider switched from %s to %s", previous.value, self.config.provider_kind.value)
        self.events.log_event(EventType.CONFIG_UPDATED, {"changes": sorted(changes)})
        return self.config

    # ------------------------------------------------------------------
    # Tools and instructions
    # ------------------------------------------------------------------
    async def add_tool(self, tool: Mapping[str, Any] | ToolDefinition) -> ToolDefinition:
        return await self.tools.register_tool(tool)

    async def add_tools(self, tools: Sequence[Mapping[str, Any] | ToolDefinition]) -> list[ToolRegistrationOutcome]:
        return await self.tools.register_tools(tools)

    def remove_tool(self, name: str) -> bool:
        return self.tools.remove_tool(name)

    def set_instruction(self, text: str) -> str:
        return self.instructions.set_from_text(text)

    async def load_instruction_from_file(self, source: Any) -> str:
        return await self.instructions.load_from_file(source)

    def on_thinking_change(self, callback: Callable[[ThinkingStatus], Any]) -> Callable[[], None]:
        return self.thinking.on_status_change(callback)

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------
    async def chat(
        self,
        message: str,
        callbacks: StreamCallbacks | None = None,
        *,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        variables: Mapping[str, Any] | None = None,
        stream: bool | None = None,
    ) -> ChatResult:
        """Send ``message`` and run tool rounds until the model answers.

        Args:
            message: User text; must be non-blank.
            callbacks: Observers. ``on_token``/``on_thinking`` receive streamed
                text, ``on_tool_call`` is notified before each tool runs,
                ``on_complete`` receives the :class:`ChatResult` and
                ``on_error`` the typed error before it is raised.
            max_tool_rounds: Upper bound on request/tool-execution cycles.
            variables: Values substituted into ``{{name}}`` instruction
                placeholders.
            stream: Overrides ``config.stream`` for this call.

        Raises:
            AgentifyError: Validation, configuration, network, model or
                stream failures. Tool failures do not raise; they are sent
                back to the model as ``{"error": ...}`` results.
        """

        callbacks = callbacks or StreamCallbacks()
        if not isinstance(message, str) or not message.strip():
            raise self.error_manager.create_system_error(
                "Message must be a non-empty string",
                SystemCodes.INVALID_PARAMETER,
                {"provided_type": type(message).__name__},
            )
        self.config.validate_required()

        use_stream = self.config.stream if stream is None else stream
        chat_id = self.events.current_chat_id or self.events.generate_chat_id()
        started = time.monotonic()
        result = ChatResult(chat_id=chat_id)

        LOGGER.debug("Chat %s: user message %r", chat_id, truncate_text(message, 80))
        self._turn_start = len(self._history)
        self._history.append({"role": "user", "content": message})
        self.events.log_user_message(message)
        self.events.log_event(EventType.ASSISTANT_MESSAGE_STARTED, {"stream": use_stream})
        self.thinking.start_thinking("Sending request")
        self.events.log_thinking(EventType.THINKING_STARTED, "Sending request")

        try:
            while True:
                if result.rounds >= max_tool_rounds:
                    LOGGER.warning("Stopping after %d tool rounds", max_tool_rounds)
                    result.finish_reason = "max_rounds"
                    result.content = (
                        f"Reached the maximum number of tool rounds ({max_tool_rounds}) before a final answer."
                    )
                    self._history.append({"role": "assistant", "content": result.content})
                    break

                calls, round_results, reply = await self._complete_round(callbacks, variables, use_stream)
                result.thinking_content += reply.thinking_content
                result.finish_reason = reply.finish_reason or "stop"

                if not calls:
                    result.content = reply.content
                    self._history.append(self._adapter.format_assistant_message(reply.content, []))
                    break

                result.rounds += 1
                result.tool_calls.extend(calls)
                result.tool_results.extend(
                    {"tool_call": call, "result": value} for call, value in zip(calls, round_results)
                )
                self._history.append(self._adapter.format_assistant_message(reply.content, calls))
                follow_up = self._adapter.format_tool_results(calls, round_results)
                if isinstance(follow_up, list):
                    self._history.extend(follow_up)
                else:
                    self._history.append(follow_up)
                self.thinking.set_action(f"Sending tool results (round {result.rounds})")

        except AgentifyError as exc:
            await self._fail(callbacks, exc)
            raise
        except Exception as exc:
            wrapped = self.error_manager.wrap_error(exc, "chat")
            await self._fail(callbacks, wrapped)
            raise wrapped from exc
        finally:
            self._processor = None

        result.duration = (time.monotonic() - started) * 1000
        LOGGER.info("Chat %s finished (%s) in %s", chat_id, result.finish_reason, format_duration(result.duration))
        self.thinking.stop_thinking()
        self.events.log_thinking(EventType.THINKING_STOPPED, None)
        self.events.log_assistant_message_completed(
            result.content, result.duration, finish_reason=result.finish_reason, rounds=result.rounds
        )
        await _maybe_await(callbacks.on_complete, result)
        return result

    def stop(self) -> None:
        """Stop the in-flight stream, if any, after the current chunk."""

        if self._processor is not None:
            self._processor.stop_stream()

    async def _complete_round(
        self,
        callbacks: StreamCallbacks,
        variables: Mapping[str, Any] | None,
        use_stream: bool,
    ) -> tuple[list[ToolCall], list[Any], ChatResponse]:
        tools = self.tools.get_tool_definitions(self.config.provider_kind) if len(self.tools) else None
        body = self._adapter.format_request(
            self._build_messages(variables),
            tools=tools,
            config=self.config.copy(stream=use_stream),
        )
        endpoint = self._adapter.redact_endpoint(self._adapter.get_endpoint(use_stream))
        self.events.log_api_request(endpoint, body, stream=use_stream)
        sent = time.monotonic()

        try:
            if use_stream:
                response = await self._adapter.make_request(body, stream=True)
                self.thinking.set_action("Receiving response")
                self.events.log_stream(EventType.STREAM_STARTED, endpoint=endpoint)
                streamed = await self._consume_stream(response, callbacks)
                reply = ChatResponse(
                    content=streamed.content,
                    tool_calls=list(streamed.tool_calls),
                    finish_reason=streamed.finish_reason,
                    thinking_content=streamed.thinking_content,
                )
                results = [entry["result"] for entry in streamed.tool_results]
                self.events.log_stream(
                    EventType.STREAM_COMPLETED,
                    content_length=len(streamed.content),
                    finish_reason=streamed.finish_reason,
                )
            else:
                reply = await self._adapter.fetch_response(body)
                if reply.thinking_content:
                    self.thinking.add_thinking_content(reply.thinking_content)
                results = [await self._run_tool(call, callbacks) for call in reply.tool_calls]
        except AgentifyError as exc:
            self.events.log_api_request_failed(endpoint, exc)
            if use_stream:
                self.events.log_stream(EventType.STREAM_ERROR, error=exc.message, code=exc.code)
            raise

        self.events.log_api_response(endpoint, reply.to_dict(), (time.monotonic() - sent) * 1000)
        return list(reply.tool_calls), results, reply

    async def _consume_stream(self, response: httpx.Response, callbacks: StreamCallbacks) -> StreamResult:
        async def on_thinking(text: str) -> None:
            self.thinking.add_thinking_content(text)
            await _maybe_await(callbacks.on_thinking, text)

        async def on_tool_call(call: ToolCall) -> Any:
            return await self._run_tool(call, callbacks)

        self._processor = StreamProcessor(self.error_manager)
        return await self._processor.handle_stream(
            response,
            StreamCallbacks(on_token=callbacks.on_token, on_thinking=on_thinking, on_tool_call=on_tool_call),
            self.config.provider_kind,
        )

    async def _run_tool(self, call: ToolCall, callbacks: StreamCallbacks) -> Any:
        arguments = call.parsed_arguments()
        self.thinking.set_action(f"Running tool: {call.name}")
        self.events.log_tool_call_initiated(call.name, arguments, tool_call_id=call.id)
        await _maybe_await(callbacks.on_tool_call, call)
        try:
            outcome = await self.executor.execute_tool(call.name, arguments)
        except AgentifyError as exc:
            LOGGER.warning("Tool %s failed: %s", call.name, exc)
            self.events.log_tool_call_failed(call.name, arguments, exc, tool_call_id=call.id)
            return {"error": exc.message}
        self.events.log_tool_call_completed(call.name, arguments, outcome.result, outcome.duration, tool_call_id=call.id)
        return outcome.result

    def _build_messages(self, variables: Mapping[str, Any] | None) -> list[dict[str, Any]]:
        return format_messages(self.get_context_window(), self._system_instruction(variables) or None)

    def get_context_window(self) -> list[dict[str, Any]]:
        """History slice sent with the next request.

        Keeps at most ``config.max_history_messages`` messages, but the window
        always opens on a user turn so tool results are never separated from
        the assistant message that requested them. The current turn is sent
        whole even when it alone exceeds the limit. With ``config.use_history``
        off only the current turn is sent.
        """

        history = self._history
        turn_start = min(self._turn_start, len(history))
        if not self.config.use_history:
            return copy.deepcopy(history[turn_start:])
        limit = self.config.max_history_messages
        if not limit or len(history) <= limit:
            return copy.deepcopy(history)
        start = len(history) - limit
        while start < turn_start and not _opens_turn(history[start]):
            start += 1
        return copy.deepcopy(history[min(start, turn_start):])

    def _system_instruction(self, variables: Mapping[str, Any] | None) -> str:
        instruction = self.instructions.render(variables) if self.instructions.has_instruction() else ""
        tools = self.tools.get_all_tools()
        if not tools:
            return instruction
        listing = "\n".join(f"- {tool.name}: {tool.description}" for tool in tools)
        block = f"Available tools:\n{listing}\n\n{_TOOLS_FOOTER}"
        return f"{instruction}\n\n{block}" if instruction else block

    async def _fail(self, callbacks: StreamCallbacks, error: AgentifyError) -> None:
        self.thinking.stop_thinking()
        self.events.log_error(error, "chat")
        if callbacks.on_error is None:
            return
        try:
            await _maybe_await(callbacks.on_error, error)
        except Exception:
            LOGGER.exception("Chat error callback failed")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    def get_history(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._history)

    def clear_history(self) -> None:
        self._history.clear()
        self._turn_start = 0

    def get_error_log(self) -> list[dict[str, Any]]:
        return self.error_manager.get_error_log()

    def reset(self) -> None:
        """Forget the conversation, thinking state and current chat id."""

        self.stop()
        self._history.clear()
        self._turn_start = 0
        self.thinking.reset()
        self.events.set_chat_id(None)

    async def aclose(self) -> None:
        self.stop()
        self.thinking.reset()
        await self._adapter.aclose()


async def _maybe_await(callback: Any, *args: Any) -> Any:
    if callback is None:
        return None
    outcome = callback(*args)
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return outcome


def _opens_turn(message: Mapping[str, Any]) -> bool:
    """True for a user message that is not a batch of tool results."""

    if message.get("role") != "user":
        return False
    content = message.get("content")
    if isinstance(content, list):
        return not any(isinstance(block, Mapping) and block.get("type") == "tool_result" for block in content)
    return True
