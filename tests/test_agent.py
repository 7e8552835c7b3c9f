"""End-to-end tests for the chat orchestrator against mocked provider endpoints."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from agentify.agent import Agent, ChatResult
from agentify.config import AgentConfig
from agentify.errors import AgentifyError, NetworkCodes, NetworkError, SystemCodes
from agentify.events import EventType
from agentify.providers import AnthropicAdapter, GeminiAdapter, OpenAIAdapter
from agentify.streaming import StreamCallbacks

from helpers import ANTHROPIC_URL, GEMINI_URL, sse


def _add(params: dict) -> int:
    return params["a"] + params["b"]


ADD_TOOL = {
    "name": "add",
    "description": "Add two numbers",
    "parameters": {"a": {"type": "number", "required": True}, "b": {"type": "number", "required": True}},
    "execute": _add,
}


def _completion(content: str | None = None, tool_calls: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {"choices": [{"message": message, "finish_reason": "tool_calls" if tool_calls else "stop"}]}


def _tool_call(name: str, arguments: dict[str, Any], call_id: str = "call_1") -> dict[str, Any]:
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": json.dumps(arguments)}}


class Recorder:
    """Serves queued responses and records the JSON bodies it received."""

    def __init__(self, *responses: httpx.Response) -> None:
        self._responses = list(responses)
        self.bodies: list[dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        return self._responses.pop(0)


@pytest.fixture
def make_agent(make_config, mock_client) -> Callable[..., Agent]:
    def factory(handler: Callable[[httpx.Request], httpx.Response], **config: Any) -> Agent:
        config.setdefault("stream", False)
        return Agent(make_config(**config), client=mock_client(handler))

    return factory


@pytest.mark.asyncio
async def test_plain_answer(make_agent) -> None:
    recorder = Recorder(httpx.Response(200, json=_completion("Hello!")))
    agent = make_agent(recorder)
    completed: list[ChatResult] = []

    result = await agent.chat("Hi", StreamCallbacks(on_complete=completed.append))

    assert result.content == "Hello!"
    assert result.finish_reason == "stop"
    assert result.rounds == 0
    assert completed == [result]
    assert recorder.bodies[0]["messages"] == [{"role": "user", "content": "Hi"}]
    assert "tools" not in recorder.bodies[0]
    assert agent.get_history() == [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello!"},
    ]
    assert not agent.thinking.is_thinking


@pytest.mark.asyncio
async def test_tool_round_then_answer(make_agent) -> None:
    recorder = Recorder(
        httpx.Response(200, json=_completion(tool_calls=[_tool_call("add", {"a": 1, "b": 2})])),
        httpx.Response(200, json=_completion("1 + 2 = 3")),
    )
    agent = make_agent(recorder)
    await agent.add_tool(ADD_TOOL)
    notified: list[str] = []

    result = await agent.chat("What is 1 + 2?", StreamCallbacks(on_tool_call=lambda call: notified.append(call.name)))

    assert result.content == "1 + 2 = 3"
    assert result.rounds == 1
    assert notified == ["add"]
    assert result.tool_results[0]["result"] == 3
    first, second = recorder.bodies
    assert first["tools"][0]["function"]["name"] == "add"
    assert first["tool_choice"] == "auto"
    assert first["messages"][0]["role"] == "system"
    assert "Available tools:\n- add: Add two numbers" in first["messages"][0]["content"]
    assert second["messages"][-2]["tool_calls"][0]["id"] == "call_1"
    assert second["messages"][-1] == {"role": "tool", "tool_call_id": "call_1", "content": "3"}


@pytest.mark.asyncio
async def test_instruction_variables_are_rendered(make_agent) -> None:
    recorder = Recorder(httpx.Response(200, json=_completion("ok")))
    agent = make_agent(recorder)
    agent.set_instruction("You help {{user}}.")

    await agent.chat("hello", variables={"user": "Ada"})

    assert recorder.bodies[0]["messages"][0] == {"role": "system", "content": "You help Ada."}


@pytest.mark.asyncio
async def test_tool_failure_is_reported_to_model(make_agent) -> None:
    def explode(params: dict) -> None:
        raise RuntimeError("disk on fire")

    recorder = Recorder(
        httpx.Response(200, json=_completion(tool_calls=[_tool_call("explode", {})])),
        httpx.Response(200, json=_completion("Sorry, that failed.")),
    )
    agent = make_agent(recorder)
    await agent.add_tool({"name": "explode", "description": "Fails", "execute": explode})

    result = await agent.chat("try it")

    assert result.content == "Sorry, that failed."
    assert result.tool_results[0]["result"] == {"error": "Tool execution failed: explode"}
    assert json.loads(recorder.bodies[1]["messages"][-1]["content"]) == {"error": "Tool execution failed: explode"}
    assert agent.events.get_events(type=EventType.TOOL_CALL_FAILED)


@pytest.mark.asyncio
async def test_unknown_tool_is_reported_to_model(make_agent) -> None:
    recorder = Recorder(
        httpx.Response(200, json=_completion(tool_calls=[_tool_call("missing", {})])),
        httpx.Response(200, json=_completion("done")),
    )
    agent = make_agent(recorder)

    result = await agent.chat("go")

    assert result.tool_results[0]["result"] == {"error": "Tool not found: missing"}


@pytest.mark.asyncio
async def test_max_tool_rounds(make_agent) -> None:
    recorder = Recorder(
        httpx.Response(200, json=_completion(tool_calls=[_tool_call("add", {"a": 1, "b": 1}, "call_1")])),
        httpx.Response(200, json=_completion(tool_calls=[_tool_call("add", {"a": 2, "b": 2}, "call_2")])),
    )
    agent = make_agent(recorder)
    await agent.add_tool(ADD_TOOL)

    result = await agent.chat("loop forever", max_tool_rounds=2)

    assert result.finish_reason == "max_rounds"
    assert result.rounds == 2
    assert len(recorder.bodies) == 2
    assert result.content == "Reached the maximum number of tool rounds (2) before a final answer."
    assert agent.get_history()[-1] == {"role": "assistant", "content": result.content}


@pytest.mark.asyncio
async def test_streamed_tool_call_round(make_agent) -> None:
    first = sse(
        {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "call_9", "function": {"name": "add", "arguments": '{"a": 4,'}}]}}]},
        {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": ' "b": 5}'}}]}}]},
        {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]},
        "[DONE]",
    )
    second = sse(
        {"choices": [{"delta": {"content": "It is "}}]},
        {"choices": [{"delta": {"content": "9."}, "finish_reason": "stop"}]},
        "[DONE]",
    )
    headers = {"content-type": "text/event-stream"}
    recorder = Recorder(httpx.Response(200, content=first, headers=headers), httpx.Response(200, content=second, headers=headers))
    agent = make_agent(recorder, stream=True)
    await agent.add_tool(ADD_TOOL)
    tokens: list[str] = []

    result = await agent.chat("4 + 5?", StreamCallbacks(on_token=tokens.append))

    assert tokens == ["It is ", "9."]
    assert result.content == "It is 9."
    assert result.rounds == 1
    assert result.tool_results[0]["result"] == 9
    body = recorder.bodies[1]
    assert body["stream"] is True
    assert body["messages"][-2]["tool_calls"][0]["function"]["arguments"] == '{"a": 4, "b": 5}'
    assert body["messages"][-1] == {"role": "tool", "tool_call_id": "call_9", "content": "9"}
    assert agent.events.get_events(type=EventType.STREAM_COMPLETED)


@pytest.mark.asyncio
async def test_anthropic_history_uses_content_blocks(make_agent) -> None:
    recorder = Recorder(
        httpx.Response(
            200,
            json={
                "content": [{"type": "tool_use", "id": "toolu_1", "name": "add", "input": {"a": 2, "b": 3}}],
                "stop_reason": "tool_use",
            },
        ),
        httpx.Response(200, json={"content": [{"type": "text", "text": "5"}], "stop_reason": "end_turn"}),
    )
    agent = make_agent(recorder, api_url=ANTHROPIC_URL)
    await agent.add_tool(ADD_TOOL)

    result = await agent.chat("2 + 3")

    assert result.content == "5"
    assert result.finish_reason == "end_turn"
    follow_up = recorder.bodies[1]
    assert follow_up["system"].startswith("Available tools:")
    assert follow_up["messages"][-1] == {
        "role": "user",
        "content": [{"type": "tool_result", "tool_use_id": "toolu_1", "content": "5"}],
    }
    assert agent.get_history()[-1] == {"role": "assistant", "content": [{"type": "text", "text": "5"}]}


@pytest.mark.asyncio
async def test_blank_message_is_rejected(make_agent) -> None:
    agent = make_agent(Recorder())

    with pytest.raises(AgentifyError) as excinfo:
        await agent.chat("   ")

    assert excinfo.value.code == SystemCodes.INVALID_PARAMETER
    assert agent.get_history() == []


@pytest.mark.asyncio
async def test_missing_configuration(mock_client) -> None:
    agent = Agent(AgentConfig(model="m"), client=mock_client(Recorder()))

    with pytest.raises(AgentifyError) as excinfo:
        await agent.chat("hello")

    assert excinfo.value.code == SystemCodes.CONFIG_MISSING
    assert excinfo.value.details["missing_fields"] == ["API URL is required", "API key is required"]


@pytest.mark.asyncio
async def test_http_error_calls_on_error_and_raises(make_agent) -> None:
    agent = make_agent(Recorder(httpx.Response(401, json={"error": {"message": "bad key"}})))
    seen: list[AgentifyError] = []

    with pytest.raises(NetworkError) as excinfo:
        await agent.chat("hello", StreamCallbacks(on_error=seen.append))

    assert excinfo.value.code == NetworkCodes.UNAUTHORIZED
    assert seen == [excinfo.value]
    assert not agent.thinking.is_thinking
    assert agent.events.get_events(type=EventType.ERROR_OCCURRED)
    assert agent.get_error_log()[-1]["error"]["code"] == NetworkCodes.UNAUTHORIZED


@pytest.mark.asyncio
async def test_events_are_grouped_by_chat(make_agent) -> None:
    agent = make_agent(Recorder(httpx.Response(200, json=_completion("a")), httpx.Response(200, json=_completion("b"))))

    first = await agent.chat("one")
    second = await agent.chat("two")
    types = [event.type for event in agent.events.get_events(chat_id=first.chat_id)]

    assert first.chat_id == second.chat_id
    assert types.count("user_message_sent") == 2
    assert "assistant_message_completed" in types
    assert "api_request_sent" in types


@pytest.mark.asyncio
async def test_reset_starts_a_new_chat(make_agent) -> None:
    agent = make_agent(Recorder(httpx.Response(200, json=_completion("a")), httpx.Response(200, json=_completion("b"))))

    first = await agent.chat("one")
    agent.reset()
    second = await agent.chat("two")

    assert first.chat_id != second.chat_id
    assert agent.get_history()[0] == {"role": "user", "content": "two"}


@pytest.mark.asyncio
async def test_update_config_switches_adapter(make_agent) -> None:
    agent = make_agent(Recorder())
    assert isinstance(agent.adapter, OpenAIAdapter)

    await agent.update_config(api_url=ANTHROPIC_URL, temperature=0.2)

    assert isinstance(agent.adapter, AnthropicAdapter)
    assert agent.config.temperature == 0.2
    (event,) = agent.events.get_events(type=EventType.CONFIG_UPDATED)
    assert event.data["changes"] == ["api_url", "temperature"]


@pytest.mark.asyncio
async def test_context_manager_closes(make_agent) -> None:
    async with make_agent(Recorder()) as agent:
        agent.thinking.start_thinking()

    assert not agent.thinking.is_thinking


@pytest.mark.asyncio
async def test_gemini_tool_round_uses_model_and_function_roles(make_agent) -> None:
    recorder = Recorder(
        httpx.Response(
            200,
            json={
                "candidates": [
                    {
                        "content": {"role": "model", "parts": [{"functionCall": {"name": "add", "args": {"a": 2, "b": 5}}}]},
                        "finishReason": "STOP",
                    }
                ]
            },
        ),
        httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "7"}]}, "finishReason": "STOP"}]}),
    )
    agent = make_agent(recorder, api_url=GEMINI_URL)
    await agent.add_tool(ADD_TOOL)

    result = await agent.chat("2 + 5")

    assert isinstance(agent.adapter, GeminiAdapter)
    assert result.content == "7"
    assert result.rounds == 1
    assert result.tool_results[0]["result"] == 7
    follow_up = recorder.bodies[1]
    assert follow_up["systemInstruction"]["parts"][0]["text"].startswith("Available tools:")
    assert follow_up["contents"] == [
        {"role": "user", "parts": [{"text": "2 + 5"}]},
        {"role": "model", "parts": [{"functionCall": {"name": "add", "args": {"a": 2, "b": 5}}}]},
        {"role": "function", "parts": [{"functionResponse": {"name": "add", "response": {"result": 7}}}]},
    ]


class TestContextWindow:
    @pytest.mark.asyncio
    async def test_oldest_turns_are_dropped(self, make_agent) -> None:
        recorder = Recorder(*(httpx.Response(200, json=_completion(text)) for text in ("A", "B", "C")))
        agent = make_agent(recorder, max_history_messages=3)

        for message in ("a", "b", "c"):
            await agent.chat(message)

        assert recorder.bodies[2]["messages"] == [
            {"role": "user", "content": "b"},
            {"role": "assistant", "content": "B"},
            {"role": "user", "content": "c"},
        ]
        assert len(agent.get_history()) == 6

    @pytest.mark.asyncio
    async def test_tool_results_are_not_split_from_their_call(self, make_agent) -> None:
        recorder = Recorder(
            httpx.Response(200, json=_completion(tool_calls=[_tool_call("add", {"a": 1, "b": 2})])),
            httpx.Response(200, json=_completion("3")),
            httpx.Response(200, json=_completion("ok")),
        )
        agent = make_agent(recorder, max_history_messages=3)
        await agent.add_tool(ADD_TOOL)

        await agent.chat("add")
        await agent.chat("next")

        sent = recorder.bodies[2]["messages"]
        assert sent[0]["role"] == "system"
        assert sent[1:] == [{"role": "user", "content": "next"}]

    @pytest.mark.asyncio
    async def test_current_turn_is_sent_whole(self, make_agent) -> None:
        recorder = Recorder(
            httpx.Response(200, json=_completion(tool_calls=[_tool_call("add", {"a": 1, "b": 2})])),
            httpx.Response(200, json=_completion("3")),
        )
        agent = make_agent(recorder, max_history_messages=1)
        await agent.add_tool(ADD_TOOL)

        await agent.chat("add")

        assert [message["role"] for message in recorder.bodies[1]["messages"]] == ["system", "user", "assistant", "tool"]

    @pytest.mark.asyncio
    async def test_history_disabled_sends_only_current_turn(self, make_agent) -> None:
        recorder = Recorder(httpx.Response(200, json=_completion("A")), httpx.Response(200, json=_completion("B")))
        agent = make_agent(recorder, use_history=False)

        await agent.chat("one")
        await agent.chat("two")

        assert recorder.bodies[1]["messages"] == [{"role": "user", "content": "two"}]
        assert len(agent.get_history()) == 4

    def test_window_after_clear(self, make_agent) -> None:
        agent = make_agent(Recorder())
        agent._history.extend([{"role": "user", "content": "x"}, {"role": "assistant", "content": "y"}])
        agent.clear_history()

        assert agent.get_context_window() == []
