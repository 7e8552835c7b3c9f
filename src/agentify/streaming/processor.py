"""Consume a streamed provider response and relay events to callbacks."""

from __future__ import annotations

import codecs
import inspect
import logging
import traceback
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from ..errors import ErrorManager, StreamCodes, StreamError
from ..model_types import ProviderKind
from ..utils.formatters import format_thinking_content
from .events import StreamCallbacks, StreamEvent, StreamEventType, StreamResult, StreamSession
from .parsers import parser_for

__all__ = ["StreamProcessor", "MAX_BUFFER_SIZE"]

LOGGER = logging.getLogger(__name__)

MAX_BUFFER_SIZE = 1024 * 1024


class StreamProcessor:
    """Incrementally parse one streamed response at a time.

    Each conversation stream needs its own processor: the buffer and the
    tool-call accumulator live on the instance. ``stop_stream`` is honoured
    between chunk reads; the aggregate gathered so far is still returned and
    passed to ``on_complete``.
    """

    def __init__(self, error_manager: ErrorManager, *, max_buffer_size: int = MAX_BUFFER_SIZE) -> None:
        self._error_manager = error_manager
        self._max_buffer_size = max_buffer_size
        self._session = StreamSession()
        self._streaming = False

    @property
    def is_streaming(self) -> bool:
        return self._streaming

    @property
    def buffer(self) -> str:
        return self._session.buffer

    def stop_stream(self) -> None:
        if self._streaming:
            LOGGER.debug("Stream stop requested")
        self._streaming = False

    def clear_buffer(self) -> None:
        self._session.buffer = ""

    async def handle_stream(
        self,
        response: Any,
        callbacks: StreamCallbacks | None = None,
        provider: ProviderKind | str = ProviderKind.OPENAI,
    ) -> StreamResult:
        """Read ``response`` to completion (or until stopped).

        Args:
            response: An ``httpx.Response`` opened with ``stream=True`` or any
                async iterable of ``bytes``/``str`` chunks.
            callbacks: Observers; awaitable return values are awaited before
                the next event is dispatched.
            provider: Selects the framing parser.

        Returns:
            The aggregated ``StreamResult``.

        Raises:
            StreamError: BUFFER_OVERFLOW for an oversized unterminated line,
                PARSE_FAILED for provider error payloads and foreign failures.
        """

        callbacks = callbacks or StreamCallbacks()
        parse = parser_for(provider)
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        result = StreamResult()
        self._session.reset()
        self._streaming = True

        try:
            chunks = _iterate_chunks(response)
            while self._streaming:
                try:
                    chunk = await chunks.__anext__()
                except StopAsyncIteration:
                    break
                text = chunk if isinstance(chunk, str) else decoder.decode(chunk)
                self._session.buffer += text
                for event in parse(self._session):
                    await self._dispatch(event, result, callbacks)
                self._check_buffer()

            self._session.buffer += decoder.decode(b"", final=True)
            if self._session.buffer.strip():
                LOGGER.debug("Discarding %d unterminated trailing characters", len(self._session.buffer))

            await _maybe_await(callbacks.on_complete, result)
            return result

        except StreamError as exc:
            await self._report(callbacks, exc)
            raise
        except Exception as exc:
            error = self._error_manager.create_stream_error(
                "Stream processing failed",
                StreamCodes.PARSE_FAILED,
                {"original_error": str(exc) or type(exc).__name__, "stack": "".join(traceback.format_exception(exc))},
            )
            await self._report(callbacks, error)
            raise error from exc
        finally:
            self._streaming = False
            self._session.reset()
            await _close_response(response)

    async def _dispatch(self, event: StreamEvent, result: StreamResult, callbacks: StreamCallbacks) -> None:
        if event.type is StreamEventType.TOKEN:
            result.content += event.content
            await _maybe_await(callbacks.on_token, event.content)
        elif event.type is StreamEventType.THINKING:
            result.thinking_content += event.content
            await _maybe_await(callbacks.on_thinking, format_thinking_content(event.content))
        elif event.type is StreamEventType.TOOL_CALL:
            call = event.tool_call
            result.tool_calls.append(call)
            if callbacks.on_tool_call is not None:
                outcome = callbacks.on_tool_call(call)
                if inspect.isawaitable(outcome):
                    result.tool_results.append({"tool_call": call, "result": await outcome})
        elif event.type is StreamEventType.FINISH:
            result.finish_reason = event.reason or "stop"
        elif event.type is StreamEventType.ERROR:
            raise self._error_manager.create_stream_error(
                "Stream error received",
                StreamCodes.PARSE_FAILED,
                {"error": event.error},
            )

    def _check_buffer(self) -> None:
        size = len(self._session.buffer)
        if size > self._max_buffer_size:
            raise self._error_manager.create_stream_error(
                "Stream buffer exceeded maximum size",
                StreamCodes.BUFFER_OVERFLOW,
                {"buffer_size": size, "max_buffer_size": self._max_buffer_size},
            )

    @staticmethod
    async def _report(callbacks: StreamCallbacks, error: StreamError) -> None:
        if callbacks.on_error is None:
            return
        try:
            await _maybe_await(callbacks.on_error, error)
        except Exception:
            LOGGER.exception("Stream error callback failed")


def _iterate_chunks(response: Any) -> AsyncIterator[Any]:
    aiter_bytes = getattr(response, "aiter_bytes", None)
    if callable(aiter_bytes):
        return aiter_bytes().__aiter__()
    if isinstance(response, AsyncIterable):
        return response.__aiter__()
    raise TypeError(f"Unsupported stream source: {type(response).__name__}")


async def _maybe_await(callback: Any, *args: Any) -> Any:
    if callback is None:
        return None
    outcome = callback(*args)
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return outcome


async def _close_response(response: Any) -> None:
    aclose = getattr(response, "aclose", None)
    if aclose is None:
        return
    try:
        outcome = aclose()
        if inspect.isawaitable(outcome):
            await outcome
    except Exception:
        LOGGER.debug("Closing stream source failed", exc_info=True)
