"""Timeout-bounded tool execution.

Coroutine handlers are cancelled when the timeout expires. Synchronous
handlers run in a worker thread; on timeout the executor stops waiting but the
thread keeps running until the handler returns.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import traceback
from collections.abc import Mapping
from typing import Any, cast

from ..errors import ErrorManager, ToolCodes, ToolError
from .registry import ToolRegistry
from .types import ToolDefinition, ToolExecutionResult, ToolHandler
from .validation import validate_tool_parameters

__all__ = ["ToolExecutor", "DEFAULT_TOOL_TIMEOUT"]

LOGGER = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 30.0


class ToolExecutor:
    """Run registered tools with parameter validation and a timeout.

    Example:
        executor = ToolExecutor(registry, error_manager)
        result = await executor.execute_tool("search", {"q": "python"})
        result.result  # handler return value
    """

    def __init__(
        self,
        registry: ToolRegistry,
        error_manager: ErrorManager,
        *,
        timeout: float = DEFAULT_TOOL_TIMEOUT,
        log_arguments: bool = False,
    ) -> None:
        self._registry = registry
        self._error_manager = error_manager
        self._timeout = timeout
        self._log_arguments = log_arguments

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def timeout(self) -> float:
        return self._timeout

    async def execute_tool(self, name: str, parameters: Mapping[str, Any] | None = None) -> ToolExecutionResult:
        """Execute the tool registered as ``name``.

        Args:
            name: Registered tool name.
            parameters: Arguments for the handler. A dict is validated (and
                coerced) in place; other mappings are copied first.

        Returns:
            A successful ``ToolExecutionResult`` with ``duration`` in ms.

        Raises:
            ToolError: NOT_FOUND for unknown tools, INVALID_PARAMS for
                arguments failing validation, EXEC_FAILED when there is no
                handler or the handler raised or timed out.
        """

        tool = self._registry.get_tool(name)
        if tool.execute is None:
            raise self._error_manager.create_tool_error(
                f"Tool {name} has no execute function",
                ToolCodes.EXEC_FAILED,
                {"tool_name": name},
            )

        params: dict[str, Any] = parameters if isinstance(parameters, dict) else dict(parameters or {})
        validate_tool_parameters(tool, params, self._error_manager)

        if self._log_arguments:
            LOGGER.debug("Executing tool %s with arguments: %s", name, params)
        else:
            LOGGER.debug("Executing tool %s", name)

        start_time = time.perf_counter()
        deadline = asyncio.timeout(self._timeout)
        try:
            async with deadline:
                result = await self._invoke(tool, params)
        except TimeoutError as exc:
            if not deadline.expired():
                raise self._execution_failed(name, params, exc, start_time) from exc
            duration_ms = (time.perf_counter() - start_time) * 1000
            LOGGER.warning("Tool %s timed out after %.1fms (timeout=%.1fs)", name, duration_ms, self._timeout)
            raise self._error_manager.create_tool_error(
                f"Tool execution failed: {name}",
                ToolCodes.EXEC_FAILED,
                {
                    "tool_name": name,
                    "parameters": dict(params),
                    "original_error": "Tool execution timeout",
                    "stack": "",
                    "timed_out": True,
                },
            ) from exc
        except Exception as exc:
            raise self._execution_failed(name, params, exc, start_time) from exc

        duration_ms = (time.perf_counter() - start_time) * 1000
        LOGGER.debug("Tool %s completed in %.1fms", name, duration_ms)
        return ToolExecutionResult(success=True, tool_name=name, result=result, duration=duration_ms)

    def _execution_failed(self, name: str, params: dict[str, Any], exc: BaseException, start_time: float) -> ToolError:
        duration_ms = (time.perf_counter() - start_time) * 1000
        LOGGER.warning("Tool %s failed after %.1fms: %s", name, duration_ms, exc)
        return self._error_manager.create_tool_error(
            f"Tool execution failed: {name}",
            ToolCodes.EXEC_FAILED,
            {
                "tool_name": name,
                "parameters": dict(params),
                "original_error": str(exc) or type(exc).__name__,
                "stack": "".join(traceback.format_exception(exc)),
                "timed_out": False,
            },
        )

    @staticmethod
    async def _invoke(tool: ToolDefinition, params: dict[str, Any]) -> Any:
        handler = cast(ToolHandler, tool.execute)
        if inspect.iscoroutinefunction(handler):
            return await handler(params)
        result = await asyncio.to_thread(handler, params)
        if inspect.isawaitable(result):
            result = await result
        return result

    def has_tool(self, name: str) -> bool:
        return self._registry.has_tool(name)
