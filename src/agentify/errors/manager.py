"""Central factory and in-memory log for agentify errors."""

from __future__ import annotations

import json
import logging
import traceback
from collections import deque
from datetime import UTC, datetime
from typing import Any, Callable, Mapping

import httpx

from .types import (
    AgentifyError,
    AgentifySystemError,
    ModelError,
    NetworkCodes,
    NetworkError,
    StorageError,
    StreamError,
    ToolError,
    UNKNOWN_ERROR,
)

__all__ = ["ErrorManager", "ErrorLogEntry", "MAX_ERROR_LOG_SIZE"]

LOGGER = logging.getLogger(__name__)

MAX_ERROR_LOG_SIZE = 100
_UNREADABLE_BODY = "Could not read response body"
_SERVER_ERROR_STATUSES = frozenset({500, 502, 503, 504})

ErrorLogEntry = dict[str, Any]
ErrorListener = Callable[[ErrorLogEntry], None]


class ErrorManager:
    """Creates typed errors and keeps a bounded log of everything created.

    The ``create_*`` methods never raise; callers decide whether to raise the
    returned error. The log holds at most ``MAX_ERROR_LOG_SIZE`` entries and
    evicts the oldest first.
    """

    def __init__(self, *, max_log_size: int = MAX_ERROR_LOG_SIZE) -> None:
        self._log: deque[ErrorLogEntry] = deque(maxlen=max(1, int(max_log_size)))
        self._listeners: list[ErrorListener] = []

    @property
    def max_log_size(self) -> int:
        return self._log.maxlen or MAX_ERROR_LOG_SIZE

    # ------------------------------------------------------------------
    # Log access
    # ------------------------------------------------------------------
    def log_error(self, error: BaseException) -> ErrorLogEntry:
        """Append ``error`` to the log and notify subscribers."""

        payload: Any
        if isinstance(error, AgentifyError):
            payload = error.to_dict()
            LOGGER.debug("%s %s: %s", error.name, error.code, error.message)
        else:
            payload = {"name": type(error).__name__, "message": str(error)}
        entry: ErrorLogEntry = {
            "error": payload,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        self._log.append(entry)
        self._notify(entry)
        return entry

    def get_error_log(self) -> list[ErrorLogEntry]:
        return list(self._log)

    def clear_error_log(self) -> None:
        self._log.clear()

    def subscribe(self, callback: ErrorListener) -> Callable[[], None]:
        """Register ``callback`` for new log entries; returns an unsubscribe function."""

        if not callable(callback):
            raise TypeError("callback must be callable")
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, entry: ErrorLogEntry) -> None:
        for listener in list(self._listeners):
            try:
                listener(dict(entry))
            except Exception:  # pragma: no cover - listener isolation
                LOGGER.exception("Error log listener failed")

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------
    def create_system_error(self, message: str, code: str, details: Mapping[str, Any] | None = None) -> AgentifySystemError:
        return self._record(AgentifySystemError(message, code, details))

    def create_network_error(self, message: str, code: str, details: Mapping[str, Any] | None = None) -> NetworkError:
        return self._record(NetworkError(message, code, details))

    def create_model_error(self, message: str, code: str, details: Mapping[str, Any] | None = None) -> ModelError:
        return self._record(ModelError(message, code, details))

    def create_tool_error(self, message: str, code: str, details: Mapping[str, Any] | None = None) -> ToolError:
        return self._record(ToolError(message, code, details))

    def create_stream_error(self, message: str, code: str, details: Mapping[str, Any] | None = None) -> StreamError:
        return self._record(StreamError(message, code, details))

    def create_storage_error(self, message: str, code: str, details: Mapping[str, Any] | None = None) -> StorageError:
        return self._record(StorageError(message, code, details))

    def _record(self, error):
        self.log_error(error)
        return error

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------
    async def handle_fetch_error(self, response: httpx.Response, endpoint: str) -> NetworkError:
        """Map a failed HTTP response onto a typed :class:`NetworkError`."""

        status = response.status_code
        details: dict[str, Any] = {
            "status_code": status,
            "status_text": getattr(response, "reason_phrase", ""),
            "endpoint": endpoint,
            "response_body": await _read_response_body(response),
        }

        if status == 401:
            code, message = NetworkCodes.UNAUTHORIZED, "API key is invalid or missing"
        elif status == 403:
            code, message = NetworkCodes.FORBIDDEN, "Access forbidden - check API permissions"
        elif status == 404:
            code, message = NetworkCodes.NOT_FOUND, "API endpoint not found"
        elif status == 429:
            code, message = NetworkCodes.RATE_LIMIT, "Rate limit exceeded"
            details["retry_after"] = response.headers.get("Retry-After")
        elif status in _SERVER_ERROR_STATUSES:
            code, message = NetworkCodes.SERVER_ERROR, "API server error"
        else:
            code, message = NetworkCodes.INVALID_RESPONSE, f"Unexpected response status: {status}"

        LOGGER.warning("Request to %s failed with HTTP %s (%s)", endpoint, status, code)
        return self.create_network_error(message, code, details)

    def wrap_error(self, error: BaseException, context: str = "") -> AgentifyError:
        """Return ``error`` if already typed, else wrap it in a generic logged error."""

        if isinstance(error, AgentifyError):
            return error
        wrapped = AgentifyError(
            str(error) or "Unknown error occurred",
            UNKNOWN_ERROR,
            {
                "context": context,
                "original_error": repr(error),
                "original_stack": "".join(traceback.format_exception(error)),
            },
        )
        self.log_error(wrapped)
        return wrapped


async def _read_response_body(response: httpx.Response) -> Any:
    try:
        await response.aread()
        text = response.text
    except Exception:
        LOGGER.debug("Unable to read error response body", exc_info=True)
        return _UNREADABLE_BODY
    try:
        return json.loads(text)
    except ValueError:
        return text
