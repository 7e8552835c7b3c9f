"""In-memory lifecycle event log for agent chats."""

from __future__ import annotations

import csv
import io
import json
import logging
import secrets
import time
from collections import Counter, deque
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from .errors import AgentifyError, ErrorManager, StorageCodes
from .utils.formatters import format_bytes

__all__ = ["EventType", "ChatEvent", "EventLog", "MAX_EVENTS"]

LOGGER = logging.getLogger(__name__)

MAX_EVENTS = 5000
MAX_STRING_LENGTH = 10_000
_TRUNCATED = "... [truncated]"


class EventType(str, Enum):
    USER_MESSAGE_SENT = "user_message_sent"
    ASSISTANT_MESSAGE_STARTED = "assistant_message_started"
    ASSISTANT_MESSAGE_COMPLETED = "assistant_message_completed"
    ASSISTANT_TOKEN_RECEIVED = "assistant_token_received"
    TOOL_CALL_INITIATED = "tool_call_initiated"
    TOOL_CALL_COMPLETED = "tool_call_completed"
    TOOL_CALL_FAILED = "tool_call_failed"
    THINKING_STARTED = "thinking_started"
    THINKING_UPDATED = "thinking_updated"
    THINKING_STOPPED = "thinking_stopped"
    API_REQUEST_SENT = "api_request_sent"
    API_RESPONSE_RECEIVED = "api_response_received"
    API_REQUEST_FAILED = "api_request_failed"
    AGENT_INITIALIZED = "agent_initialized"
    CONFIG_UPDATED = "config_updated"
    ERROR_OCCURRED = "error_occurred"
    STREAM_STARTED = "stream_started"
    STREAM_CHUNK_RECEIVED = "stream_chunk_received"
    STREAM_COMPLETED = "stream_completed"
    STREAM_ERROR = "stream_error"


@dataclass(slots=True)
class ChatEvent:
    id: str
    type: str
    chat_id: str | None
    timestamp: str
    unix_timestamp: float
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def _safe_json(value: Any, *, depth: int = 0) -> Any:
    if depth > 6:
        return repr(value)
    if isinstance(value, str):
        if len(value) > MAX_STRING_LENGTH:
            return value[:MAX_STRING_LENGTH] + _TRUNCATED
        return value
    if value is None or isinstance(value, (int, float, bool)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, AgentifyError):
        return {"name": value.name, "code": value.code, "message": value.message, "stack": value.stack}
    if isinstance(value, BaseException):
        return {"name": type(value).__name__, "message": str(value)}
    if isinstance(value, Mapping):
        return {str(key): _safe_json(val, depth=depth + 1) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_safe_json(item, depth=depth + 1) for item in value]
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return _safe_json(to_dict(), depth=depth + 1)
    return repr(value)


def _parse_time(value: datetime | str | float) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, str):
        return datetime.fromisoformat(value).timestamp()
    return float(value)


class EventLog:
    """Capped, in-memory record of chat lifecycle events.

    The log is not durable; callers that need persistence export it (JSON,
    CSV, text) or call :meth:`dump_jsonl`.
    """

    def __init__(self, error_manager: ErrorManager | None = None, *, max_events: int = MAX_EVENTS) -> None:
        self._error_manager = error_manager
        self._events: deque[ChatEvent] = deque(maxlen=max(1, max_events))
        self.current_chat_id: str | None = None

    # ------------------------------------------------------------------
    # Chat ids
    # ------------------------------------------------------------------
    def set_chat_id(self, chat_id: str | None) -> "EventLog":
        self.current_chat_id = chat_id
        return self

    def generate_chat_id(self) -> str:
        self.current_chat_id = _new_id("chat")
        return self.current_chat_id

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------
    def log_event(self, event_type: EventType | str, data: Mapping[str, Any] | None = None, chat_id: str | None = None) -> ChatEvent:
        now = datetime.now(UTC)
        event = ChatEvent(
            id=_new_id("evt"),
            type=event_type.value if isinstance(event_type, EventType) else str(event_type),
            chat_id=chat_id or self.current_chat_id,
            timestamp=now.isoformat(),
            unix_timestamp=now.timestamp(),
            data=_safe_json(dict(data or {})),
        )
        self._events.append(event)
        return event

    def log_user_message(self, message: str, **metadata: Any) -> ChatEvent:
        return self.log_event(
            EventType.USER_MESSAGE_SENT,
            {"message": message, "message_length": len(message or ""), "metadata": metadata},
        )

    def log_assistant_message_started(self, **metadata: Any) -> ChatEvent:
        return self.log_event(EventType.ASSISTANT_MESSAGE_STARTED, {"metadata": metadata})

    def log_assistant_message_completed(self, message: str, duration: float | None = None, **metadata: Any) -> ChatEvent:
        return self.log_event(
            EventType.ASSISTANT_MESSAGE_COMPLETED,
            {"message": message, "message_length": len(message or ""), "duration": duration, "metadata": metadata},
        )

    def log_tool_call_initiated(self, tool_name: str, parameters: Mapping[str, Any], **metadata: Any) -> ChatEvent:
        return self.log_event(
            EventType.TOOL_CALL_INITIATED,
            {"tool_name": tool_name, "parameters": parameters, "metadata": metadata},
        )

    def log_tool_call_completed(
        self,
        tool_name: str,
        parameters: Mapping[str, Any],
        result: Any,
        duration: float | None = None,
        **metadata: Any,
    ) -> ChatEvent:
        return self.log_event(
            EventType.TOOL_CALL_COMPLETED,
            {"tool_name": tool_name, "parameters": parameters, "result": result, "duration": duration, "metadata": metadata},
        )

    def log_tool_call_failed(self, tool_name: str, parameters: Mapping[str, Any], error: BaseException, **metadata: Any) -> ChatEvent:
        return self.log_event(
            EventType.TOOL_CALL_FAILED,
            {
                "tool_name": tool_name,
                "parameters": parameters,
                "error": getattr(error, "message", None) or str(error),
                "error_details": getattr(error, "details", {}),
                "metadata": metadata,
            },
        )

    def log_api_request(self, endpoint: str, body: Mapping[str, Any], **metadata: Any) -> ChatEvent:
        return self.log_event(
            EventType.API_REQUEST_SENT,
            {"endpoint": endpoint, "method": "POST", "body": body, "body_size": len(json.dumps(_safe_json(body))), "metadata": metadata},
        )

    def log_api_response(self, endpoint: str, response: Any, duration: float | None = None, **metadata: Any) -> ChatEvent:
        return self.log_event(
            EventType.API_RESPONSE_RECEIVED,
            {"endpoint": endpoint, "response": response, "duration": duration, "metadata": metadata},
        )

    def log_api_request_failed(self, endpoint: str, error: BaseException, **metadata: Any) -> ChatEvent:
        return self.log_event(
            EventType.API_REQUEST_FAILED,
            {
                "endpoint": endpoint,
                "error": getattr(error, "message", None) or str(error),
                "error_code": getattr(error, "code", None),
                "error_details": getattr(error, "details", {}),
                "metadata": metadata,
            },
        )

    def log_thinking(self, event_type: EventType, action: str | None, **metadata: Any) -> ChatEvent:
        return self.log_event(event_type, {"action": action, "metadata": metadata})

    def log_stream(self, event_type: EventType, **data: Any) -> ChatEvent:
        return self.log_event(event_type, data)

    def log_error(self, error: BaseException, context: str = "", **metadata: Any) -> ChatEvent:
        return self.log_event(
            EventType.ERROR_OCCURRED,
            {
                "error": getattr(error, "message", None) or str(error),
                "error_type": getattr(error, "name", type(error).__name__),
                "error_code": getattr(error, "code", None),
                "error_details": getattr(error, "details", {}),
                "context": context,
                "metadata": metadata,
            },
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_events(
        self,
        *,
        type: EventType | str | Sequence[EventType | str] | None = None,
        chat_id: str | None = None,
        since: datetime | str | float | None = None,
        until: datetime | str | float | None = None,
        search: str | None = None,
        limit: int | None = None,
    ) -> list[ChatEvent]:
        """Return events matching every given filter, oldest first.

        ``limit`` keeps the most recent matches.
        """

        events: Iterable[ChatEvent] = list(self._events)
        if type is not None:
            wanted = {_type_value(item) for item in type} if isinstance(type, (list, tuple, set)) else {_type_value(type)}
            events = [event for event in events if event.type in wanted]
        if chat_id:
            events = [event for event in events if event.chat_id == chat_id]
        if since is not None:
            floor = _parse_time(since)
            events = [event for event in events if event.unix_timestamp >= floor]
        if until is not None:
            ceiling = _parse_time(until)
            events = [event for event in events if event.unix_timestamp <= ceiling]
        if search:
            needle = search.lower()
            events = [
                event
                for event in events
                if needle in json.dumps(event.data, ensure_ascii=False).lower() or needle in event.type
            ]
        result = list(events)
        if limit:
            result = result[-limit:]
        return result

    def get_event(self, event_id: str) -> ChatEvent | None:
        return next((event for event in self._events if event.id == event_id), None)

    def get_chat_ids(self) -> list[str]:
        return list(dict.fromkeys(event.chat_id for event in self._events if event.chat_id))

    def get_chat_timeline(self, chat_id: str) -> list[dict[str, Any]]:
        return [
            {
                "id": event.id,
                "type": event.type,
                "timestamp": event.timestamp,
                "summary": _summarize(event),
                "data": event.data,
            }
            for event in self.get_events(chat_id=chat_id)
        ]

    def get_stats(self) -> dict[str, Any]:
        events = list(self._events)
        size = len(json.dumps([event.to_dict() for event in events], ensure_ascii=False))
        chat_ids = self.get_chat_ids()
        return {
            "total_events": len(events),
            "storage_used": size,
            "storage_used_formatted": format_bytes(size),
            "type_counts": dict(Counter(event.type for event in events)),
            "unique_chat_ids": len(chat_ids),
            "chat_ids": chat_ids,
            "oldest_event": events[0].timestamp if events else None,
            "newest_event": events[-1].timestamp if events else None,
        }

    def __len__(self) -> int:
        return len(self._events)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------
    def clear(self) -> None:
        self._events.clear()

    def delete_events_by_chat_id(self, chat_id: str) -> int:
        return self._retain(lambda event: event.chat_id != chat_id)

    def delete_old_events(self, older_than: datetime | str | float) -> int:
        cutoff = _parse_time(older_than)
        return self._retain(lambda event: event.unix_timestamp >= cutoff)

    def _retain(self, keep) -> int:
        before = len(self._events)
        kept = [event for event in self._events if keep(event)]
        self._events.clear()
        self._events.extend(kept)
        return before - len(kept)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def export_events(self, format: str = "json", **filters: Any) -> str:
        events = self.get_events(**filters)
        fmt = format.lower()
        if fmt == "csv":
            return _to_csv(events)
        if fmt == "text":
            return _to_text(events)
        return json.dumps([event.to_dict() for event in events], ensure_ascii=False, indent=2)

    def dump_jsonl(self, path: Path | str, **filters: Any) -> Path:
        """Write matching events to ``path`` as JSON lines."""

        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("w", encoding="utf-8") as handle:
                for event in self.get_events(**filters):
                    json.dump(event.to_dict(), handle, ensure_ascii=False)
                    handle.write("\n")
        except OSError as exc:
            if self._error_manager is None:
                raise
            raise self._error_manager.create_storage_error(
                "Failed to save events",
                StorageCodes.WRITE_FAILED,
                {"path": str(target), "original_error": str(exc)},
            ) from exc
        LOGGER.debug("Event log written to %s", target)
        return target


def _type_value(value: EventType | str) -> str:
    return value.value if isinstance(value, EventType) else str(value)


def _summarize(event: ChatEvent) -> str:
    if event.type == EventType.USER_MESSAGE_SENT.value:
        return f"User sent message ({event.data.get('message_length', 0)} chars)"
    if event.type == EventType.ASSISTANT_MESSAGE_COMPLETED.value:
        return f"Assistant replied ({event.data.get('message_length', 0)} chars)"
    if event.type == EventType.TOOL_CALL_COMPLETED.value:
        return f"Tool {event.data.get('tool_name')} executed"
    return event.type


def _to_csv(events: Sequence[ChatEvent]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["id", "type", "chat_id", "timestamp", "data"])
    for event in events:
        writer.writerow([event.id, event.type, event.chat_id or "", event.timestamp, json.dumps(event.data, ensure_ascii=False)])
    return buffer.getvalue().rstrip("\n")


def _to_text(events: Sequence[ChatEvent]) -> str:
    blocks = []
    for event in events:
        blocks.append(
            "\n".join(
                [
                    f"Event: {event.id}",
                    f"Type: {event.type}",
                    f"Chat ID: {event.chat_id or 'N/A'}",
                    f"Timestamp: {event.timestamp}",
                    f"Data: {json.dumps(event.data, ensure_ascii=False, indent=2)}",
                    "=" * 80,
                ]
            )
        )
    return "\n\n".join(blocks)
