"""Typed error hierarchy for the agentify core.

Every failure that crosses a component boundary is one of the six kinds below.
Each kind carries a closed set of string codes exposed through its ``codes``
constants class, structured ``details`` and the creation timestamp/stack.
"""

from __future__ import annotations

import traceback
from datetime import UTC, datetime
from typing import Any, ClassVar, Mapping

__all__ = [
    "AgentifyError",
    "AgentifySystemError",
    "NetworkError",
    "ModelError",
    "ToolError",
    "StreamError",
    "StorageError",
    "SystemCodes",
    "NetworkCodes",
    "ModelCodes",
    "ToolCodes",
    "StreamCodes",
    "StorageCodes",
    "UNKNOWN_ERROR",
    "ERROR_KINDS",
]

UNKNOWN_ERROR = "UNKNOWN_ERROR"


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------


class SystemCodes:
    """Configuration, initialization and validation failures."""

    CONFIG_INVALID = "SYS_CONFIG_INVALID"
    CONFIG_MISSING = "SYS_CONFIG_MISSING"
    INIT_FAILED = "SYS_INIT_FAILED"
    VALIDATION_FAILED = "SYS_VALIDATION_FAILED"
    INVALID_PARAMETER = "SYS_INVALID_PARAMETER"
    MISSING_DEPENDENCY = "SYS_MISSING_DEPENDENCY"


class NetworkCodes:
    """Provider API communication failures."""

    CONNECTION_FAILED = "NET_CONNECTION_FAILED"
    TIMEOUT = "NET_TIMEOUT"
    RATE_LIMIT = "NET_RATE_LIMIT"
    UNAUTHORIZED = "NET_UNAUTHORIZED"
    FORBIDDEN = "NET_FORBIDDEN"
    NOT_FOUND = "NET_NOT_FOUND"
    SERVER_ERROR = "NET_SERVER_ERROR"
    INVALID_RESPONSE = "NET_INVALID_RESPONSE"


class ModelCodes:
    """Problems with the payload a model returned."""

    INVALID_RESPONSE = "MDL_INVALID_RESPONSE"
    RESPONSE_PARSE_FAILED = "MDL_RESPONSE_PARSE_FAILED"
    INCOMPLETE_RESPONSE = "MDL_INCOMPLETE_RESPONSE"
    CONTEXT_LENGTH_EXCEEDED = "MDL_CONTEXT_LENGTH_EXCEEDED"
    CONTENT_FILTERED = "MDL_CONTENT_FILTERED"
    INVALID_FUNCTION_CALL = "MDL_INVALID_FUNCTION_CALL"


class ToolCodes:
    """Tool registration and execution failures."""

    NOT_FOUND = "TOOL_NOT_FOUND"
    EXEC_FAILED = "TOOL_EXEC_FAILED"
    INVALID_PARAMS = "TOOL_INVALID_PARAMS"
    TIMEOUT = "TOOL_TIMEOUT"
    REGISTRATION_FAILED = "TOOL_REGISTRATION_FAILED"
    INVALID_DEFINITION = "TOOL_INVALID_DEFINITION"


class StreamCodes:
    """Streaming transport and framing failures."""

    PARSE_FAILED = "STR_PARSE_FAILED"
    CONNECTION_LOST = "STR_CONNECTION_LOST"
    INVALID_FORMAT = "STR_INVALID_FORMAT"
    BUFFER_OVERFLOW = "STR_BUFFER_OVERFLOW"
    INCOMPLETE_DATA = "STR_INCOMPLETE_DATA"


class StorageCodes:
    """Failures reported by external storage collaborators."""

    QUOTA_EXCEEDED = "STG_QUOTA_EXCEEDED"
    ACCESS_DENIED = "STG_ACCESS_DENIED"
    NOT_AVAILABLE = "STG_NOT_AVAILABLE"
    PARSE_FAILED = "STG_PARSE_FAILED"
    WRITE_FAILED = "STG_WRITE_FAILED"
    READ_FAILED = "STG_READ_FAILED"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------


class AgentifyError(Exception):
    """Base class for all agentify errors.

    Attributes:
        name: Kind of the error (``"SystemError"``, ``"NetworkError"``...).
        code: Stable machine-readable code from the kind's ``codes`` set.
        message: Human-readable description.
        details: Structured context for logging and display.
        timestamp: ISO-8601 UTC creation time.
        stack: Formatted stack at the point of creation.
    """

    kind: ClassVar[str] = "AgentifyError"
    codes: ClassVar[type | None] = None

    def __init__(self, message: str, code: str = UNKNOWN_ERROR, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details: dict[str, Any] = dict(details) if details else {}
        self.timestamp = datetime.now(UTC).isoformat()
        self.stack = "".join(traceback.format_stack()[:-1])

    @property
    def name(self) -> str:
        return self.kind

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging or hand-off to a persistence layer."""
        return {
            "name": self.name,
            "code": self.code,
            "message": self.message,
            "details": dict(self.details),
            "timestamp": self.timestamp,
            "stack": self.stack,
        }

    def to_console(self) -> str:
        """Render a multi-line report suitable for terminal output."""
        rule = "=" * 80
        lines = [
            rule,
            f"[{self.name}] {self.code}",
            rule,
            f"Message: {self.message}",
            f"Timestamp: {self.timestamp}",
            "",
            "Details:",
            _format_details(self.details),
            "",
            "Stack Trace:",
            self.stack.rstrip(),
            rule,
        ]
        return "\n".join(lines)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, code={self.code!r})"


def _format_details(details: Mapping[str, Any]) -> str:
    if not details:
        return "{}"
    return "\n".join(f"  {key}: {value!r}" for key, value in details.items())


# -----------------------------------------------------------------------------
# Error Kinds
# -----------------------------------------------------------------------------


class AgentifySystemError(AgentifyError):
    """Configuration, initialization or validation problem."""

    kind = "SystemError"
    codes = SystemCodes


class NetworkError(AgentifyError):
    """Provider API communication problem."""

    kind = "NetworkError"
    codes = NetworkCodes


class ModelError(AgentifyError):
    """The model returned a payload that could not be used."""

    kind = "ModelError"
    codes = ModelCodes


class ToolError(AgentifyError):
    """Tool registration or execution failure."""

    kind = "ToolError"
    codes = ToolCodes


class StreamError(AgentifyError):
    """Streaming or stream-parsing failure."""

    kind = "StreamError"
    codes = StreamCodes


class StorageError(AgentifyError):
    """Failure reported by a storage collaborator."""

    kind = "StorageError"
    codes = StorageCodes


ERROR_KINDS: tuple[type[AgentifyError], ...] = (
    AgentifySystemError,
    NetworkError,
    ModelError,
    ToolError,
    StreamError,
    StorageError,
)
