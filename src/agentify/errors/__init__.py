"""Error taxonomy and the central error manager."""

from .types import (
    ERROR_KINDS,
    UNKNOWN_ERROR,
    AgentifyError,
    AgentifySystemError,
    ModelCodes,
    ModelError,
    NetworkCodes,
    NetworkError,
    StorageCodes,
    StorageError,
    StreamCodes,
    StreamError,
    SystemCodes,
    ToolCodes,
    ToolError,
)
from .manager import MAX_ERROR_LOG_SIZE, ErrorLogEntry, ErrorManager

__all__ = [
    # types.py
    "ERROR_KINDS",
    "UNKNOWN_ERROR",
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
    # manager.py
    "ErrorManager",
    "ErrorLogEntry",
    "MAX_ERROR_LOG_SIZE",
]
