"""Multi-provider chat orchestration: adapters, tools, streaming and tracking."""

from .agent import Agent, ChatResult
from .config import AgentConfig, detect_provider, validate_config
from .errors import AgentifyError, ErrorManager
from .events import EventLog, EventType
from .instructions import InstructionComposer
from .model_types import ChatResponse, Message, ProviderKind, ToolCall
from .providers import ProviderAdapter, create_adapter
from .streaming import StreamCallbacks, StreamProcessor, StreamResult
from .thinking import ThinkingStatus, ThinkingTracker
from .tools import ToolDefinition, ToolExecutor, ToolRegistry

__all__ = [
    "Agent",
    "ChatResult",
    "AgentConfig",
    "detect_provider",
    "validate_config",
    "AgentifyError",
    "ErrorManager",
    "EventLog",
    "EventType",
    "InstructionComposer",
    "ChatResponse",
    "Message",
    "ProviderKind",
    "ToolCall",
    "ProviderAdapter",
    "create_adapter",
    "StreamCallbacks",
    "StreamProcessor",
    "StreamResult",
    "ThinkingStatus",
    "ThinkingTracker",
    "ToolDefinition",
    "ToolExecutor",
    "ToolRegistry",
]
