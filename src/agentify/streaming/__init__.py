"""Streaming response parsing and dispatch."""

from .events import (
    PendingToolCall,
    StreamCallbacks,
    StreamEvent,
    StreamEventType,
    StreamResult,
    StreamSession,
)
from .parsers import parse_anthropic_buffer, parse_gemini_buffer, parse_openai_buffer, parser_for
from .processor import MAX_BUFFER_SIZE, StreamProcessor

__all__ = [
    # events.py
    "StreamEventType",
    "StreamEvent",
    "StreamResult",
    "StreamCallbacks",
    "StreamSession",
    "PendingToolCall",
    # parsers.py
    "parse_openai_buffer",
    "parse_anthropic_buffer",
    "parse_gemini_buffer",
    "parser_for",
    # processor.py
    "StreamProcessor",
    "MAX_BUFFER_SIZE",
]
