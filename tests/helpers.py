"""Shared test helpers and stub classes.

Import from here instead of duplicating these helpers in individual test files:

    from helpers import OPENAI_URL, sse, ChunkSource
"""

from __future__ import annotations

import json
from typing import Any, Iterable

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
DEEPSEEK_URL = "https://api.deepseek.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1/models/gemini-pro:generateContent"
CUSTOM_URL = "https://llm.example.test/v1/generate"


def sse(*payloads: Any) -> bytes:
    """Encode payloads as ``data:`` lines separated by blank lines."""

    lines = []
    for payload in payloads:
        body = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        lines.append(f"data: {body}\n\n")
    return "".join(lines).encode("utf-8")


def ndjson(*payloads: Any) -> bytes:
    return "".join(json.dumps(payload, ensure_ascii=False) + "\n" for payload in payloads).encode("utf-8")


class ChunkSource:
    """Async-iterable chunk source that records whether it was closed."""

    def __init__(self, chunks: Iterable[bytes | str]):
        self._chunks = list(chunks)
        self.closed = False
        self.consumed = 0

    def __aiter__(self) -> "ChunkSource":
        return self

    async def __anext__(self) -> bytes | str:
        if self.consumed >= len(self._chunks):
            raise StopAsyncIteration
        chunk = self._chunks[self.consumed]
        self.consumed += 1
        return chunk

    async def aclose(self) -> None:
        self.closed = True
