"""Formatting helpers for tool schemas, messages and human-readable values."""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

__all__ = [
    "format_tool_parameters",
    "format_messages",
    "format_thinking_content",
    "truncate_text",
    "format_bytes",
    "format_duration",
]

_THINKING_TAG_RE = re.compile(r"</?thinking>", re.IGNORECASE)
_BYTE_UNITS = ("Bytes", "KB", "MB", "GB")


def format_tool_parameters(parameters: Mapping[str, Any] | None) -> dict[str, Any]:
    """Project a ``{name: {type, required, ...}}`` mapping into a JSON object schema.

    The per-parameter ``required`` flag is lifted into the schema's top-level
    ``required`` list. Bare values (``{"q": "string"}``) are treated as the
    parameter type. Mappings that already look like an object schema are
    returned as a copy.
    """

    if not parameters or not isinstance(parameters, Mapping):
        return {"type": "object", "properties": {}}
    if parameters.get("type") == "object" and isinstance(parameters.get("properties"), Mapping):
        return dict(parameters)

    properties: dict[str, Any] = {}
    required: list[str] = []
    for key, value in parameters.items():
        if isinstance(value, Mapping):
            clean = {k: v for k, v in value.items() if k != "required"}
            properties[key] = clean
            if value.get("required") is True:
                required.append(key)
        else:
            properties[key] = {"type": value}

    formatted: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        formatted["required"] = required
    return formatted


def format_messages(
    messages: Iterable[Any],
    system_instruction: str | None = None,
) -> list[dict[str, Any]]:
    """Normalize strings and message records into role/content mappings."""

    formatted: list[dict[str, Any]] = []
    if system_instruction:
        formatted.append({"role": "system", "content": system_instruction})
    for message in messages:
        if isinstance(message, str):
            formatted.append({"role": "user", "content": message})
        elif isinstance(message, Mapping):
            formatted.append(dict(message))
        elif hasattr(message, "to_dict"):
            formatted.append(message.to_dict())
    return formatted


def format_thinking_content(content: str | None) -> str:
    """Strip ``<thinking>`` tags and surrounding whitespace."""

    if not content:
        return ""
    return _THINKING_TAG_RE.sub("", content).strip()


def truncate_text(text: str | None, max_length: int = 100) -> str | None:
    if not text or len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    index = 0
    while value >= 1024 and index < len(_BYTE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {_BYTE_UNITS[index]}"


def format_duration(ms: float) -> str:
    """Render a millisecond duration as ``850ms``, ``1.5s``, ``2.0m`` or ``1.2h``."""

    if ms < 1000:
        return f"{int(ms)}ms"
    if ms < 60_000:
        return f"{ms / 1000:.1f}s"
    if ms < 3_600_000:
        return f"{ms / 60_000:.1f}m"
    return f"{ms / 3_600_000:.1f}h"
