"""Resolve instruction sources (raw text, paths or readable handles) to text."""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from pathlib import Path
from typing import Any

__all__ = ["UnsupportedSourceError", "read_text_source", "source_name"]

LOGGER = logging.getLogger(__name__)


class UnsupportedSourceError(TypeError):
    """Raised when a source is neither text nor a recognised file handle."""

    def __init__(self, source: Any) -> None:
        self.provided_type = type(source).__name__
        super().__init__(f"Invalid instruction file format: {self.provided_type}")


def source_name(source: Any) -> str:
    """Best display name for ``source`` (file name, handle name or type)."""

    if isinstance(source, (Path, os.PathLike)):
        return Path(source).name
    name = getattr(source, "name", None)
    if isinstance(name, str) and name:
        return os.path.basename(name)
    if isinstance(source, str):
        return "<text>"
    return type(source).__name__


async def read_text_source(source: Any, *, encoding: str = "utf-8") -> str:
    """Return the text content of ``source``.

    ``str`` values are treated as the content itself. Paths are read from disk
    off the event loop. Objects with a ``read()`` method (sync or async) are
    read and decoded when they yield bytes.

    Raises:
        UnsupportedSourceError: ``source`` is none of the above.
        OSError: the underlying file could not be read.
    """

    if isinstance(source, str):
        return source
    if isinstance(source, (Path, os.PathLike)):
        path = Path(source)
        LOGGER.debug("Reading instruction file %s", path)
        return await asyncio.to_thread(path.read_text, encoding=encoding)
    reader = getattr(source, "read", None)
    if callable(reader):
        data = reader()
        if inspect.isawaitable(data):
            data = await data
        if isinstance(data, (bytes, bytearray)):
            return bytes(data).decode(encoding)
        if isinstance(data, str):
            return data
    raise UnsupportedSourceError(source)
