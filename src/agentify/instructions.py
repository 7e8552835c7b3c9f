"""System instruction composition from text, files and named parts."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Mapping, Sequence

from .errors import ErrorManager, SystemCodes
from .loaders import read_text_source, source_name

__all__ = ["InstructionComposer", "InstructionPart"]

LOGGER = logging.getLogger(__name__)

_SEPARATOR = "\n\n"


@dataclass(slots=True)
class InstructionPart:
    key: str
    content: str
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


class InstructionComposer:
    """Build the system instruction sent ahead of every conversation.

    The instruction is either set wholesale (text or file) or rebuilt from an
    ordered list of keyed parts joined by blank lines. ``render`` substitutes
    ``{{ name }}`` placeholders without mutating the stored text.
    """

    def __init__(self, error_manager: ErrorManager) -> None:
        self._error_manager = error_manager
        self._instruction = ""
        self._parts: list[InstructionPart] = []

    # ------------------------------------------------------------------
    # Whole-instruction setters
    # ------------------------------------------------------------------
    def set_from_text(self, text: str) -> str:
        self._require_text(text, "Instruction must be a string")
        self._instruction = text
        return self._instruction

    async def load_from_file(self, source: Any) -> str:
        """Replace the instruction with the content of ``source``.

        Raises:
            AgentifySystemError: INIT_FAILED when the source cannot be read.
        """

        content = await self._read(source, "Failed to load instruction from file")
        self._instruction = content
        return self._instruction

    def merge(self, instructions: Sequence[Any]) -> str:
        """Join the non-blank strings of ``instructions``; other entries are dropped."""

        if isinstance(instructions, (str, bytes)) or not isinstance(instructions, Sequence):
            raise self._error_manager.create_system_error(
                "Instructions must be an array",
                SystemCodes.INVALID_PARAMETER,
                {"provided_type": type(instructions).__name__},
            )
        self._instruction = _SEPARATOR.join(
            item for item in instructions if isinstance(item, str) and item.strip()
        )
        return self._instruction

    def prepend(self, text: str) -> str:
        self._require_text(text, "Text must be a string")
        self._instruction = f"{text}{_SEPARATOR}{self._instruction}"
        return self._instruction

    def append(self, text: str) -> str:
        self._require_text(text, "Text must be a string")
        self._instruction = f"{self._instruction}{_SEPARATOR}{text}"
        return self._instruction

    # ------------------------------------------------------------------
    # Parts
    # ------------------------------------------------------------------
    def add_instruction_part(self, text: str, key: str | None = None) -> InstructionPart:
        self._require_text(text, "Instruction part must be a string")
        part = InstructionPart(key=key or f"part_{len(self._parts)}", content=text)
        self._parts.append(part)
        self._rebuild()
        return part

    async def add_instruction_part_from_file(self, source: Any, key: str | None = None) -> InstructionPart:
        content = await self._read(source, "Failed to load instruction part from file")
        return self.add_instruction_part(content, key)

    def remove_instruction_part(self, key: str) -> bool:
        for index, part in enumerate(self._parts):
            if part.key == key:
                del self._parts[index]
                self._rebuild()
                return True
        return False

    def get_instruction_parts(self) -> list[InstructionPart]:
        return list(self._parts)

    def _rebuild(self) -> None:
        self._instruction = _SEPARATOR.join(part.content for part in self._parts)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def render(self, variables: Mapping[str, Any] | None = None) -> str:
        """Return the instruction with ``{{ name }}`` placeholders substituted.

        Placeholders without a matching variable are left as they are.
        """

        if not isinstance(variables, Mapping):
            return self._instruction
        rendered = self._instruction
        for name, value in variables.items():
            pattern = re.compile(r"\{\{\s*" + re.escape(str(name)) + r"\s*\}\}")
            replacement = str(value)
            rendered = pattern.sub(lambda _match: replacement, rendered)
        return rendered

    def get_instruction(self) -> str:
        return self._instruction

    def has_instruction(self) -> bool:
        return bool(self._instruction.strip())

    def clear(self) -> None:
        self._instruction = ""
        self._parts.clear()

    def __len__(self) -> int:
        return len(self._instruction)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require_text(self, value: Any, message: str) -> None:
        if not isinstance(value, str):
            raise self._error_manager.create_system_error(
                message,
                SystemCodes.INVALID_PARAMETER,
                {"provided_type": type(value).__name__},
            )

    async def _read(self, source: Any, message: str) -> str:
        try:
            return await read_text_source(source)
        except Exception as exc:
            LOGGER.debug("Instruction source %r could not be read", source, exc_info=True)
            raise self._error_manager.create_system_error(
                message,
                SystemCodes.INIT_FAILED,
                {"file_name": source_name(source), "original_error": str(exc)},
            ) from exc
