"""Tests for the instruction composer and text source loading."""

from __future__ import annotations

import io

import pytest

from agentify.errors import AgentifySystemError, ErrorManager, SystemCodes
from agentify.instructions import InstructionComposer
from agentify.loaders import UnsupportedSourceError, read_text_source, source_name


@pytest.fixture
def composer(error_manager: ErrorManager) -> InstructionComposer:
    return InstructionComposer(error_manager)


class _AsyncReader:
    name = "/uploads/prompt.txt"

    async def read(self) -> bytes:
        return "Réponds en français.".encode("utf-8")


class TestComposer:
    def test_set_prepend_append(self, composer: InstructionComposer) -> None:
        composer.set_from_text("Core")
        composer.prepend("Intro")
        composer.append("Outro")

        assert composer.get_instruction() == "Intro\n\nCore\n\nOutro"
        assert composer.has_instruction()
        assert len(composer) == len("Intro\n\nCore\n\nOutro")

    def test_non_string_text_rejected(self, composer: InstructionComposer) -> None:
        with pytest.raises(AgentifySystemError) as excinfo:
            composer.set_from_text(42)  # type: ignore[arg-type]

        assert excinfo.value.code == SystemCodes.INVALID_PARAMETER
        assert excinfo.value.details["provided_type"] == "int"

    def test_merge_keeps_non_blank_strings(self, composer: InstructionComposer) -> None:
        assert composer.merge(["One", "", "  ", 3, "Two"]) == "One\n\nTwo"

    def test_merge_requires_sequence(self, composer: InstructionComposer) -> None:
        with pytest.raises(AgentifySystemError):
            composer.merge("One")  # type: ignore[arg-type]

    def test_parts_rebuild_instruction(self, composer: InstructionComposer) -> None:
        first = composer.add_instruction_part("Be concise.")
        composer.add_instruction_part("Use markdown.", key="format")

        assert first.key == "part_0"
        assert composer.get_instruction() == "Be concise.\n\nUse markdown."
        assert composer.remove_instruction_part("format") is True
        assert composer.remove_instruction_part("format") is False
        assert composer.get_instruction() == "Be concise."
        assert [part.key for part in composer.get_instruction_parts()] == ["part_0"]

    def test_removing_last_part_empties_instruction(self, composer: InstructionComposer) -> None:
        composer.add_instruction_part("Only", key="only")
        composer.remove_instruction_part("only")

        assert composer.get_instruction() == ""
        assert not composer.has_instruction()

    def test_render_substitutes_placeholders(self, composer: InstructionComposer) -> None:
        composer.set_from_text("Hello {{name}}, today is {{ day }}. Keep {{missing}}.")

        rendered = composer.render({"name": "Ada", "day": "Monday"})

        assert rendered == "Hello Ada, today is Monday. Keep {{missing}}."
        assert composer.get_instruction().startswith("Hello {{name}}")

    def test_render_without_variables(self, composer: InstructionComposer) -> None:
        composer.set_from_text("Static")

        assert composer.render() == "Static"

    def test_render_values_are_literal(self, composer: InstructionComposer) -> None:
        composer.set_from_text("Path: {{path}}")

        assert composer.render({"path": r"C:\new\dir"}) == r"Path: C:\new\dir"

    def test_clear(self, composer: InstructionComposer) -> None:
        composer.add_instruction_part("x")
        composer.clear()

        assert composer.get_instruction() == ""
        assert composer.get_instruction_parts() == []

    @pytest.mark.asyncio
    async def test_load_from_file(self, composer: InstructionComposer, tmp_path) -> None:
        path = tmp_path / "system.md"
        path.write_text("From disk", encoding="utf-8")

        assert await composer.load_from_file(path) == "From disk"

    @pytest.mark.asyncio
    async def test_part_from_async_reader(self, composer: InstructionComposer) -> None:
        part = await composer.add_instruction_part_from_file(_AsyncReader(), key="lang")

        assert part.content == "Réponds en français."

    @pytest.mark.asyncio
    async def test_unreadable_source(self, composer: InstructionComposer) -> None:
        with pytest.raises(AgentifySystemError) as excinfo:
            await composer.load_from_file(12345)

        assert excinfo.value.code == SystemCodes.INIT_FAILED
        assert excinfo.value.details["file_name"] == "int"


class TestLoaders:
    @pytest.mark.asyncio
    async def test_text_is_returned_as_is(self) -> None:
        assert await read_text_source("inline text") == "inline text"

    @pytest.mark.asyncio
    async def test_sync_handles(self) -> None:
        assert await read_text_source(io.StringIO("text handle")) == "text handle"
        assert await read_text_source(io.BytesIO(b"bytes handle")) == "bytes handle"

    @pytest.mark.asyncio
    async def test_unsupported_source(self) -> None:
        with pytest.raises(UnsupportedSourceError) as excinfo:
            await read_text_source(object())

        assert excinfo.value.provided_type == "object"

    def test_source_name(self, tmp_path) -> None:
        assert source_name(tmp_path / "a.md") == "a.md"
        assert source_name(_AsyncReader()) == "prompt.txt"
        assert source_name("raw") == "<text>"
