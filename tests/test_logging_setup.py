"""Tests for the logging setup helpers."""

from __future__ import annotations

import logging

import pytest

from agentify.config import AgentConfig
from agentify.utils import logging as logging_utils
from agentify.utils.logging import SecretFilter, level_for, redact_secrets, setup_logging


@pytest.fixture
def restore_root_logging(monkeypatch: pytest.MonkeyPatch):
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    monkeypatch.setattr(logging_utils, "_LOG_PATH", None)
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Authorization: Bearer abc.def-123", "Authorization: Bearer ***"),
        ("POST https://g.test/v1/m:generateContent?key=SECRET&x=1", "POST https://g.test/v1/m:generateContent?key=***&x=1"),
        ("headers={'x-api-key': 'sk-ant-123456'}", "headers={'x-api-key': '***'}"),
        ("using sk-proj-abcdef for now", "using sk-*** for now"),
        ("nothing to hide", "nothing to hide"),
    ],
)
def test_redact_secrets(raw: str, expected: str) -> None:
    assert redact_secrets(raw) == expected


def test_filter_rewrites_formatted_message() -> None:
    record = logging.LogRecord("agentify", logging.INFO, __file__, 1, "token %s", ("Bearer sk-live-999",), None)

    assert SecretFilter().filter(record)
    assert record.getMessage() == "token Bearer ***"


def test_level_for_config() -> None:
    assert level_for(AgentConfig(debug_logging=True)) == logging.DEBUG
    assert level_for(AgentConfig()) == logging.INFO
    assert level_for(None, logging.WARNING) == logging.WARNING


def test_setup_logging_writes_redacted_file(tmp_path, restore_root_logging) -> None:
    log_path = setup_logging(logging.DEBUG, log_dir=tmp_path, console=False)

    logging.getLogger("agentify.test").info("calling with key sk-abcdef123")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert log_path == tmp_path / "agentify.log"
    assert logging_utils.get_log_path() == log_path
    assert logging.getLogger("httpx").level == logging.WARNING
    contents = log_path.read_text(encoding="utf-8")
    assert "calling with key sk-***" in contents
    assert "abcdef123" not in contents


def test_setup_logging_is_idempotent(tmp_path, restore_root_logging) -> None:
    first = setup_logging(log_dir=tmp_path / "a", console=False)
    second = setup_logging(log_dir=tmp_path / "b", console=False)

    assert first == second
    assert not (tmp_path / "b").exists()
