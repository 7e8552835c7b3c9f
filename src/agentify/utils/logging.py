"""Logging setup for applications embedding agentify.

The library itself only creates module loggers; :func:`setup_logging` is for
hosts that want a ready-made file/console configuration. Every handler it
installs carries a :class:`SecretFilter` so provider credentials that end up
in messages (bearer tokens, ``key=`` query parameters) are masked.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
from pathlib import Path
from typing import Any

__all__ = ["SecretFilter", "redact_secrets", "setup_logging", "level_for", "get_log_path"]

_DEFAULT_LOG_DIR = Path.home() / ".agentify" / "logs"
_LOG_FILE_NAME = "agentify.log"
_TRANSPORT_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_SECRET_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+"), r"\1***"),
    (re.compile(r"([?&]key=)[^&\s\"']+"), r"\1***"),
    (re.compile(r"(x-api-key['\"]?\s*[:=]\s*['\"]?)[^\s'\",}]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"\bsk-[A-Za-z0-9_\-]{4,}"), "sk-***"),
)

_LOG_PATH: Path | None = None


def redact_secrets(text: str) -> str:
    """Mask credential-looking substrings in ``text``."""

    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SecretFilter(logging.Filter):
    """Rewrites record messages with :func:`redact_secrets` applied."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def level_for(config: Any, default: int = logging.INFO) -> int:
    """DEBUG when ``config.debug_logging`` is set, otherwise ``default``."""

    return logging.DEBUG if getattr(config, "debug_logging", False) else default


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install rotating-file and optional console handlers on the root logger.

    Args:
        level: Root level. Transport loggers are held at WARNING unless the
            root level is stricter.
        log_dir: Directory for ``agentify.log``. Falls back to
            ``AGENTIFY_LOG_DIR`` and then ``~/.agentify/logs``.
        console: Also log to stderr.
        force: Reconfigure even if logging was already set up.

    Returns:
        Path of the active log file.
    """

    global _LOG_PATH
    if _LOG_PATH is not None and not force:
        return _LOG_PATH

    target_dir = Path(log_dir or os.environ.get("AGENTIFY_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILE_NAME

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(SecretFilter())

    logging.basicConfig(level=level, handlers=handlers, force=True)
    quiet_level = max(level, logging.WARNING)
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    _LOG_PATH = log_path
    return log_path


def get_log_path() -> Path | None:
    return _LOG_PATH
