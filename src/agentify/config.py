"""Runtime configuration for the agentify core."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Mapping

from .errors import AgentifySystemError, SystemCodes
from .model_types import ProviderKind

__all__ = [
    "AgentConfig",
    "validate_config",
    "detect_provider",
    "DEFAULT_MAX_HISTORY_MESSAGES",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY_MESSAGES = 50

_ENV_OVERRIDES: Mapping[str, str] = {
    "AGENTIFY_API_KEY": "api_key",
    "AGENTIFY_API_URL": "api_url",
    "AGENTIFY_MODEL": "model",
    "AGENTIFY_PROVIDER": "provider",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "AGENTIFY_STREAM": "stream",
    "AGENTIFY_DEBUG_LOGGING": "debug_logging",
    "AGENTIFY_USE_HISTORY": "use_history",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "AGENTIFY_TEMPERATURE": "temperature",
    "AGENTIFY_TIMEOUT": "timeout",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "AGENTIFY_MAX_TOKENS": "max_tokens",
    "AGENTIFY_RETRY_ATTEMPTS": "retry_attempts",
    "AGENTIFY_MAX_HISTORY_MESSAGES": "max_history_messages",
}
_TRUE_VALUES = {"1", "true", "yes", "on"}
_PROVIDER_URL_HINTS: tuple[tuple[tuple[str, ...], ProviderKind], ...] = (
    (("openai.com",), ProviderKind.OPENAI),
    (("anthropic.com",), ProviderKind.ANTHROPIC),
    (("googleapis.com", "generativelanguage"), ProviderKind.GEMINI),
    (("deepseek.com",), ProviderKind.DEEPSEEK),
)


@dataclass(slots=True)
class AgentConfig:
    """Settings needed to talk to a provider endpoint.

    ``provider`` is detected from ``api_url`` when it is not given explicitly.

    ``retry_attempts`` defaults to 1: each request is a single POST. Raising it
    opts in to re-sending the same POST after transport failures (connect
    errors, timeouts), so one call may reach the server more than once; HTTP
    error statuses are never retried.

    ``max_history_messages`` caps how much earlier conversation is sent with
    each request (``None`` or 0 sends all of it). With ``use_history`` off only
    the current turn is sent.
    """

    model: str | None = None
    api_url: str | None = None
    api_key: str | None = None
    provider: ProviderKind | None = None
    temperature: float = 0.7
    max_tokens: int | None = None
    stream: bool = True
    timeout: float = 60.0
    retry_attempts: int = 1
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    extra_headers: dict[str, str] = field(default_factory=dict)
    custom_params: dict[str, Any] = field(default_factory=dict)
    debug_logging: bool = False
    use_history: bool = True
    max_history_messages: int | None = DEFAULT_MAX_HISTORY_MESSAGES

    def __post_init__(self) -> None:
        validate_config(self._public_fields())
        if self.provider is None:
            self.provider = detect_provider(self.api_url) if self.api_url else ProviderKind.CUSTOM
        else:
            self.provider = ProviderKind.coerce(self.provider)

    @property
    def provider_kind(self) -> ProviderKind:
        return ProviderKind.coerce(self.provider)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **overrides: Any) -> "AgentConfig":
        """Build a config from ``AGENTIFY_*`` environment variables plus overrides."""

        source = os.environ if env is None else env
        values: dict[str, Any] = {}
        for env_key, attr in _ENV_OVERRIDES.items():
            raw = source.get(env_key)
            if raw:
                values[attr] = raw
        for env_key, attr in _BOOL_ENV_OVERRIDES.items():
            raw = source.get(env_key)
            if raw is not None:
                values[attr] = raw.strip().lower() in _TRUE_VALUES
        for env_key, attr in _FLOAT_ENV_OVERRIDES.items():
            raw = source.get(env_key)
            if raw:
                try:
                    values[attr] = float(raw)
                except ValueError:
                    LOGGER.warning("Ignoring invalid float for %s: %s", env_key, raw)
        for env_key, attr in _INT_ENV_OVERRIDES.items():
            raw = source.get(env_key)
            if raw:
                try:
                    values[attr] = int(raw)
                except ValueError:
                    LOGGER.warning("Ignoring invalid integer for %s: %s", env_key, raw)
        values.update(overrides)
        return cls(**values)

    def update(self, **changes: Any) -> "AgentConfig":
        """Validate and apply ``changes`` in place; re-detects the provider on URL change."""

        unknown = [key for key in changes if key not in self._field_names()]
        if unknown:
            raise AgentifySystemError(
                f"Unknown configuration key: {unknown[0]}",
                SystemCodes.INVALID_PARAMETER,
                {"key": unknown[0], "available_keys": sorted(self._field_names())},
            )
        validate_config(changes)
        for key, value in changes.items():
            setattr(self, key, value)
        if "provider" in changes:
            self.provider = ProviderKind.coerce(changes["provider"])
        elif changes.get("api_url"):
            self.provider = detect_provider(changes["api_url"])
        return self

    def copy(self, **changes: Any) -> "AgentConfig":
        return replace(self, **changes)

    def validate_required(self) -> bool:
        missing: list[str] = []
        if not self.api_url:
            missing.append("API URL is required")
        if not self.api_key:
            missing.append("API key is required")
        if not self.model:
            missing.append("Model is required")
        if missing:
            raise AgentifySystemError(
                "Required configuration is missing",
                SystemCodes.CONFIG_MISSING,
                {"missing_fields": missing},
            )
        return True

    def to_dict(self, *, redact: bool = True) -> dict[str, Any]:
        payload = asdict(self)
        payload["provider"] = self.provider_kind.value
        if redact and payload.get("api_key"):
            payload["api_key"] = "***"
        return payload

    def _public_fields(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def _field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}


def detect_provider(url: str) -> ProviderKind:
    """Guess the provider family from an endpoint URL."""

    lowered = url.lower()
    for hints, kind in _PROVIDER_URL_HINTS:
        if any(hint in lowered for hint in hints):
            return kind
    return ProviderKind.CUSTOM


def validate_config(config: Mapping[str, Any]) -> bool:
    """Type/range checks shared by construction and :meth:`AgentConfig.update`."""

    if not isinstance(config, Mapping):
        raise AgentifySystemError(
            "Configuration must be a mapping",
            SystemCodes.CONFIG_INVALID,
            {"provided_type": type(config).__name__},
        )

    for key in ("api_url", "api_key", "model"):
        value = config.get(key)
        if value is not None and not isinstance(value, str):
            raise AgentifySystemError(
                f"{key} must be a string",
                SystemCodes.INVALID_PARAMETER,
                {"parameter": key, "provided_type": type(value).__name__},
            )

    if "temperature" in config and config["temperature"] is not None:
        temperature = config["temperature"]
        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
            raise AgentifySystemError(
                "Temperature must be a number",
                SystemCodes.INVALID_PARAMETER,
                {"parameter": "temperature", "provided_type": type(temperature).__name__},
            )
        if temperature < 0 or temperature > 2:
            raise AgentifySystemError(
                "Temperature must be between 0 and 2",
                SystemCodes.VALIDATION_FAILED,
                {"parameter": "temperature", "value": temperature},
            )

    max_tokens = config.get("max_tokens")
    if max_tokens is not None:
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0:
            raise AgentifySystemError(
                "Max tokens must be a positive integer",
                SystemCodes.INVALID_PARAMETER,
                {"parameter": "max_tokens", "value": max_tokens},
            )

    max_history = config.get("max_history_messages")
    if max_history is not None and (isinstance(max_history, bool) or not isinstance(max_history, int) or max_history < 0):
        raise AgentifySystemError(
            "Max history messages must be a non-negative integer",
            SystemCodes.INVALID_PARAMETER,
            {"parameter": "max_history_messages", "value": max_history},
        )

    timeout = config.get("timeout")
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
        raise AgentifySystemError(
            "Timeout must be a positive number of seconds",
            SystemCodes.INVALID_PARAMETER,
            {"parameter": "timeout", "value": timeout},
        )

    return True
