"""Provider adapters and the factory that selects one per configuration."""

from __future__ import annotations

import httpx

from ..config import AgentConfig
from ..errors import ErrorManager
from ..model_types import ProviderKind
from .anthropic import AnthropicAdapter
from .base import ProviderAdapter, tool_fields
from .custom import CustomAdapter
from .gemini import GeminiAdapter
from .openai_compatible import DeepSeekAdapter, OpenAIAdapter

__all__ = [
    "ProviderKind",
    "ProviderAdapter",
    "OpenAIAdapter",
    "DeepSeekAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    "CustomAdapter",
    "ADAPTERS",
    "adapter_class",
    "create_adapter",
    "tool_fields",
]

ADAPTERS: dict[ProviderKind, type[ProviderAdapter]] = {
    ProviderKind.OPENAI: OpenAIAdapter,
    ProviderKind.DEEPSEEK: DeepSeekAdapter,
    ProviderKind.ANTHROPIC: AnthropicAdapter,
    ProviderKind.GEMINI: GeminiAdapter,
    ProviderKind.CUSTOM: CustomAdapter,
}


def adapter_class(provider: ProviderKind | str | None) -> type[ProviderAdapter]:
    return ADAPTERS[ProviderKind.coerce(provider)]


def create_adapter(
    config: AgentConfig,
    error_manager: ErrorManager,
    *,
    client: httpx.AsyncClient | None = None,
) -> ProviderAdapter:
    """Instantiate the adapter matching ``config.provider``."""

    return adapter_class(config.provider)(config, error_manager, client=client)
