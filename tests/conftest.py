"""Shared pytest fixtures."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from agentify.config import AgentConfig
from agentify.errors import ErrorManager

from helpers import OPENAI_URL


@pytest.fixture
def error_manager() -> ErrorManager:
    return ErrorManager()


@pytest.fixture
def make_config() -> Callable[..., AgentConfig]:
    def factory(api_url: str = OPENAI_URL, **overrides: Any) -> AgentConfig:
        values: dict[str, Any] = {"model": "test-model", "api_url": api_url, "api_key": "sk-test"}
        values.update(overrides)
        return AgentConfig(**values)

    return factory


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory
