"""Shared test fixtures for toolstream."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from toolstream.chat.messages import Stage
from toolstream.config.schema import ToolstreamConfig
from toolstream.registry.router import StageRouter

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from toolstream.stream.events import StreamEvent


@pytest.fixture
def config() -> ToolstreamConfig:
    """Config with registry URLs set and no environment lookups."""
    return ToolstreamConfig.model_validate(
        {
            "registries": {
                "prod": {"url": "http://prod.invalid/mcp", "api_key": "k"},
                "test": {"url": "http://test.invalid/mcp", "api_key": "k"},
            },
            "provider": {"api_key": "sk-test"},
        }
    )


@pytest.fixture
def make_router() -> Any:
    """Factory fixture: StageRouter over fake prod/test registries."""

    def _make(prod: Any, test: Any) -> StageRouter:
        return StageRouter({Stage.PROD: prod, Stage.TEST: test})

    return _make


@pytest.fixture
def collect() -> Any:
    """Drain an async iterator of events into a list."""

    async def _collect(events: AsyncIterator[StreamEvent]) -> list[StreamEvent]:
        return [e async for e in events]

    return _collect
