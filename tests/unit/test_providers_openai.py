"""Tests for OpenAI provider adapter (mocked SDK)."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from toolstream.core.errors import (
    ModelNotFoundError,
    ProviderAuthError,
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from toolstream.providers.base import ModelProvider
from toolstream.providers.openai import PROVIDER_ID, OpenAIProvider, _map_error
from toolstream.stream.events import (
    FinishStep,
    ReasoningDelta,
    ReasoningEnd,
    ReasoningStart,
    SourceUrl,
    TextDelta,
    TextEnd,
    TextStart,
    TokenUsage,
    ToolError,
    ToolInputAvailable,
    ToolInputDelta,
    ToolInputStart,
)

# ─── Helpers ──────────────────────────────────────────────────


class _AsyncChunkIter:
    """Async iterator over mock stream chunks."""

    def __init__(self, chunks: list[Any]) -> None:
        self._chunks = chunks
        self._idx = 0

    def __aiter__(self) -> _AsyncChunkIter:
        return self

    async def __anext__(self) -> Any:
        if self._idx >= len(self._chunks):
            raise StopAsyncIteration
        chunk = self._chunks[self._idx]
        self._idx += 1
        return chunk


def _make_usage(prompt_tokens: int = 100, completion_tokens: int = 50) -> MagicMock:
    usage = MagicMock()
    usage.prompt_tokens = prompt_tokens
    usage.completion_tokens = completion_tokens
    return usage


def _make_delta(
    content: str | None = None,
    *,
    reasoning: str | None = None,
    tool_calls: list[Any] | None = None,
    annotations: list[Any] | None = None,
) -> MagicMock:
    delta = MagicMock()
    delta.content = content
    delta.reasoning_content = reasoning
    delta.tool_calls = tool_calls
    delta.annotations = annotations
    return delta


def _make_chunk(
    delta: MagicMock | None = None,
    finish_reason: str | None = None,
    usage: MagicMock | None = None,
) -> MagicMock:
    chunk = MagicMock()
    if delta is not None:
        choice = MagicMock()
        choice.delta = delta
        choice.finish_reason = finish_reason
        chunk.choices = [choice]
    else:
        chunk.choices = []
    chunk.usage = usage
    return chunk


def _tool_delta(
    index: int, call_id: str | None = None, name: str | None = None, arguments: str | None = None
) -> MagicMock:
    tc = MagicMock()
    tc.index = index
    tc.id = call_id
    tc.function.name = name
    tc.function.arguments = arguments
    return tc


def _make_client(chunks: list[Any] | None = None) -> MagicMock:
    """Create a mocked AsyncOpenAI client."""
    client = MagicMock(spec=openai.AsyncOpenAI)
    client.chat = MagicMock()
    client.chat.completions = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=_AsyncChunkIter(chunks or []),
    )
    client.models = MagicMock()
    client.models.list = AsyncMock(return_value=[])
    return client


async def _run(provider: OpenAIProvider, **kwargs: Any) -> list[Any]:
    messages = [{"role": "user", "content": "hi"}]
    return [e async for e in provider.stream_step(messages, "gpt-test", **kwargs)]


# ─── Protocol ─────────────────────────────────────────────────


class TestProtocol:
    def test_provider_id(self):
        provider = OpenAIProvider(client=_make_client())
        assert provider.provider_id == PROVIDER_ID

    def test_satisfies_protocol(self):
        provider = OpenAIProvider(client=_make_client())
        assert isinstance(provider, ModelProvider)


# ─── Text streaming ───────────────────────────────────────────


class TestTextStream:
    async def test_text_segment(self):
        chunks = [
            _make_chunk(_make_delta("Hel")),
            _make_chunk(_make_delta("lo"), finish_reason="stop"),
            _make_chunk(usage=_make_usage(150, 75)),
        ]
        events = await _run(OpenAIProvider(client=_make_client(chunks)))

        assert [type(e) for e in events] == [
            TextStart,
            TextDelta,
            TextDelta,
            TextEnd,
            FinishStep,
        ]
        assert "".join(e.delta for e in events if isinstance(e, TextDelta)) == "Hello"
        assert len({e.id for e in events[:4]}) == 1
        assert events[-1].usage == TokenUsage(input_tokens=150, output_tokens=75)
        assert events[-1].finish_reason == "stop"

    async def test_reasoning_closed_before_text(self):
        chunks = [
            _make_chunk(_make_delta(reasoning="thinking")),
            _make_chunk(_make_delta("answer")),
        ]
        events = await _run(OpenAIProvider(client=_make_client(chunks)))
        assert [type(e) for e in events] == [
            ReasoningStart,
            ReasoningDelta,
            ReasoningEnd,
            TextStart,
            TextDelta,
            TextEnd,
            FinishStep,
        ]

    async def test_url_citations_become_sources(self):
        annotation = MagicMock()
        annotation.type = "url_citation"
        annotation.url_citation.url = "https://docs.example.test"
        annotation.url_citation.title = "Docs"
        chunks = [
            _make_chunk(_make_delta("see", annotations=[annotation])),
            _make_chunk(_make_delta(" docs", annotations=[annotation])),
        ]
        events = await _run(OpenAIProvider(client=_make_client(chunks)))
        sources = [e for e in events if isinstance(e, SourceUrl)]
        assert len(sources) == 1
        assert sources[0].url == "https://docs.example.test"
        assert sources[0].title == "Docs"

    async def test_passes_params_to_sdk(self):
        client = _make_client([])
        tools = [{"type": "function", "function": {"name": "t", "parameters": {}}}]
        await _run(OpenAIProvider(client=client), tools=tools, max_tokens=77, temperature=0.2)

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["stream_options"] == {"include_usage": True}
        assert kwargs["model"] == "gpt-test"
        assert kwargs["max_completion_tokens"] == 77
        assert kwargs["temperature"] == 0.2
        assert kwargs["tools"] == tools

    async def test_no_tools_key_when_empty(self):
        client = _make_client([])
        events = await _run(OpenAIProvider(client=client))
        assert "tools" not in client.chat.completions.create.call_args.kwargs
        assert [type(e) for e in events] == [FinishStep]


# ─── Tool calls ───────────────────────────────────────────────


class TestToolCalls:
    async def test_tool_call_assembled_from_deltas(self):
        chunks = [
            _make_chunk(_make_delta(tool_calls=[_tool_delta(0, "call_1", "search", "")])),
            _make_chunk(_make_delta(tool_calls=[_tool_delta(0, arguments='{"q": ')])),
            _make_chunk(
                _make_delta(tool_calls=[_tool_delta(0, arguments='"x"}')]),
                finish_reason="tool_calls",
            ),
        ]
        events = await _run(OpenAIProvider(client=_make_client(chunks)))

        assert isinstance(events[0], ToolInputStart)
        assert events[0].tool_call_id == "call_1"
        assert events[0].tool_name == "search"
        deltas = [e for e in events if isinstance(e, ToolInputDelta)]
        assert "".join(d.input_text_delta for d in deltas) == '{"q": "x"}'
        available = [e for e in events if isinstance(e, ToolInputAvailable)]
        assert available[0].input == {"q": "x"}
        assert events[-1].finish_reason == "tool_calls"

    async def test_parallel_calls_in_index_order(self):
        chunks = [
            _make_chunk(
                _make_delta(
                    tool_calls=[
                        _tool_delta(1, "call_b", "b", "{}"),
                        _tool_delta(0, "call_a", "a", "{}"),
                    ]
                )
            ),
        ]
        events = await _run(OpenAIProvider(client=_make_client(chunks)))
        available = [e.tool_call_id for e in events if isinstance(e, ToolInputAvailable)]
        assert available == ["call_a", "call_b"]

    async def test_empty_arguments_mean_empty_input(self):
        chunks = [_make_chunk(_make_delta(tool_calls=[_tool_delta(0, "c", "t", None)]))]
        events = await _run(OpenAIProvider(client=_make_client(chunks)))
        available = [e for e in events if isinstance(e, ToolInputAvailable)]
        assert available[0].input == {}

    async def test_invalid_arguments_become_tool_error(self):
        chunks = [_make_chunk(_make_delta(tool_calls=[_tool_delta(0, "c", "t", "{oops")]))]
        events = await _run(OpenAIProvider(client=_make_client(chunks)))

        errors = [e for e in events if isinstance(e, ToolError)]
        assert len(errors) == 1
        assert errors[0].error_text.startswith("Invalid tool input")
        assert not any(isinstance(e, ToolInputAvailable) for e in events)
        assert isinstance(events[-1], FinishStep)


# ─── Error Mapping ────────────────────────────────────────────


class TestErrorMapping:
    def _make_api_error(self, cls: type, status_code: int = 400) -> openai.APIError:
        response = MagicMock()
        response.status_code = status_code
        response.headers = {}
        return cls(
            message="test error",
            response=response,
            body=None,
        )

    def test_auth_error(self):
        err = self._make_api_error(openai.AuthenticationError, 401)
        assert isinstance(_map_error(err), ProviderAuthError)

    def test_rate_limit_with_retry_after(self):
        err = self._make_api_error(openai.RateLimitError, 429)
        err.response.headers = {"retry-after": "30"}
        mapped = _map_error(err)
        assert isinstance(mapped, ProviderRateLimitError)
        assert mapped.retry_after == 30.0

    def test_timeout_error(self):
        err = openai.APITimeoutError(request=MagicMock())
        assert isinstance(_map_error(err), ProviderTimeoutError)

    def test_internal_server_error(self):
        err = self._make_api_error(openai.InternalServerError, 500)
        assert isinstance(_map_error(err), ProviderOverloadedError)

    def test_not_found_error(self):
        err = self._make_api_error(openai.NotFoundError, 404)
        assert isinstance(_map_error(err), ModelNotFoundError)

    def test_unknown_api_error_maps_to_overloaded(self):
        err = self._make_api_error(openai.UnprocessableEntityError, 422)
        assert isinstance(_map_error(err), ProviderOverloadedError)

    async def test_stream_raises_mapped_error(self):
        client = _make_client()
        client.chat.completions.create.side_effect = openai.AuthenticationError(
            message="bad key",
            response=MagicMock(status_code=401, headers={}),
            body=None,
        )
        with pytest.raises(ProviderAuthError):
            await _run(OpenAIProvider(client=client))


# ─── health_check ─────────────────────────────────────────────


class TestHealthCheck:
    async def test_healthy_when_api_responds(self):
        provider = OpenAIProvider(client=_make_client())
        assert await provider.health_check() is True

    async def test_unhealthy_on_error(self):
        client = _make_client()
        client.models.list.side_effect = Exception("connection failed")
        provider = OpenAIProvider(client=client)
        assert await provider.health_check() is False


# ─── base_url ─────────────────────────────────────────────────


class TestBaseUrl:
    def test_base_url_without_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        provider = OpenAIProvider(base_url="http://localhost:11434/v1")
        assert provider.provider_id == PROVIDER_ID
