"""OpenAI provider adapter (chat completions, streaming with tools)."""

from __future__ import annotations

import contextlib
import json
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import openai

from toolstream.core.errors import (
    ModelNotFoundError,
    ProviderAuthError,
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
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

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from toolstream.stream.events import StreamEvent

PROVIDER_ID = "openai"


def _map_error(e: openai.APIError) -> Exception:
    """Map OpenAI SDK errors to the toolstream error hierarchy."""
    if isinstance(e, openai.AuthenticationError):
        return ProviderAuthError(PROVIDER_ID, str(e))
    if isinstance(e, openai.RateLimitError):
        retry_after = None
        if hasattr(e, "response") and e.response is not None:
            raw = e.response.headers.get("retry-after")
            if raw is not None:
                with contextlib.suppress(ValueError):
                    retry_after = float(raw)
        return ProviderRateLimitError(PROVIDER_ID, retry_after=retry_after)
    if isinstance(e, openai.APITimeoutError):
        return ProviderTimeoutError(PROVIDER_ID, str(e))
    if isinstance(e, openai.InternalServerError):
        return ProviderOverloadedError(PROVIDER_ID, str(e))
    if isinstance(e, openai.NotFoundError):
        return ModelNotFoundError(PROVIDER_ID, str(e))
    # Fallback for unknown API errors
    return ProviderOverloadedError(PROVIDER_ID, str(e))


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass
class _PendingCall:
    """Tool call being assembled from streamed deltas."""

    id: str
    name: str
    arguments: list[str] = field(default_factory=list)

    def parsed_input(self) -> Any:
        raw = "".join(self.arguments).strip()
        return json.loads(raw) if raw else {}


@dataclass
class _StepState:
    """Open text/reasoning segments and tool calls within one step."""

    text_id: str | None = None
    reasoning_id: str | None = None
    calls: dict[int, _PendingCall] = field(default_factory=dict)
    source_urls: set[str] = field(default_factory=set)
    finish_reason: str = "stop"
    usage: TokenUsage = field(default_factory=TokenUsage)


class OpenAIProvider:
    """Provider adapter for OpenAI and OpenAI-compatible chat APIs."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        else:
            kwargs: dict[str, Any] = {}
            if api_key is not None:
                kwargs["api_key"] = api_key
            if base_url is not None:
                kwargs["base_url"] = base_url
                # Local OpenAI-compatible servers usually take no key.
                kwargs.setdefault("api_key", "not-needed")
            self._client = openai.AsyncOpenAI(**kwargs)

    @property
    def provider_id(self) -> str:
        return PROVIDER_ID

    async def stream_step(
        self,
        messages: list[dict[str, Any]],
        model_id: str,
        *,
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamEvent]:
        kwargs: dict[str, Any] = {
            "model": model_id,
            "max_completion_tokens": max_tokens,
            "messages": messages,
            "temperature": temperature,
            "stream_options": {"include_usage": True},
        }
        if tools:
            kwargs["tools"] = tools

        state = _StepState()
        try:
            response = await self._client.chat.completions.create(
                stream=True,
                **kwargs,
            )
            async for chunk in response:
                # Usage arrives in the final chunk (choices empty)
                if chunk.usage is not None:
                    state.usage = TokenUsage(
                        input_tokens=chunk.usage.prompt_tokens,
                        output_tokens=chunk.usage.completion_tokens,
                    )
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                for event in self._handle_delta(choice.delta, state):
                    yield event
                if choice.finish_reason:
                    state.finish_reason = choice.finish_reason
        except openai.APIError as e:
            raise _map_error(e) from e

        for event in self._close_step(state):
            yield event

    def _handle_delta(self, delta: Any, state: _StepState) -> list[StreamEvent]:
        events: list[StreamEvent] = []

        # OpenAI-compatible servers stream reasoning in a side field.
        reasoning = getattr(delta, "reasoning_content", None)
        if isinstance(reasoning, str) and reasoning:
            if state.reasoning_id is None:
                state.reasoning_id = _new_id("rsn")
                events.append(ReasoningStart(id=state.reasoning_id))
            events.append(ReasoningDelta(id=state.reasoning_id, delta=reasoning))

        content = getattr(delta, "content", None)
        if isinstance(content, str) and content:
            if state.reasoning_id is not None:
                events.append(ReasoningEnd(id=state.reasoning_id))
                state.reasoning_id = None
            if state.text_id is None:
                state.text_id = _new_id("txt")
                events.append(TextStart(id=state.text_id))
            events.append(TextDelta(id=state.text_id, delta=content))

        annotations = getattr(delta, "annotations", None)
        if isinstance(annotations, list):
            events.extend(self._handle_annotations(annotations, state))

        tool_calls = getattr(delta, "tool_calls", None)
        if isinstance(tool_calls, list):
            for tc in tool_calls:
                events.extend(self._handle_tool_delta(tc, state))

        return events

    def _handle_annotations(
        self, annotations: list[Any], state: _StepState
    ) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for annotation in annotations:
            if getattr(annotation, "type", None) != "url_citation":
                continue
            citation = annotation.url_citation
            url = getattr(citation, "url", None)
            if not isinstance(url, str) or url in state.source_urls:
                continue
            state.source_urls.add(url)
            title = getattr(citation, "title", None)
            events.append(
                SourceUrl(
                    source_id=_new_id("src"),
                    url=url,
                    title=title if isinstance(title, str) else None,
                )
            )
        return events

    def _handle_tool_delta(self, tc: Any, state: _StepState) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        fn = tc.function
        pending = state.calls.get(tc.index)
        if pending is None:
            pending = _PendingCall(
                id=tc.id or _new_id("call"),
                name=(fn.name if fn is not None else None) or "",
            )
            state.calls[tc.index] = pending
            events.append(
                ToolInputStart(tool_call_id=pending.id, tool_name=pending.name)
            )
        arguments = fn.arguments if fn is not None else None
        if isinstance(arguments, str) and arguments:
            pending.arguments.append(arguments)
            events.append(
                ToolInputDelta(tool_call_id=pending.id, input_text_delta=arguments)
            )
        return events

    def _close_step(self, state: _StepState) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        if state.reasoning_id is not None:
            events.append(ReasoningEnd(id=state.reasoning_id))
        if state.text_id is not None:
            events.append(TextEnd(id=state.text_id))

        for index in sorted(state.calls):
            call = state.calls[index]
            try:
                parsed = call.parsed_input()
            except json.JSONDecodeError as e:
                events.append(
                    ToolError(
                        tool_call_id=call.id,
                        tool_name=call.name,
                        error_text=f"Invalid tool input: {e}",
                    )
                )
                continue
            events.append(
                ToolInputAvailable(
                    tool_call_id=call.id, tool_name=call.name, input=parsed
                )
            )

        events.append(FinishStep(finish_reason=state.finish_reason, usage=state.usage))
        return events

    async def health_check(self) -> bool:
        try:
            await self._client.models.list()
        except Exception:
            return False
        return True
