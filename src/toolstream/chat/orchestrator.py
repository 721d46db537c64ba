"""Completion orchestrator -- model steps, tool dispatch, one event stream.

Runs the conversation against the provider with the active ToolSet and
the system policy. Each step's tool calls are dispatched concurrently as
soon as their input is complete; results are reported in completion
order. Events that break a call's tool lifecycle, such as a repeated
input, are dropped so no call is dispatched twice. When the step budget
allows, tool results are fed back and the model runs again.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import TYPE_CHECKING, Any

from toolstream.chat.messages import ToolState
from toolstream.config.schema import DEFAULT_SYSTEM_POLICY
from toolstream.stream.events import (
    ErrorEvent,
    Finish,
    FinishStep,
    Start,
    StartStep,
    TextDelta,
    TokenUsage,
    ToolError,
    ToolInputAvailable,
    ToolInputDelta,
    ToolInputStart,
    ToolResult,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from toolstream.providers.base import ModelProvider
    from toolstream.registry.client import ToolSet
    from toolstream.stream.events import StreamEvent

logger = logging.getLogger(__name__)

_EVENT_STATES: dict[type, ToolState] = {
    ToolInputStart: ToolState.INPUT_STREAMING,
    ToolInputAvailable: ToolState.INPUT_AVAILABLE,
    ToolResult: ToolState.OUTPUT_AVAILABLE,
    ToolError: ToolState.OUTPUT_ERROR,
}


def _advance(states: dict[str, ToolState], call_id: str, target: ToolState) -> bool:
    """Move a tool call to ``target``; False when its lifecycle forbids it."""
    current = states.get(call_id)
    if current is None:
        allowed = target is not ToolState.OUTPUT_AVAILABLE
    else:
        allowed = current.can_transition(target)
    if allowed:
        states[call_id] = target
    return allowed


async def _run_tool(
    tools: ToolSet, call: ToolInputAvailable
) -> ToolResult | ToolError:
    """Execute one tool call; failures become a ``tool-error`` event."""
    tool = tools.get(call.tool_name)
    if tool is None:
        return ToolError(
            tool_call_id=call.tool_call_id,
            tool_name=call.tool_name,
            error_text=f"Tool not found: {call.tool_name}",
        )
    arguments = call.input if isinstance(call.input, dict) else {}
    try:
        output = await tool.call(arguments)
    except Exception as e:
        logger.warning("Tool call %s failed: %s", call.tool_call_id, e)
        return ToolError(
            tool_call_id=call.tool_call_id,
            tool_name=call.tool_name,
            error_text=str(e),
        )
    return ToolResult(
        tool_call_id=call.tool_call_id, tool_name=call.tool_name, output=output
    )


def _result_message(event: ToolResult | ToolError) -> dict[str, Any]:
    if isinstance(event, ToolResult):
        content = json.dumps(event.output)
    else:
        content = event.error_text
    return {"role": "tool", "tool_call_id": event.tool_call_id, "content": content}


class CompletionOrchestrator:
    """Streams one response for a conversation and a ToolSet."""

    def __init__(
        self,
        provider: ModelProvider,
        *,
        model: str,
        max_steps: int = 1,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        system_policy: str | None = None,
    ) -> None:
        self._provider = provider
        self._model = model
        self._max_steps = max_steps
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._system_policy = system_policy or "\n".join(DEFAULT_SYSTEM_POLICY)

    async def stream(
        self, messages: list[dict[str, Any]], tools: ToolSet
    ) -> AsyncIterator[StreamEvent]:
        """Yield the response's events, ending in ``finish`` or ``error``.

        Provider failures end the stream with a single ``error`` event;
        they are not retried.
        """
        conversation: list[dict[str, Any]] = [
            {"role": "system", "content": self._system_policy},
            *messages,
        ]
        tool_defs = [t.to_openai() for t in tools.values()]
        usage = TokenUsage()
        finish_reason = "stop"
        states: dict[str, ToolState] = {}

        yield Start(message_id=f"msg-{uuid.uuid4().hex[:12]}")

        for step in range(self._max_steps):
            yield StartStep()
            text: list[str] = []
            calls: list[ToolInputAvailable] = []
            pending: set[asyncio.Task[ToolResult | ToolError]] = set()
            results: list[ToolResult | ToolError] = []
            step_end: FinishStep | None = None

            try:
                async for event in self._provider.stream_step(
                    conversation,
                    self._model,
                    tools=tool_defs or None,
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                ):
                    if isinstance(event, FinishStep):
                        step_end = event
                        continue
                    if not self._accepts(states, event):
                        logger.warning(
                            "Dropping %s for tool call %s (state %s)",
                            event.type,
                            event.tool_call_id,
                            states.get(event.tool_call_id),
                        )
                        continue
                    if isinstance(event, TextDelta):
                        text.append(event.delta)
                    elif isinstance(event, ToolInputAvailable):
                        calls.append(event)
                        pending.add(asyncio.create_task(_run_tool(tools, event)))
                    yield event

                for done in asyncio.as_completed(pending):
                    result = await done
                    _advance(states, result.tool_call_id, _EVENT_STATES[type(result)])
                    results.append(result)
                    yield result
            except Exception as e:
                logger.exception("Model provider failed on step %d", step + 1)
                yield ErrorEvent(error_text=str(e))
                return
            finally:
                for task in pending:
                    task.cancel()

            if step_end is not None:
                usage = usage + step_end.usage
                finish_reason = step_end.finish_reason
                yield step_end
            else:
                yield FinishStep()

            if not calls:
                break
            if step + 1 < self._max_steps:
                conversation.extend(self._step_messages(text, calls, results))

        logger.debug(
            "Response finished (%s), %d tokens", finish_reason, usage.total_tokens
        )
        yield Finish(finish_reason=finish_reason, usage=usage)

    @staticmethod
    def _accepts(states: dict[str, ToolState], event: StreamEvent) -> bool:
        """Whether a provider event is valid for its tool call's lifecycle.

        A call is dispatched at most once: a repeated ``tool-input-available``
        or any input after the call has an outcome is rejected.
        """
        if isinstance(event, ToolInputDelta):
            state = states.get(event.tool_call_id)
            return state is None or not state.is_terminal
        target = _EVENT_STATES.get(type(event))
        if target is None:
            return True
        return _advance(states, event.tool_call_id, target)

    @staticmethod
    def _step_messages(
        text: list[str],
        calls: list[ToolInputAvailable],
        results: list[ToolResult | ToolError],
    ) -> list[dict[str, Any]]:
        """Assistant tool-call message plus one tool message per result."""
        by_id = {r.tool_call_id: r for r in results}
        assistant: dict[str, Any] = {
            "role": "assistant",
            "content": "".join(text) or None,
            "tool_calls": [
                {
                    "id": c.tool_call_id,
                    "type": "function",
                    "function": {
                        "name": c.tool_name,
                        "arguments": json.dumps(c.input),
                    },
                }
                for c in calls
            ],
        }
        return [assistant, *(_result_message(by_id[c.tool_call_id]) for c in calls)]
