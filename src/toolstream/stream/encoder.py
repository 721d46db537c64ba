"""UI message stream encoder -- StreamEvents to Server-Sent Events.

Each event becomes one ``data: <json>`` frame; the stream ends with
``data: [DONE]``. Sources and reasoning are only forwarded when the
caller asked for them. Nothing else is dropped or reordered.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, assert_never

from toolstream.stream.events import (
    ErrorEvent,
    Finish,
    FinishStep,
    Passthrough,
    ReasoningDelta,
    ReasoningEnd,
    ReasoningStart,
    SourceUrl,
    Start,
    StartStep,
    TextDelta,
    TextEnd,
    TextStart,
    ToolError,
    ToolInputAvailable,
    ToolInputDelta,
    ToolInputStart,
    ToolResult,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from toolstream.stream.events import StreamEvent

UI_MESSAGE_STREAM_HEADERS: dict[str, str] = {
    "content-type": "text/event-stream",
    "cache-control": "no-cache",
    "connection": "keep-alive",
    "x-vercel-ai-ui-message-stream": "v1",
    "x-accel-buffering": "no",
}

DONE_FRAME = "data: [DONE]\n\n"


class UIMessageStreamEncoder:
    """Serializes events into the UI message stream protocol."""

    def __init__(self, *, send_sources: bool = True, send_reasoning: bool = True) -> None:
        self.send_sources = send_sources
        self.send_reasoning = send_reasoning

    def to_wire(self, event: StreamEvent) -> dict[str, Any] | None:
        """Return the wire object for ``event``, or None if not requested."""
        if isinstance(event, Start):
            wire: dict[str, Any] = {"type": "start"}
            if event.message_id:
                wire["messageId"] = event.message_id
            return wire
        if isinstance(event, StartStep | FinishStep | Finish):
            return {"type": event.type}
        if isinstance(event, ErrorEvent):
            return {"type": "error", "errorText": event.error_text}
        if isinstance(event, TextStart | TextEnd):
            return {"type": event.type, "id": event.id}
        if isinstance(event, TextDelta):
            return {"type": "text-delta", "id": event.id, "delta": event.delta}
        if isinstance(event, ReasoningStart | ReasoningEnd):
            if not self.send_reasoning:
                return None
            return {"type": event.type, "id": event.id}
        if isinstance(event, ReasoningDelta):
            if not self.send_reasoning:
                return None
            return {"type": "reasoning-delta", "id": event.id, "delta": event.delta}
        if isinstance(event, SourceUrl):
            if not self.send_sources:
                return None
            wire = {"type": "source-url", "sourceId": event.source_id, "url": event.url}
            if event.title is not None:
                wire["title"] = event.title
            return wire
        if isinstance(event, ToolInputStart):
            return {
                "type": "tool-input-start",
                "toolCallId": event.tool_call_id,
                "toolName": event.tool_name,
            }
        if isinstance(event, ToolInputDelta):
            return {
                "type": "tool-input-delta",
                "toolCallId": event.tool_call_id,
                "inputTextDelta": event.input_text_delta,
            }
        if isinstance(event, ToolInputAvailable):
            return {
                "type": "tool-input-available",
                "toolCallId": event.tool_call_id,
                "toolName": event.tool_name,
                "input": event.input,
            }
        if isinstance(event, ToolResult):
            return {
                "type": "tool-output-available",
                "toolCallId": event.tool_call_id,
                "output": event.output,
            }
        if isinstance(event, ToolError):
            return {
                "type": "tool-output-error",
                "toolCallId": event.tool_call_id,
                "errorText": event.error_text,
            }
        if isinstance(event, Passthrough):
            return {**event.payload, "type": event.type}
        assert_never(event)

    def frame(self, event: StreamEvent) -> str | None:
        wire = self.to_wire(event)
        if wire is None:
            return None
        return f"data: {json.dumps(wire, ensure_ascii=False, separators=(',', ':'))}\n\n"

    async def encode(self, events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
        """Yield SSE frames for ``events`` followed by the ``[DONE]`` marker.

        Closing the frame stream early closes ``events`` too.
        """
        try:
            async for event in events:
                frame = self.frame(event)
                if frame is not None:
                    yield frame
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()
        yield DONE_FRAME
