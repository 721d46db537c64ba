"""Stream events emitted while a response is generated.

``StreamEvent`` is a closed union of frozen dataclasses. Every variant
carries a fixed ``type`` tag matching its wire name (except the tool
result/error pair, which the encoder renames). Unrecognized kinds from
upstream travel as :class:`Passthrough`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token counts from one or more model calls."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


# ── Lifecycle ─────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Start:
    type: ClassVar[str] = "start"
    message_id: str | None = None


@dataclass(frozen=True, slots=True)
class StartStep:
    type: ClassVar[str] = "start-step"


@dataclass(frozen=True, slots=True)
class FinishStep:
    type: ClassVar[str] = "finish-step"
    finish_reason: str = "stop"
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True, slots=True)
class Finish:
    type: ClassVar[str] = "finish"
    finish_reason: str = "stop"
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    type: ClassVar[str] = "error"
    error_text: str


# ── Text / reasoning ──────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class TextStart:
    type: ClassVar[str] = "text-start"
    id: str


@dataclass(frozen=True, slots=True)
class TextDelta:
    type: ClassVar[str] = "text-delta"
    id: str
    delta: str


@dataclass(frozen=True, slots=True)
class TextEnd:
    type: ClassVar[str] = "text-end"
    id: str


@dataclass(frozen=True, slots=True)
class ReasoningStart:
    type: ClassVar[str] = "reasoning-start"
    id: str


@dataclass(frozen=True, slots=True)
class ReasoningDelta:
    type: ClassVar[str] = "reasoning-delta"
    id: str
    delta: str


@dataclass(frozen=True, slots=True)
class ReasoningEnd:
    type: ClassVar[str] = "reasoning-end"
    id: str


@dataclass(frozen=True, slots=True)
class SourceUrl:
    type: ClassVar[str] = "source-url"
    source_id: str
    url: str
    title: str | None = None


# ── Tool lifecycle ────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ToolInputStart:
    type: ClassVar[str] = "tool-input-start"
    tool_call_id: str
    tool_name: str


@dataclass(frozen=True, slots=True)
class ToolInputDelta:
    type: ClassVar[str] = "tool-input-delta"
    tool_call_id: str
    input_text_delta: str


@dataclass(frozen=True, slots=True)
class ToolInputAvailable:
    type: ClassVar[str] = "tool-input-available"
    tool_call_id: str
    tool_name: str
    input: Any = None


@dataclass(frozen=True, slots=True)
class ToolResult:
    type: ClassVar[str] = "tool-result"
    tool_call_id: str
    tool_name: str
    output: Any = None


@dataclass(frozen=True, slots=True)
class ToolError:
    type: ClassVar[str] = "tool-error"
    tool_call_id: str
    tool_name: str
    error_text: str


@dataclass(frozen=True, slots=True)
class Passthrough:
    """An event kind this pipeline does not interpret."""

    type: str
    payload: dict[str, Any] = field(default_factory=dict)


StreamEvent = (
    Start
    | StartStep
    | FinishStep
    | Finish
    | ErrorEvent
    | TextStart
    | TextDelta
    | TextEnd
    | ReasoningStart
    | ReasoningDelta
    | ReasoningEnd
    | SourceUrl
    | ToolInputStart
    | ToolInputDelta
    | ToolInputAvailable
    | ToolResult
    | ToolError
    | Passthrough
)


def part_id(event: StreamEvent) -> str | None:
    """Return the Part identifier an event refers to, if any."""
    if isinstance(
        event,
        TextStart | TextDelta | TextEnd | ReasoningStart | ReasoningDelta | ReasoningEnd,
    ):
        return event.id
    if isinstance(
        event,
        ToolInputStart | ToolInputDelta | ToolInputAvailable | ToolResult | ToolError,
    ):
        return event.tool_call_id
    if isinstance(event, SourceUrl):
        return event.source_id
    return None
