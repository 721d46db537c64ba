"""Conversation types: stages, messages, parts, and the inbound request.

Parts mirror the UI message format the browser sends back on every turn.
Tool parts are tagged ``tool-<name>`` (or ``dynamic-tool`` with an explicit
``toolName``); any part kind not listed here is kept as an
:class:`UnknownPart` and ignored when building model input.
"""

from __future__ import annotations

import enum
import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from toolstream.core.errors import UnknownStageError


class Stage(enum.Enum):
    """Deployment stage selecting which tool registry backs a request."""

    PROD = "prod"
    TEST = "test"

    @classmethod
    def parse(cls, value: object) -> Stage:
        """Return the matching stage. Unknown values are an error."""
        if isinstance(value, Stage):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownStageError(value) from None


class ToolState(enum.Enum):
    """Lifecycle of a tool call as rendered to the UI."""

    INPUT_STREAMING = "input-streaming"
    INPUT_AVAILABLE = "input-available"
    OUTPUT_AVAILABLE = "output-available"
    OUTPUT_ERROR = "output-error"

    @property
    def is_terminal(self) -> bool:
        return self in (ToolState.OUTPUT_AVAILABLE, ToolState.OUTPUT_ERROR)

    def can_transition(self, target: ToolState) -> bool:
        return target in _TOOL_TRANSITIONS[self]


_TOOL_TRANSITIONS: dict[ToolState, frozenset[ToolState]] = {
    ToolState.INPUT_STREAMING: frozenset(
        {ToolState.INPUT_AVAILABLE, ToolState.OUTPUT_ERROR}
    ),
    ToolState.INPUT_AVAILABLE: frozenset(
        {ToolState.OUTPUT_AVAILABLE, ToolState.OUTPUT_ERROR}
    ),
    ToolState.OUTPUT_AVAILABLE: frozenset(),
    ToolState.OUTPUT_ERROR: frozenset(),
}


# ── Parts ─────────────────────────────────────────────────────


class _PartModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class TextPart(_PartModel):
    type: Literal["text"] = "text"
    text: str


class ReasoningPart(_PartModel):
    type: Literal["reasoning"] = "reasoning"
    text: str


class SourceUrlPart(_PartModel):
    type: Literal["source-url"] = "source-url"
    source_id: str
    url: str
    title: str | None = None


class ToolPart(_PartModel):
    """A tool call and, once finished, its output or error."""

    type: str
    tool_call_id: str
    tool_name: str
    state: ToolState
    input: Any = None
    output: Any = None
    error_text: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _derive_tool_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not (
            data.get("toolName") or data.get("tool_name")
        ):
            tag = str(data.get("type", ""))
            if tag.startswith("tool-"):
                data = {**data, "toolName": tag.removeprefix("tool-")}
        return data


class UnknownPart(_PartModel):
    """Part kinds this service does not interpret (step-start, file, data-*)."""

    model_config = ConfigDict(frozen=True, extra="allow")

    type: str


Part = TextPart | ReasoningPart | SourceUrlPart | ToolPart | UnknownPart

_FIXED_PARTS: dict[str, type[_PartModel]] = {
    "text": TextPart,
    "reasoning": ReasoningPart,
    "source-url": SourceUrlPart,
}


def parse_part(data: Any) -> Part:
    """Build the Part variant matching ``data["type"]``."""
    if isinstance(data, BaseModel):
        return data  # type: ignore[return-value]
    tag = str(data.get("type", "")) if isinstance(data, dict) else ""
    if tag in _FIXED_PARTS:
        return _FIXED_PARTS[tag].model_validate(data)  # type: ignore[return-value]
    if tag.startswith("tool-") or tag == "dynamic-tool":
        return ToolPart.model_validate(data)
    return UnknownPart.model_validate(data)


# ── Messages ──────────────────────────────────────────────────


class Message(BaseModel):
    """One conversation turn. Immutable once constructed."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = ""
    role: Literal["user", "assistant", "system"]
    parts: list[Part]

    @field_validator("parts", mode="before")
    @classmethod
    def _parse_parts(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [parse_part(item) for item in value]
        return value

    @property
    def text(self) -> str:
        return "\n".join(p.text for p in self.parts if isinstance(p, TextPart))


class ChatRequest(BaseModel):
    """Inbound chat request. Fields other than these are ignored."""

    model_config = ConfigDict(extra="ignore")

    messages: list[Message]
    model: str | None = None
    stage: Stage

    @field_validator("stage", mode="before")
    @classmethod
    def _parse_stage(cls, value: Any) -> Stage:
        try:
            return Stage.parse(value)
        except UnknownStageError as e:
            raise ValueError(str(e)) from e


# ── Conversion to provider input ──────────────────────────────


def _tool_call_entry(part: ToolPart) -> dict[str, Any]:
    return {
        "id": part.tool_call_id,
        "type": "function",
        "function": {
            "name": part.tool_name,
            "arguments": json.dumps(part.input if part.input is not None else {}),
        },
    }


def _tool_result_entry(part: ToolPart) -> dict[str, Any]:
    if part.state is ToolState.OUTPUT_ERROR:
        content = part.error_text or "Tool execution failed"
    else:
        content = json.dumps(part.output)
    return {"role": "tool", "tool_call_id": part.tool_call_id, "content": content}


def _convert_assistant(message: Message) -> list[dict[str, Any]]:
    """Split an assistant message into steps of text + finished tool calls."""
    converted: list[dict[str, Any]] = []
    texts: list[str] = []
    calls: list[ToolPart] = []

    def flush() -> None:
        if not texts and not calls:
            return
        entry: dict[str, Any] = {
            "role": "assistant",
            "content": "\n".join(texts) or None,
        }
        if calls:
            entry["tool_calls"] = [_tool_call_entry(p) for p in calls]
        converted.append(entry)
        converted.extend(_tool_result_entry(p) for p in calls)
        texts.clear()
        calls.clear()

    for part in message.parts:
        if isinstance(part, TextPart):
            if calls:
                flush()
            texts.append(part.text)
        elif isinstance(part, ToolPart):
            # Unfinished calls have no result to pair with.
            if part.state.is_terminal:
                calls.append(part)
        elif isinstance(part, UnknownPart) and part.type == "step-start":
            flush()
    flush()
    return converted


def convert_to_model_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert UI messages into chat-completions messages."""
    converted: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "assistant":
            converted.extend(_convert_assistant(message))
        else:
            converted.append({"role": message.role, "content": message.text})
    return converted
