"""Stream summarizer -- guarantees narrative text when tools were the only output.

Observes a response's event stream one event at a time. Text deltas mark
the response as narrated; tool results are captured. When ``finish``
arrives and nothing narrated the tool outputs, a synthetic
``text-start`` / ``text-delta`` / ``text-end`` triple carrying a rendered
summary is inserted immediately before ``finish``.

The summary itself comes from :func:`summarize_tool_outputs`, a pure
function with three tiers: a markdown table for arrays of records, a
bullet list for arrays of scalars, and a bullet list of raw text lines
as the last resort.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from toolstream.stream.events import (
    Finish,
    TextDelta,
    TextEnd,
    TextStart,
    ToolResult,
    part_id,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from toolstream.stream.events import StreamEvent

logger = logging.getLogger(__name__)

MAX_ROWS = 10
MAX_COLUMNS = 4
MAX_LINES = 10
EMPTY_CELL = "-"
NESTED_CELL = "…"
FALLBACK_LEAD_IN = "Here is a concise summary:"


# ── Summarization algorithm ───────────────────────────────────


def _collect_texts(outputs: list[Any]) -> list[str]:
    """Pull every ``{"type": "text", "text": str}`` entry, in order."""
    texts: list[str] = []
    for out in outputs:
        content = out.get("content") if isinstance(out, dict) else None
        if not isinstance(content, list):
            continue
        for entry in content:
            if (
                isinstance(entry, dict)
                and entry.get("type") == "text"
                and isinstance(entry.get("text"), str)
            ):
                texts.append(entry["text"])
    return texts


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON.
    msg = f"Not a JSON value: {name}"
    raise ValueError(msg)


def _first_json(texts: list[str]) -> Any:
    """Parse the first fragment that is valid JSON; None if none is."""
    for text in texts:
        try:
            return json.loads(text, parse_constant=_reject_constant)
        except ValueError:
            continue
    return None


def _format_cell(value: Any) -> str:
    if value is None:
        return EMPTY_CELL
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str | int | float):
        return str(value)
    return NESTED_CELL


def _format_item(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _more_suffix(total: int, shown: int) -> list[str]:
    if total > shown:
        return ["", f"…and {total - shown} more."]
    return []


def render_sequence(items: list[Any]) -> str:
    """Render a JSON array as a table (records) or a bullet list."""
    if not items:
        return "Found 0 items."

    shown = items[:MAX_ROWS]
    lines = [f"Found {len(items)} items.", ""]
    first = items[0]

    if isinstance(first, dict):
        columns = list(first.keys())[:MAX_COLUMNS]
        if not columns:
            lines.extend(f"- {_format_item(item)}" for item in shown)
        else:
            lines.append("| " + " | ".join(columns) + " |")
            lines.append("| " + " | ".join("---" for _ in columns) + " |")
            for item in shown:
                row = item if isinstance(item, dict) else {}
                cells = [_format_cell(row.get(col)) for col in columns]
                lines.append("| " + " | ".join(cells) + " |")
    else:
        lines.extend(f"- {_format_item(item)}" for item in shown)

    lines.extend(_more_suffix(len(items), len(shown)))
    return "\n".join(lines)


def _first_sequence_field(record: dict[str, Any]) -> list[Any] | None:
    for value in record.values():
        if isinstance(value, list):
            return value
    return None


def summarize_tool_outputs(outputs: list[Any]) -> str:
    """Render raw tool outputs as short human-readable markdown.

    Returns an empty string when there is nothing to say.
    """
    texts = _collect_texts(outputs)
    parsed = _first_json(texts)

    if isinstance(parsed, list):
        return render_sequence(parsed)
    if isinstance(parsed, dict):
        sequence = _first_sequence_field(parsed)
        if sequence is not None:
            return render_sequence(sequence)

    compact = "\n".join(texts).strip()
    if not compact:
        return ""
    lines = [line for line in compact.split("\n") if line][:MAX_LINES]
    return "\n".join([FALLBACK_LEAD_IN, "", *(f"- {line}" for line in lines)])


# ── Transform stage ───────────────────────────────────────────


@dataclass
class SummaryState:
    """Per-response accumulator. Never shared between requests."""

    emitted_text: bool = False
    outputs: list[Any] = field(default_factory=list)
    seen_ids: set[str] = field(default_factory=set)
    finished: bool = False


class StreamSummarizer:
    """Event-by-event transform that injects a summary before ``finish``."""

    def __init__(self) -> None:
        self.state = SummaryState()

    def process(self, event: StreamEvent) -> list[StreamEvent]:
        """Observe one event; return what to forward, in order."""
        state = self.state
        if state.finished:
            return []

        pid = part_id(event)
        if pid is not None:
            state.seen_ids.add(pid)

        if isinstance(event, TextDelta):
            state.emitted_text = True
        elif isinstance(event, ToolResult):
            state.outputs.append(event.output)
        elif isinstance(event, Finish):
            state.finished = True
            return [*self._finalize(), event]

        return [event]

    def _finalize(self) -> list[StreamEvent]:
        state = self.state
        if state.emitted_text or not state.outputs:
            return []

        try:
            summary = summarize_tool_outputs(state.outputs)
        except Exception:
            logger.exception("Failed to summarize %d tool outputs", len(state.outputs))
            return []
        if not summary:
            return []

        text_id = self._new_id()
        logger.info(
            "Injecting summary %s for %d tool outputs", text_id, len(state.outputs)
        )
        return [
            TextStart(id=text_id),
            TextDelta(id=text_id, delta=summary),
            TextEnd(id=text_id),
        ]

    def _new_id(self) -> str:
        while True:
            candidate = f"sum-{uuid.uuid4().hex[:8]}"
            if candidate not in self.state.seen_ids:
                self.state.seen_ids.add(candidate)
                return candidate

    async def transform(
        self, events: AsyncIterator[StreamEvent]
    ) -> AsyncIterator[StreamEvent]:
        """Apply :meth:`process` to a live stream.

        Stops pulling from ``events`` once ``finish`` has been forwarded.
        """
        try:
            async for event in events:
                for out in self.process(event):
                    yield out
                if self.state.finished:
                    break
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()
