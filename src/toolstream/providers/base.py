"""Model provider interface.

A provider runs one model round-trip ("step") and reports it as
:mod:`toolstream.stream.events`: text, reasoning and source events, tool
input events for every call the model makes, and a closing
:class:`~toolstream.stream.events.FinishStep`. Executing tools and
chaining steps is the orchestrator's job.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from toolstream.stream.events import StreamEvent


@runtime_checkable
class ModelProvider(Protocol):
    """Protocol that all provider adapters must satisfy.

    Implementations are stateless -- they hold connection config but no
    conversation state.
    """

    @property
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'openai')."""
        ...

    def stream_step(
        self,
        messages: list[dict[str, Any]],
        model_id: str,
        *,
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamEvent]:
        """Run one model call and yield its events as they arrive.

        The last event is a ``FinishStep``. Each tool call the model
        makes appears as ``tool-input-start``, zero or more
        ``tool-input-delta`` and, once its arguments are complete,
        ``tool-input-available`` (or ``tool-error`` if they are not
        valid JSON).

        Raises ProviderError on failure.
        """
        ...

    async def health_check(self) -> bool:
        """Verify the provider is reachable and credentials are valid.

        Returns True if healthy, False otherwise. Must not raise.
        """
        ...
