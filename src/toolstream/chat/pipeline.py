"""Per-request chat pipeline.

request -> stage router (ToolSet) -> orchestrator (events)
        -> summarizer (narrative guarantee) -> encoder (SSE frames)

A pipeline object is shared by the app; everything mutable it creates
(summarizer state, registry sessions) belongs to one request.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from toolstream.chat.messages import convert_to_model_messages
from toolstream.chat.orchestrator import CompletionOrchestrator
from toolstream.stream.encoder import UIMessageStreamEncoder
from toolstream.stream.summarizer import StreamSummarizer

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from contextlib import AbstractAsyncContextManager

    from toolstream.chat.messages import ChatRequest
    from toolstream.config.schema import ToolstreamConfig
    from toolstream.providers.base import ModelProvider
    from toolstream.registry.client import ToolSet
    from toolstream.registry.router import StageRouter
    from toolstream.stream.events import StreamEvent

logger = logging.getLogger(__name__)


class ChatPipeline:
    """Wires the router, provider and stream stages for chat requests."""

    def __init__(
        self,
        router: StageRouter,
        provider: ModelProvider,
        config: ToolstreamConfig,
    ) -> None:
        self.router = router
        self.provider = provider
        self.config = config

    def open_tools(self, request: ChatRequest) -> AbstractAsyncContextManager[ToolSet]:
        """Connect the registries and hold the request's ToolSet open."""
        return self.router.open(request.stage)

    def orchestrator(self, request: ChatRequest) -> CompletionOrchestrator:
        chat = self.config.chat
        provider = self.config.provider
        return CompletionOrchestrator(
            self.provider,
            model=request.model or provider.default_model,
            max_steps=chat.max_steps,
            max_tokens=provider.max_tokens,
            temperature=provider.temperature,
            system_policy=chat.system_prompt,
        )

    def events(self, request: ChatRequest, tools: ToolSet) -> AsyncIterator[StreamEvent]:
        """The orchestrator's stream with the summarizer applied."""
        messages = convert_to_model_messages(request.messages)
        logger.info(
            "Chat request: stage=%s, %d messages, %d tools",
            request.stage.value,
            len(messages),
            len(tools),
        )
        raw = self.orchestrator(request).stream(messages, tools)
        return StreamSummarizer().transform(raw)

    def frames(self, request: ChatRequest, tools: ToolSet) -> AsyncIterator[str]:
        """Encoded wire frames for the response."""
        encoder = UIMessageStreamEncoder(
            send_sources=self.config.chat.send_sources,
            send_reasoning=self.config.chat.send_reasoning,
        )
        return encoder.encode(self.events(request, tools))
