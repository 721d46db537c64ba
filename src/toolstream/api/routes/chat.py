"""POST /api/chat -- stream a tool-augmented answer for a conversation."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from toolstream.chat.messages import ChatRequest
from toolstream.core.errors import ConfigError, RegistryError
from toolstream.stream.encoder import UI_MESSAGE_STREAM_HEADERS

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from toolstream.chat.pipeline import ChatPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


@router.post("/chat", response_model=None)
async def chat(body: ChatRequest, request: Request) -> StreamingResponse | JSONResponse:
    """Stream the response for ``body`` as a UI message stream.

    Registry failures are reported as JSON errors before any frame is
    sent. Once streaming, failures arrive as an ``error`` frame.
    """
    pipeline: ChatPipeline | None = request.app.state.pipeline
    if pipeline is None:
        return JSONResponse(
            status_code=503, content={"detail": "Chat pipeline not configured"}
        )

    stack = AsyncExitStack()
    try:
        tools = await stack.enter_async_context(pipeline.open_tools(body))
    except RegistryError as exc:
        logger.error("Registry unavailable for stage %s: %s", body.stage.value, exc)
        await stack.aclose()
        return JSONResponse(status_code=502, content={"detail": str(exc)})
    except ConfigError as exc:
        await stack.aclose()
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    async def body_iterator() -> AsyncIterator[str]:
        # Closing the stack releases the registry sessions, including
        # when the client disconnects mid-stream.
        try:
            async for frame in pipeline.frames(body, tools):
                yield frame
        finally:
            await stack.aclose()

    return StreamingResponse(body_iterator(), headers=UI_MESSAGE_STREAM_HEADERS)
