"""FastAPI application factory for the toolstream HTTP API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from toolstream.chat.pipeline import ChatPipeline
    from toolstream.config.schema import ToolstreamConfig


def build_pipeline(config: ToolstreamConfig) -> ChatPipeline:
    """Instantiate the stage router, provider and chat pipeline from config."""
    from toolstream.chat.pipeline import ChatPipeline
    from toolstream.providers.openai import OpenAIProvider
    from toolstream.registry.router import StageRouter

    router = StageRouter.from_config(config)
    provider = OpenAIProvider(
        api_key=config.provider.api_key,
        base_url=config.provider.base_url,
    )
    return ChatPipeline(router, provider, config)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan handler: build the pipeline once unless one was injected."""
    if getattr(app.state, "pipeline", None) is None:
        app.state.pipeline = build_pipeline(app.state.config)
    yield


def create_app(config: ToolstreamConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    from toolstream import __version__
    from toolstream.config.loader import load_config

    if config is None:
        config = load_config()

    app = FastAPI(
        title="toolstream",
        description="Stage-routed, tool-augmented chat streaming API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.pipeline = None

    from fastapi.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from toolstream.api.health import router as health_router
    from toolstream.api.routes.chat import router as chat_router

    app.include_router(chat_router)
    app.include_router(health_router)

    return app
