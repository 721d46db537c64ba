"""Main CLI application.

Click commands for toolstream: serve, tools.
"""

from __future__ import annotations

import asyncio
import os
import sys
from typing import TYPE_CHECKING

import click

from toolstream import __version__
from toolstream.config.loader import load_config
from toolstream.core.errors import ConfigError, ToolstreamError
from toolstream.core.log import configure_logging

if TYPE_CHECKING:
    from toolstream.config.schema import ToolstreamConfig


# ── Helpers ──────────────────────────────────────────────────────


def _error(msg: str) -> None:
    """Print an error message to stderr and exit."""
    click.echo(f"Error: {msg}", err=True)
    sys.exit(1)


def _load_config(config_path: str | None) -> ToolstreamConfig:
    """Load config with user-friendly error handling."""
    try:
        config = load_config(path=config_path)
    except ConfigError as e:
        _error(str(e))
        raise  # unreachable, keeps mypy happy
    configure_logging(config.logging)
    return config


# ── CLI group ────────────────────────────────────────────────────


@click.group()
@click.version_option(version=__version__, prog_name="toolstream")
@click.option(
    "--config",
    "config_path",
    type=click.Path(),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """toolstream: stage-routed, tool-augmented chat streaming."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ── serve ────────────────────────────────────────────────────────


@cli.command()
@click.option("--host", default=None, help="Host to bind to (overrides config).")
@click.option(
    "--port", type=int, default=None, help="Port to bind to (overrides config)."
)
@click.option(
    "--reload", is_flag=True, default=False, help="Enable auto-reload for development."
)
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the chat streaming API server."""
    import uvicorn

    from toolstream.api.app import create_app

    config_path = ctx.obj["config_path"]
    config = _load_config(config_path)
    host = host or config.api.host
    port = port or config.api.port

    if reload:
        # The reloader re-imports the app in a child process, so it needs an
        # import string and the config path via the environment.
        if config_path:
            os.environ["TOOLSTREAM_CONFIG"] = os.path.abspath(config_path)
        uvicorn.run(
            "toolstream.api.app:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
        )
        return

    uvicorn.run(create_app(config), host=host, port=port)


# ── tools ────────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--stage",
    type=click.Choice(["prod", "test"]),
    required=True,
    help="Which stage's registry to query.",
)
@click.pass_context
def tools(ctx: click.Context, stage: str) -> None:
    """List the tools advertised by a stage's registry."""
    config = _load_config(ctx.obj["config_path"])
    try:
        descriptors = asyncio.run(_fetch_tools(config, stage))
    except ToolstreamError as e:
        _error(str(e))
        return

    from toolstream.cli.display import render_tools

    render_tools(stage, descriptors)


async def _fetch_tools(config: ToolstreamConfig, stage: str) -> list[dict[str, object]]:
    from toolstream.chat.messages import Stage
    from toolstream.registry.client import RegistryClient

    reg = config.registries[stage]
    if not reg.url:
        msg = f"Registry URL for stage '{stage}' is not set"
        raise ConfigError(msg)
    client = RegistryClient(
        Stage.parse(stage),
        reg.url,
        reg.api_key,
        api_key_header=reg.api_key_header,
        timeout=reg.timeout,
    )
    return await client.fetch_tools()
