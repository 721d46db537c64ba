"""Tool registry client -- one remote MCP tool endpoint per stage.

Connects over streamable HTTP with an API-key header and exposes a single
operation, "list callable tools", returning a :data:`ToolSet`. The
session stays open for the request so the model's tool calls can be
dispatched against it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client

from toolstream.core.errors import RegistryError, ToolExecutionError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from toolstream.chat.messages import Stage

logger = logging.getLogger(__name__)


def _root_cause(exc: BaseException) -> BaseException:
    """First leaf of a (possibly nested) exception group.

    The streamable HTTP transport runs inside a task group, so a rejected
    connection surfaces as an ExceptionGroup wrapping the real error.
    """
    while isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        exc = exc.exceptions[0]
    return exc


@dataclass(frozen=True, slots=True)
class RegistryTool:
    """A callable tool advertised by a registry."""

    name: str
    description: str
    input_schema: dict[str, Any]
    session: ClientSession = field(repr=False, compare=False)

    def to_openai(self) -> dict[str, Any]:
        """Render as a chat-completions function tool."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }

    async def call(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Invoke the tool and return its raw output payload.

        Raises:
            ToolExecutionError: If the call fails at the transport or
                protocol level. Tool-reported errors (``isError``) are
                returned as output.
        """
        try:
            result = await self.session.call_tool(self.name, arguments)
        except Exception as e:
            raise ToolExecutionError(self.name, str(e)) from e
        return result.model_dump(mode="json", by_alias=True, exclude_none=True)


ToolSet = dict[str, RegistryTool]


class RegistryClient:
    """MCP client for one stage's tool registry."""

    def __init__(
        self,
        stage: Stage,
        url: str,
        api_key: str | None = None,
        *,
        api_key_header: str = "x-api-key",
        timeout: float = 30.0,
    ) -> None:
        self.stage = stage
        self.url = url
        self._headers = {api_key_header: api_key} if api_key else {}
        self._timeout = timeout

    @asynccontextmanager
    async def session(self) -> AsyncIterator[ClientSession]:
        """Open the transport and an initialized MCP session."""
        async with AsyncExitStack() as stack:
            read, write, _ = await stack.enter_async_context(
                streamablehttp_client(
                    self.url, headers=self._headers, timeout=self._timeout
                )
            )
            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
            yield session

    async def list_tools(self, session: ClientSession) -> ToolSet:
        """List the tools this registry advertises."""
        response = await session.list_tools()
        return {
            tool.name: RegistryTool(
                name=tool.name,
                description=tool.description or "",
                input_schema=dict(tool.inputSchema),
                session=session,
            )
            for tool in response.tools
        }

    async def hold(
        self, ready: asyncio.Future[ToolSet], release: asyncio.Event
    ) -> None:
        """Connect, publish the ToolSet on ``ready``, stay open until ``release``.

        The session is entered and exited inside this coroutine, so the
        caller runs it as a task for the lifetime of the request.
        Connection failures are delivered through ``ready``.
        """
        stage = self.stage.value
        try:
            async with self.session() as session:
                tools = await self.list_tools(session)
                logger.debug("Registry %s advertises %d tools", stage, len(tools))
                if ready.cancelled():
                    return
                ready.set_result(tools)
                await release.wait()
        except asyncio.CancelledError:
            if not ready.done():
                ready.cancel()
            raise
        except Exception as e:
            if ready.done():
                logger.warning(
                    "Registry %s closed with error: %s", stage, _root_cause(e)
                )
            else:
                ready.set_exception(RegistryError(stage, str(_root_cause(e))))

    async def fetch_tools(self) -> list[dict[str, Any]]:
        """One-shot listing of tool descriptors, for diagnostics."""
        try:
            async with self.session() as session:
                tools = await self.list_tools(session)
        except Exception as e:
            raise RegistryError(self.stage.value, str(_root_cause(e))) from e
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": t.input_schema,
            }
            for t in tools.values()
        ]
