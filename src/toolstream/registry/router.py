"""Stage router -- picks the active ToolSet for a request.

Every registered stage is contacted concurrently at request start, so the
latency of the inactive registry is hidden, but any registry failure
fails the request. Only the requested stage's ToolSet is handed out; a
``test`` request never sees ``prod`` tools, whichever answers first.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Protocol

from toolstream.chat.messages import Stage
from toolstream.core.errors import ConfigError
from toolstream.registry.client import RegistryClient

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from toolstream.config.schema import ToolstreamConfig
    from toolstream.registry.client import ToolSet

logger = logging.getLogger(__name__)


class RegistryConnection(Protocol):
    """Anything that can hold a registry session open for a request."""

    async def hold(
        self, ready: asyncio.Future[ToolSet], release: asyncio.Event
    ) -> None: ...


class StageRouter:
    """Selects one stage's ToolSet per request from a fixed set of registries."""

    def __init__(self, clients: Mapping[Stage, RegistryConnection]) -> None:
        missing = [s.value for s in Stage if s not in clients]
        if missing:
            msg = f"No registry configured for stage(s): {', '.join(missing)}"
            raise ConfigError(msg)
        self._clients = dict(clients)

    @classmethod
    def from_config(cls, config: ToolstreamConfig) -> StageRouter:
        """Build one :class:`RegistryClient` per configured stage."""
        clients: dict[Stage, RegistryConnection] = {}
        for name, reg in config.registries.items():
            stage = Stage.parse(name)
            if not reg.url:
                msg = f"Registry URL for stage '{name}' is not set"
                raise ConfigError(msg)
            clients[stage] = RegistryClient(
                stage,
                reg.url,
                reg.api_key,
                api_key_header=reg.api_key_header,
                timeout=reg.timeout,
            )
        return cls(clients)

    @asynccontextmanager
    async def open(self, stage: Stage | str) -> AsyncIterator[ToolSet]:
        """Connect every registry, yield the selected stage's ToolSet.

        Raises:
            UnknownStageError: If ``stage`` is not a known stage.
            RegistryError: If any registry fails to connect or list tools.
        """
        selected = Stage.parse(stage)
        loop = asyncio.get_running_loop()

        ready: dict[Stage, asyncio.Future[ToolSet]] = {}
        release: dict[Stage, asyncio.Event] = {}
        tasks: dict[Stage, asyncio.Task[None]] = {}
        for s, client in self._clients.items():
            ready[s] = loop.create_future()
            release[s] = asyncio.Event()
            tasks[s] = asyncio.create_task(
                client.hold(ready[s], release[s]), name=f"registry-{s.value}"
            )

        try:
            # Fan-in: fail fast on the first registry error.
            await asyncio.gather(*ready.values())
            toolsets = {s: f.result() for s, f in ready.items()}

            for s in toolsets:
                if s is not selected:
                    release[s].set()

            logger.info(
                "Stage %s selected with %d tools", selected.value, len(toolsets[selected])
            )
            yield toolsets[selected]
        finally:
            await self._shutdown(ready, release, tasks)

    async def _shutdown(
        self,
        ready: dict[Stage, asyncio.Future[ToolSet]],
        release: dict[Stage, asyncio.Event],
        tasks: dict[Stage, asyncio.Task[None]],
    ) -> None:
        for s, task in tasks.items():
            if ready[s].done() and not ready[s].cancelled():
                release[s].set()
            else:
                task.cancel()
        results = await asyncio.gather(*tasks.values(), return_exceptions=True)
        for s, result in zip(tasks, results, strict=True):
            if isinstance(result, Exception):
                logger.warning("Registry %s teardown failed: %s", s.value, result)
        # Consume unretrieved failures so asyncio does not warn about them.
        for f in ready.values():
            if f.done() and not f.cancelled():
                f.exception()

