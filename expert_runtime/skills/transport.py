from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.server.fastmcp import FastMCP
from mcp.shared.memory import create_connected_server_and_client_session

logger = logging.getLogger(__name__)


@dataclass
class ConnectedSession:
    session: ClientSession
    server_info: Optional[Dict[str, Any]] = None


class MCPTransport(Protocol):
    """Protocol for opening an initialized MCP ``ClientSession``.

    ``session()`` returns an async context manager yielding a
    ``ConnectedSession``; leaving the context closes the connection.
    """

    def session(self):  # -> AsyncContextManager[ConnectedSession]
        ...


@asynccontextmanager
async def _initialized(read_stream: Any, write_stream: Any) -> AsyncIterator[ConnectedSession]:
    async with ClientSession(read_stream, write_stream) as session:
        result = await session.initialize()
        info = result.serverInfo
        yield ConnectedSession(session, {"name": info.name, "version": info.version})


class StdioMCPTransport(MCPTransport):
    """MCP transport over a spawned subprocess's stdin/stdout."""

    def __init__(self, command: str, args: List[str], env: Optional[Dict[str, str]] = None) -> None:
        self.params = StdioServerParameters(command=command, args=args, env=env)

    def session(self):
        @asynccontextmanager
        async def _cm() -> AsyncIterator[ConnectedSession]:
            async with stdio_client(self.params) as (read_stream, write_stream):
                async with _initialized(read_stream, write_stream) as connected:
                    yield connected

        return _cm()


class SseMCPTransport(MCPTransport):
    """MCP transport using the SSE client (MCP over SSE)."""

    def __init__(self, endpoint_url: str) -> None:
        self.endpoint_url = endpoint_url

    def session(self):
        @asynccontextmanager
        async def _cm() -> AsyncIterator[ConnectedSession]:
            async with sse_client(self.endpoint_url) as (read_stream, write_stream):
                async with _initialized(read_stream, write_stream) as connected:
                    yield connected

        return _cm()


class StreamableHttpMCPTransport(MCPTransport):
    """MCP transport using the streamable HTTP client."""

    def __init__(self, endpoint_url: str) -> None:
        self.endpoint_url = endpoint_url

    def session(self):
        @asynccontextmanager
        async def _cm() -> AsyncIterator[ConnectedSession]:
            async with streamablehttp_client(self.endpoint_url) as (read_stream, write_stream, _close_fn):
                async with _initialized(read_stream, write_stream) as connected:
                    yield connected

        return _cm()


class InMemoryMCPTransport(MCPTransport):
    """Connects to a ``FastMCP`` server running in this process over memory streams."""

    def __init__(self, server: FastMCP, server_info: Optional[Dict[str, Any]] = None) -> None:
        self.server = server
        self.server_info = server_info

    def session(self):
        @asynccontextmanager
        async def _cm() -> AsyncIterator[ConnectedSession]:
            async with create_connected_server_and_client_session(self.server._mcp_server) as session:
                yield ConnectedSession(session, self.server_info)

        return _cm()


class SessionHolder:
    """Keeps one MCP session open inside a dedicated task.

    The mcp client is built on anyio cancel scopes, which must be exited by the
    task that entered them. Holding the session in its own task lets ``close``
    be awaited from any task, including a different one than ``open``.
    """

    def __init__(self, transport: MCPTransport, name: str) -> None:
        self.transport = transport
        self.name = name
        self.server_info: Optional[Dict[str, Any]] = None
        self._session: Optional[ClientSession] = None
        self._error: Optional[BaseException] = None
        self._ready = asyncio.Event()
        self._shutdown = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def session(self) -> ClientSession:
        if self._session is None:
            raise RuntimeError(f"MCP session {self.name} is not open")
        return self._session

    @property
    def is_open(self) -> bool:
        return self._task is not None and self._ready.is_set() and self._error is None

    async def open(self) -> ClientSession:
        self._task = asyncio.create_task(self._hold(), name=f"mcp-session:{self.name}")
        try:
            await self._ready.wait()
        except BaseException:
            # Cancelled before the session was ready.
            self._shutdown.set()
            task, self._task = self._task, None
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            raise
        if self._error is not None:
            task, self._task = self._task, None
            await task
            raise self._error
        return self.session

    async def _hold(self) -> None:
        try:
            async with self.transport.session() as connected:
                self._session = connected.session
                self.server_info = connected.server_info
                self._ready.set()
                await self._shutdown.wait()
        except Exception as e:
            if self._ready.is_set():
                logger.warning("MCP session %s closed with error: %s", self.name, e)
            else:
                self._error = e
        finally:
            self._session = None
            self._ready.set()

    async def close(self) -> None:
        self._shutdown.set()
        if self._task is not None:
            await self._task
            self._task = None
