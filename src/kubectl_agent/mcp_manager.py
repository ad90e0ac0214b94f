"""Process-wide set of tool server connections."""

import asyncio
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from contextlib import asynccontextmanager

from kubectl_agent.errors import CloseError, ConnectAllError, ToolDiscoveryError
from kubectl_agent.logging import get_logger
from kubectl_agent.mcp_client import McpClient, RemoteTool
from kubectl_agent.models.mcp_server_config import McpConfig
from kubectl_agent.retry import RetryConfig, RetryError, retry_operation

logger = get_logger("mcp_manager")

ClientFactory = Callable[[str, str, Sequence[str], Mapping[str, str]], McpClient]

DISCOVERY_RETRY = RetryConfig(
    max_retries=3,
    base_delay=1.0,
    max_delay=10.0,
    multiplier=2.0,
    description="tool discovery",
)


class RWLock:
    """Asyncio reader/writer lock.

    Any number of readers may hold the lock together; a writer holds it
    alone. Once a writer is waiting, new readers queue behind it.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._writers_waiting == 0)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class ConnectionManager:
    """Owns one ``McpClient`` per configured server.

    The client map is only touched under ``_lock``: lookups and discovery
    take the shared side, ``connect_all`` and ``close`` the exclusive side.
    """

    def __init__(
        self,
        config: McpConfig,
        client_factory: ClientFactory | None = None,
        discovery_retry: RetryConfig = DISCOVERY_RETRY,
    ):
        self.config = config
        self._client_factory: ClientFactory = client_factory or McpClient
        self._discovery_retry = discovery_retry
        self._clients: dict[str, McpClient] = {}
        self._lock = RWLock()

    async def connect_all(self) -> None:
        """Connect every configured server that is not already live.

        Raises:
            ConnectAllError: If any server failed. Servers that did connect
                stay connected.
        """
        errors: dict[str, Exception] = {}

        async with self._lock.write():
            for server in self.config.servers:
                if server.name in self._clients:
                    logger.debug(f"MCP server {server.name} already connected")
                    continue

                client = self._client_factory(server.name, server.command, server.args, server.env)
                try:
                    await client.connect()
                except Exception as e:
                    logger.error(f"Failed to connect to MCP server {server.name}: {e}")
                    errors[server.name] = e
                    continue

                self._clients[server.name] = client
                logger.info(f"Connected to MCP server {server.name}")

        if errors:
            raise ConnectAllError(errors)

    async def get_client(self, name: str) -> McpClient | None:
        async with self._lock.read():
            return self._clients.get(name)

    async def list_clients(self) -> list[McpClient]:
        async with self._lock.read():
            return list(self._clients.values())

    async def _collect_tools(self) -> tuple[dict[str, list[RemoteTool]], list[str]]:
        tools: dict[str, list[RemoteTool]] = {}
        failed: list[str] = []

        async with self._lock.read():
            for name, client in self._clients.items():
                try:
                    tools[name] = await client.list_tools()
                except Exception as e:
                    logger.error(f"Failed to list tools from MCP server {name}: {e}")
                    failed.append(name)

        return tools, failed

    async def list_available_tools(self) -> dict[str, list[RemoteTool]]:
        """Tools of every connected server, omitting servers that fail to answer."""
        tools, _ = await self._collect_tools()
        return tools

    async def refresh_tool_discovery(self) -> dict[str, list[RemoteTool]]:
        """Discover tools, retrying while any connected server fails to list.

        Discovery races server startup, so a failing server gets further
        attempts with backoff. After the last attempt the servers that still
        fail are left out of this result only; they stay connected.
        """
        latest: dict[str, list[RemoteTool]] = {}

        async def attempt() -> None:
            nonlocal latest
            tools, failed = await self._collect_tools()
            latest = tools
            if failed:
                raise ToolDiscoveryError(failed)

        try:
            await retry_operation(
                self._discovery_retry,
                attempt,
                retry_if=lambda e: isinstance(e, ToolDiscoveryError),
            )
        except RetryError as e:
            logger.warning(f"Tool discovery incomplete after {e.attempts} attempts: {e.last_error}")

        tool_count = sum(len(t) for t in latest.values())
        for server, server_tools in latest.items():
            logger.debug(f"Discovered {len(server_tools)} tools from MCP server {server}")
        if tool_count:
            logger.info(f"Discovered {tool_count} MCP tools")
        else:
            logger.info("No MCP tools were discovered from connected servers")

        return latest

    async def close(self) -> None:
        """Close every client, even when some of them fail to close."""
        errors: dict[str, Exception] = {}

        async with self._lock.write():
            for name, client in list(self._clients.items()):
                try:
                    await client.close()
                except Exception as e:
                    logger.warning(f"Error closing MCP server {name}: {e}")
                    errors[name] = e
                del self._clients[name]

        if errors:
            raise CloseError(errors)
