"""Connection to a single external tool server over MCP stdio."""

import asyncio
import os
from collections.abc import Mapping, Sequence
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any

import mcp
from fastmcp import Client
from fastmcp.client.transports import StdioTransport

from kubectl_agent.errors import McpConnectionError, NotConnectedError, ToolExecutionError
from kubectl_agent.logging import get_logger
from kubectl_agent.mcp_utils import env_from_list, env_to_list, expand_path, merge_environment

logger = get_logger("mcp_client")

CLIENT_NAME = "kubectl-agent"
CLIENT_VERSION = "0.1.0"

HANDSHAKE_TIMEOUT = 30.0
VERIFY_TIMEOUT = 10.0
PING_TIMEOUT = 5.0

NO_TEXT_RESULT = "Tool executed successfully, but no text content was returned"


@dataclass(frozen=True)
class RemoteTool:
    """A tool advertised by a connected server.

    Names are only unique within their owning server.
    """

    server: str
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)


def _first_text(content: Sequence[Any] | None) -> str | None:
    for item in content or []:
        if getattr(item, "type", None) == "text":
            return item.text
    return None


class McpClient:
    """One connection to one tool server process.

    The client starts unconnected. ``connect`` spawns the server, performs the
    ``initialize`` handshake and checks the server can list its tools; it is a
    no-op once connected. ``close`` releases the transport and the process and
    may be called any number of times.
    """

    def __init__(
        self,
        name: str,
        command: str,
        args: Sequence[str] | None = None,
        env: Mapping[str, str] | None = None,
    ):
        self.name = name
        self.command = command
        self.args = list(args or [])
        self.env = env_to_list(env or {})
        self._client: Client[Any] | None = None
        self._exit_stack: AsyncExitStack | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        if self._client is not None:
            return

        logger.debug(f"Connecting to MCP server {self.name}: {self.command} {self.args}")

        try:
            command = expand_path(self.command)
        except (ValueError, OSError) as e:
            raise McpConnectionError(self.name, f"resolving command '{self.command}': {e}") from e

        stack = AsyncExitStack()
        client: Client[Any] | None = None
        try:
            env = env_from_list(merge_environment(env_to_list(os.environ), self.env))
            # The server process ends with the session
            transport = StdioTransport(command=command, args=self.args, env=env, keep_alive=False)
            client = Client(
                transport,
                client_info=mcp.types.Implementation(name=CLIENT_NAME, version=CLIENT_VERSION),
            )

            try:
                await asyncio.wait_for(stack.enter_async_context(client), HANDSHAKE_TIMEOUT)
            except asyncio.TimeoutError as e:
                raise McpConnectionError(
                    self.name, f"handshake timed out after {HANDSHAKE_TIMEOUT:.0f}s"
                ) from e

            self._client = client
            self._exit_stack = stack
            await self._verify()
        except asyncio.CancelledError:
            await self._cleanup(stack, client)
            raise
        except McpConnectionError:
            await self._cleanup(stack, client)
            raise
        except Exception as e:
            await self._cleanup(stack, client)
            raise McpConnectionError(self.name, f"connecting: {e}") from e

        logger.info(f"Connected to MCP server {self.name}")

    async def _verify(self) -> None:
        """Check the connection answers requests, probing with ping once on failure."""
        assert self._client is not None
        try:
            await asyncio.wait_for(self._client.list_tools(), VERIFY_TIMEOUT)
            return
        except Exception as e:
            logger.debug(f"Verifying MCP server {self.name} failed: {e}; sending ping")
            first_error = e

        try:
            alive = await asyncio.wait_for(self._client.ping(), PING_TIMEOUT)
        except Exception as e:
            raise McpConnectionError(
                self.name, f"verifying connection: {first_error}; ping failed: {e}"
            ) from first_error
        if alive is False:
            raise McpConnectionError(
                self.name, f"verifying connection: {first_error}; ping was not acknowledged"
            ) from first_error

        try:
            await asyncio.wait_for(self._client.list_tools(), VERIFY_TIMEOUT)
        except Exception as e:
            raise McpConnectionError(self.name, f"verifying connection after ping: {e}") from e

    async def _cleanup(self, stack: AsyncExitStack, client: Client[Any] | None) -> None:
        self._client = None
        self._exit_stack = None
        try:
            await stack.aclose()
            if client is not None:
                await client.close()
        except Exception as e:
            logger.warning(f"Error cleaning up MCP server {self.name}: {e}")

    def _require_client(self) -> Client[Any]:
        if self._client is None:
            raise NotConnectedError(f"not connected to MCP server '{self.name}'")
        return self._client

    async def list_tools(self) -> list[RemoteTool]:
        client = self._require_client()
        tools = await client.list_tools()

        result = [
            RemoteTool(
                server=self.name,
                name=tool.name,
                description=tool.description or "",
                input_schema=dict(tool.inputSchema or {}),
            )
            for tool in tools
        ]
        logger.debug(f"Listed {len(result)} tools from MCP server {self.name}")
        return result

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        """Invoke a remote tool and return its first text content item."""
        client = self._require_client()
        logger.debug(f"Calling MCP tool {name} on {self.name} with {arguments}")

        result = await client.call_tool_mcp(name, arguments)
        text = _first_text(result.content)

        if result.isError:
            if text is not None:
                raise ToolExecutionError(f"tool error: {text}")
            raise ToolExecutionError("tool returned an error")

        if text is None:
            return NO_TEXT_RESULT
        return text

    async def close(self) -> None:
        client = self._client
        stack = self._exit_stack
        self._client = None
        self._exit_stack = None
        try:
            if stack is not None:
                await stack.aclose()
        finally:
            # Ends the transport session and with it the server process
            if client is not None:
                await client.close()
                logger.debug(f"Closed MCP server {self.name}")
