"""Connecting to tool servers and registering what they offer.

Discovery runs once at startup, optionally in the background so the
interactive session is not blocked while servers spawn.
"""

from __future__ import annotations

import asyncio
import os

from kubectl_agent.convert_tools import function_definition_for
from kubectl_agent.errors import ConnectAllError
from kubectl_agent.logging import get_logger
from kubectl_agent.mcp_manager import ConnectionManager
from kubectl_agent.mcp_tool import McpTool
from kubectl_agent.tool_registry import Tools

logger = get_logger("tool_discovery")

AUTO_DISCOVER_ENV = "MCP_AUTO_DISCOVER"
CONNECT_TIMEOUT = 30.0
SETTLE_DELAY = 2.0


def auto_discover_enabled() -> bool:
    return os.environ.get(AUTO_DISCOVER_ENV, "").strip().lower() != "false"


async def discover_and_connect_servers(
    manager: ConnectionManager,
    settle_delay: float | None = None,
) -> bool:
    """Connect every configured server, tolerating partial failure.

    Args:
        manager: Connection manager holding the server registry.
        settle_delay: Seconds to wait after connecting, giving servers time
            to finish starting before their tools are listed. Defaults to
            ``SETTLE_DELAY``.

    Returns:
        False when discovery is disabled through ``MCP_AUTO_DISCOVER=false``,
        True otherwise, even if some servers failed to connect.
    """
    if not auto_discover_enabled():
        logger.info(f"MCP auto-discovery disabled via {AUTO_DISCOVER_ENV}=false")
        return False

    logger.info("Connecting to MCP servers")
    try:
        await asyncio.wait_for(manager.connect_all(), timeout=CONNECT_TIMEOUT)
    except ConnectAllError as e:
        logger.warning(f"Continuing with partial connections: {e}")
    except asyncio.TimeoutError:
        logger.warning(f"Connecting to MCP servers timed out after {CONNECT_TIMEOUT:g}s")

    if settle_delay is None:
        settle_delay = SETTLE_DELAY
    if settle_delay > 0:
        await asyncio.sleep(settle_delay)
    return True


async def register_tools_from_connected_servers(manager: ConnectionManager, tools: Tools) -> int:
    """Wrap every discovered remote tool in a proxy and register it.

    Returns:
        Number of tools registered.
    """
    server_tools = await manager.refresh_tool_discovery()

    count = 0
    for server_name in sorted(server_tools):
        for remote_tool in server_tools[server_name]:
            proxy = McpTool(
                server_name=server_name,
                tool_name=remote_tool.name,
                description=remote_tool.description,
                definition=function_definition_for(remote_tool),
                manager=manager,
            )
            tools.register_tool(proxy)
            logger.debug(f"Registered MCP tool {remote_tool.name} from {server_name}")
            count += 1

    if count:
        logger.info(f"Registered {count} MCP tools")
    return count


async def discover_and_register(
    manager: ConnectionManager,
    tools: Tools,
    settle_delay: float | None = None,
) -> int:
    if not await discover_and_connect_servers(manager, settle_delay=settle_delay):
        return 0
    return await register_tools_from_connected_servers(manager, tools)


def start_background_discovery(
    manager: ConnectionManager,
    tools: Tools,
    settle_delay: float | None = None,
) -> asyncio.Task[int]:
    """Schedule discovery on the running loop and return the task.

    Failures are logged when the task finishes; callers that need the
    result can still await the task.
    """
    task = asyncio.create_task(
        discover_and_register(manager, tools, settle_delay=settle_delay),
        name="mcp-discovery",
    )

    def _log_outcome(t: asyncio.Task[int]) -> None:
        if t.cancelled():
            logger.debug("Background MCP discovery cancelled")
        elif t.exception() is not None:
            logger.warning(f"Background MCP discovery failed: {t.exception()}")

    task.add_done_callback(_log_outcome)
    return task
