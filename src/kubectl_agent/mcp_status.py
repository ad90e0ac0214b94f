from dataclasses import dataclass, field

from kubectl_agent.logging import get_logger
from kubectl_agent.mcp_client import RemoteTool
from kubectl_agent.mcp_manager import ConnectionManager
from kubectl_agent.models.mcp_server_config import McpConfig

logger = get_logger("mcp_status")


@dataclass
class ServerConnectionInfo:
    name: str
    command: str
    is_connected: bool = False
    available_tools: list[RemoteTool] = field(default_factory=list)


def format_server_status(info: ServerConnectionInfo, client_enabled: bool) -> str:
    text = f"  • {info.name} ({info.command})"
    if not client_enabled:
        return text + " - Not connected (MCP client disabled)"
    if not info.is_connected:
        return text + " - Connection failed"
    if info.available_tools:
        names = ", ".join(tool.name for tool in info.available_tools)
        return text + f" - Connected, Tools: {names}"
    return text + " - Connected, No tools discovered"


def build_connection_summary(connected: int, total: int, tool_count: int) -> str:
    if total == 0:
        return "No MCP servers configured."

    failed = total - connected
    if connected == 0:
        return f"Failed to connect to all {total} MCP server(s)"

    if failed == 0:
        summary = f"Successfully connected to {connected} MCP server(s)"
    else:
        summary = f"Connected to {connected}/{total} MCP server(s) ({failed} failed)"
    if tool_count:
        summary += f" ({tool_count} tools discovered)"
    return summary


async def collect_server_status(
    config: McpConfig,
    manager: ConnectionManager | None,
) -> tuple[str, list[ServerConnectionInfo]]:
    """Summarise the configured servers and what each one currently offers.

    With no manager (client mode disabled) every server is reported as not
    connected and no tool listing is attempted.
    """
    connected: set[str] = set()
    server_tools: dict[str, list[RemoteTool]] = {}

    if manager is not None:
        connected = {client.name for client in await manager.list_clients()}
        server_tools = await manager.list_available_tools()

    infos = [
        ServerConnectionInfo(
            name=server.name,
            command=server.command,
            is_connected=server.name in connected,
            available_tools=server_tools.get(server.name, []),
        )
        for server in config.servers
    ]

    if manager is None:
        names = ", ".join(server.name for server in config.servers)
        summary = (
            f"Found {len(config.servers)} configured MCP server(s): {names} "
            "(MCP client mode disabled)"
            if config.servers
            else "No MCP servers configured."
        )
    else:
        tool_count = sum(len(t) for t in server_tools.values())
        summary = build_connection_summary(len(connected), len(config.servers), tool_count)

    logger.debug(summary)
    return summary, infos
