from typing import Any

from casual_llm import Tool, ToolParameter

from kubectl_agent.logging import get_logger
from kubectl_agent.mcp_client import RemoteTool

logger = get_logger("convert_tools")

ARGUMENTS_KEY = "arguments"


def permissive_definition(name: str, description: str) -> Tool:
    """Schema for a tool whose parameters are unknown.

    The model passes everything inside a single ``arguments`` object, which
    the proxy unwraps before calling the server.
    """
    return Tool(
        name=name,
        description=description,
        parameters={
            ARGUMENTS_KEY: ToolParameter(
                type="object",
                description="Arguments for the MCP tool",
            ),
        },
        required=[],
    )


def _has_usable_schema(input_schema: dict[str, Any]) -> bool:
    if input_schema.get("type", "object") != "object":
        return False
    properties = input_schema.get("properties")
    return isinstance(properties, dict) and bool(properties)


def function_definition_for(remote_tool: RemoteTool) -> Tool:
    """
    Build the function definition the model sees for a remote tool.

    Uses the server-advertised input schema when it describes an object with
    properties, and falls back to a permissive schema otherwise, so every
    registered tool has a definition.

    Args:
        remote_tool: Tool descriptor from a connected server

    Returns:
        casual-llm Tool instance
    """
    description = remote_tool.description or f"{remote_tool.name} (from MCP server {remote_tool.server})"

    if _has_usable_schema(remote_tool.input_schema):
        try:
            return Tool.from_input_schema(
                name=remote_tool.name,
                description=description,
                input_schema=remote_tool.input_schema,
            )
        except (ValueError, TypeError) as e:
            logger.warning(
                f"Could not convert schema for {remote_tool.name} from {remote_tool.server}: {e}"
            )

    return permissive_definition(remote_tool.name, description)
