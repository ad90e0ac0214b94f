from typing import Any

from kubectl_agent.errors import ToolNotFoundError
from kubectl_agent.logging import get_logger
from kubectl_agent.tool import Tool, ToolCall

logger = get_logger("tool_registry")


def _describe(tool: Tool) -> str:
    server = getattr(tool, "server_name", None)
    return f"MCP server '{server}'" if server else "built-in"


class Tools:
    """Registry of invocable tools keyed by name.

    A later registration under an existing name replaces the earlier one,
    including a proxied tool replacing a native one. Replacements are
    logged as warnings.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register_tool(self, tool: Tool) -> None:
        existing = self._tools.get(tool.name)
        if existing is not None and existing is not tool:
            logger.warning(
                f"Tool '{tool.name}' from {_describe(tool)} replaces the one from {_describe(existing)}"
            )
        self._tools[tool.name] = tool

    def lookup(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def all_tools(self) -> list[Tool]:
        return [self._tools[name] for name in sorted(self._tools)]

    def names(self) -> list[str]:
        return sorted(self._tools)

    def parse_tool_invocation(self, name: str, arguments: dict[str, Any]) -> ToolCall:
        tool = self.lookup(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return ToolCall(tool=tool, name=name, arguments=dict(arguments))

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
