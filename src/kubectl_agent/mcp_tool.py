"""Proxy that makes a remote MCP tool look like a local one."""

import re
from typing import Any

from casual_llm import Tool as FunctionDefinition
from pydantic import BaseModel, ConfigDict, Field

from kubectl_agent.convert_tools import ARGUMENTS_KEY
from kubectl_agent.errors import ServerNotConnectedError, ToolExecutionError
from kubectl_agent.logging import get_logger
from kubectl_agent.mcp_manager import ConnectionManager
from kubectl_agent.tool import InvokeToolOptions

logger = get_logger("mcp_tool")

NUMERIC_HINTS = ("count", "max", "min", "limit", "size", "number")
BOOLEAN_WORDS = ("is", "has", "enable", "enabled", "should")

_WORD_RE = re.compile(r"[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])")


class McpToolResult(BaseModel):
    """Result of a proxied call, tagged with where it ran."""

    model_config = ConfigDict(populate_by_name=True)

    server_name: str = Field(alias="mcp_server")
    tool_name: str = Field(alias="mcp_tool")
    result: str
    success: bool = True

    def __str__(self) -> str:
        status = "SUCCESS" if self.success else "FAILED"
        return f"[MCP:{self.server_name}] {self.tool_name} executed {status}\nResult: {self.result}"


def snake_to_camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(word[:1].upper() + word[1:] for word in rest)


def _key_words(key: str) -> list[str]:
    return [word.lower() for part in key.split("_") for word in _WORD_RE.findall(part)]


def coerce_value(key: str, value: Any) -> Any:
    """Best-effort string conversion guided by the argument's name.

    Keys mentioning a count, limit or size turn numeric strings into numbers;
    keys phrased as a yes/no question turn ``"true"``/``"false"`` into
    booleans. Anything that does not convert is returned unchanged.
    """
    if not isinstance(value, str):
        return value

    lowered = key.lower()
    if any(hint in lowered for hint in NUMERIC_HINTS):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return value

    words = _key_words(key)
    if words and (words[0] in BOOLEAN_WORDS or words[-1] == "enabled"):
        text = value.strip().lower()
        if text in ("true", "yes", "1"):
            return True
        if text in ("false", "no", "0"):
            return False

    return value


class McpTool:
    """A tool served by an external MCP server.

    The server's client is looked up on every call, because a server can
    disconnect between discovery and invocation.
    """

    def __init__(
        self,
        server_name: str,
        tool_name: str,
        description: str,
        definition: FunctionDefinition,
        manager: ConnectionManager,
        camel_case_keys: bool = False,
        coerce_values: bool = True,
    ):
        self.server_name = server_name
        self.tool_name = tool_name
        self._description = description
        self._definition = definition
        self.manager = manager
        self.camel_case_keys = camel_case_keys
        self.coerce_values = coerce_values

    @property
    def name(self) -> str:
        return self.tool_name

    @property
    def description(self) -> str:
        return self._description

    def function_definition(self) -> FunctionDefinition:
        return self._definition

    def prepare_arguments(self, args: dict[str, Any]) -> dict[str, Any]:
        # The permissive schema nests everything under a single "arguments" object
        nested = args.get(ARGUMENTS_KEY)
        if len(args) == 1 and isinstance(nested, dict):
            args = nested

        prepared: dict[str, Any] = {}
        for key, value in args.items():
            if self.coerce_values:
                value = coerce_value(key, value)
            if self.camel_case_keys:
                key = snake_to_camel(key)
            prepared[key] = value
        return prepared

    async def run(self, args: dict[str, Any], options: InvokeToolOptions) -> McpToolResult:
        logger.info(f"[MCP:{self.server_name}] Invoking {self.tool_name}")

        client = await self.manager.get_client(self.server_name)
        if client is None:
            logger.error(f"MCP server {self.server_name} is not connected")
            raise ServerNotConnectedError(self.server_name)

        arguments = self.prepare_arguments(args)
        try:
            result = await client.call_tool(self.tool_name, arguments)
        except Exception as e:
            logger.error(f"MCP tool {self.tool_name} on {self.server_name} failed: {e}")
            raise ToolExecutionError(
                f"calling MCP tool '{self.tool_name}' on server '{self.server_name}': {e}"
            ) from e

        logger.debug(f"MCP tool {self.tool_name} returned {len(result)} characters")
        return McpToolResult(
            server_name=self.server_name,
            tool_name=self.tool_name,
            result=result,
        )
