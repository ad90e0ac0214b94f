"""The contract every invocable tool implements, native or proxied."""

import json
from dataclasses import dataclass
from typing import Any, Protocol

from casual_llm import Tool as FunctionDefinition
from pydantic import BaseModel


@dataclass(frozen=True)
class InvokeToolOptions:
    """Side-channel context handed to a tool alongside its arguments.

    Attributes:
        work_dir: Scratch directory owned by the running conversation.
        kubeconfig: Path to the cluster credentials, if any.
    """

    work_dir: str
    kubeconfig: str | None = None


class Tool(Protocol):
    """Protocol for anything the conversation loop can call.

    The registry stores values of this protocol only, so the loop never
    knows whether a tool runs in-process or on an external server.
    """

    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    def function_definition(self) -> FunctionDefinition: ...

    async def run(self, args: dict[str, Any], options: InvokeToolOptions) -> Any: ...


@dataclass
class ToolCall:
    tool: Tool
    name: str
    arguments: dict[str, Any]

    def pretty_print(self) -> str:
        command = self.arguments.get("command")
        if isinstance(command, str) and command:
            return command
        args = ", ".join(f"{k}={v!r}" for k, v in self.arguments.items())
        return f"{self.name}({args})"

    async def invoke(self, options: InvokeToolOptions) -> Any:
        return await self.tool.run(self.arguments, options)


def tool_result_to_map(output: Any) -> dict[str, Any]:
    """Convert a tool result into the mapping sent back as a function result."""
    if isinstance(output, BaseModel):
        return output.model_dump(by_alias=True)
    if isinstance(output, dict):
        return output
    if isinstance(output, str):
        return {"content": output}

    try:
        converted = json.loads(json.dumps(output))
    except (TypeError, ValueError):
        return {"content": str(output)}
    if isinstance(converted, dict):
        return converted
    return {"content": converted}
