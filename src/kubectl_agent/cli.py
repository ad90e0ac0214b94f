import asyncio
import gc
import os
import warnings
from pathlib import Path
from typing import Any, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from kubectl_agent.context import AgentContext
from kubectl_agent.errors import ConnectAllError, KubectlAgentError, MaxIterationsError
from kubectl_agent.logging import configure_logging
from kubectl_agent.mcp_manager import ConnectionManager
from kubectl_agent.mcp_status import collect_server_status, format_server_status
from kubectl_agent.server_registry import load_mcp_config, save_mcp_config
from kubectl_agent.terminal import TerminalUI
from kubectl_agent.ui import Document
from kubectl_agent.utils import load_config

app = typer.Typer()
console = Console()

DEFAULT_CONFIG_FILE = "kubectl_agent_config.json"

ConfigOption = typer.Option(DEFAULT_CONFIG_FILE, "--config", "-c", help="Agent config file")
McpConfigOption = typer.Option(None, "--mcp-config", help="Tool server registry file")


@app.callback()
def main() -> None:
    """
    Drive kubectl with an LLM, extended by MCP tool servers.
    """
    load_dotenv()
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))


def run_async_with_cleanup(coro: Any) -> Any:
    """Run async coroutine with proper subprocess cleanup.

    Ignores the "Event loop is closed" warning raised when subprocess
    transports outlive the loop, and collects garbage afterwards so they are
    released.
    """
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", message="Event loop is closed")
        try:
            return asyncio.run(coro)
        finally:
            gc.collect()


@app.command()
def run(
    query: str,
    config_file: Path = ConfigOption,
    model: Optional[str] = typer.Option(None, help="Model entry to use"),
    max_iterations: Optional[int] = typer.Option(None, help="Maximum agent iterations"),
    skip_permissions: bool = typer.Option(False, help="Run tools without asking"),
    shim: bool = typer.Option(False, help="Use the text-based tool-call shim"),
) -> None:
    """
    Run one agent round for QUERY.
    """
    try:
        config = load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    if model:
        config.agent.model = model
    if max_iterations:
        config.agent.max_iterations = max_iterations
    if skip_permissions:
        config.agent.skip_permissions = True
    if shim:
        config.agent.enable_tool_use_shim = True

    try:
        run_async_with_cleanup(_run(query, AgentContext.from_config(config)))
    except MaxIterationsError:
        raise typer.Exit(code=2)
    except (KubectlAgentError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)


async def _run(query: str, ctx: AgentContext) -> None:
    try:
        await ctx.discover_tools()
        doc = Document()
        TerminalUI(doc, console=console)
        conversation = ctx.new_conversation()
        conversation.init(doc)
        try:
            await conversation.run_one_round(query)
        finally:
            conversation.close()
    finally:
        await ctx.close()


@app.command()
def servers(mcp_config: Optional[Path] = McpConfigOption) -> None:
    """
    Return a table of all configured tool servers
    """
    config = load_mcp_config(mcp_config)
    table = Table("Name", "Command", "Args", "Env")

    for server in config.servers:
        env = ", ".join(sorted(server.env))
        table.add_row(server.name, server.command, " ".join(server.args), env)

    console.print(table)


@app.command()
def add(
    name: str,
    command: str,
    args: Optional[list[str]] = typer.Argument(None),
    env: Optional[list[str]] = typer.Option(None, "--env", "-e", help="KEY=value, repeatable"),
    mcp_config: Optional[Path] = McpConfigOption,
) -> None:
    """
    Add a tool server to the registry.
    """
    config = load_mcp_config(mcp_config)

    env_vars: dict[str, str] = {}
    for entry in env or []:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            console.print(f"[red]Invalid environment entry '{entry}', expected KEY=value[/red]")
            raise typer.Exit(code=1)
        env_vars[key] = value

    try:
        config.add_server(name, command, list(args or []), env_vars)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    save_mcp_config(config, mcp_config)
    console.print(f"[green]Added server '{name}'[/green]")


@app.command()
def remove(name: str, mcp_config: Optional[Path] = McpConfigOption) -> None:
    """
    Remove a tool server from the registry.
    """
    config = load_mcp_config(mcp_config)
    if not config.remove_server(name):
        console.print(f"[red]Server '{name}' not found[/red]")
        raise typer.Exit(code=1)

    save_mcp_config(config, mcp_config)
    console.print(f"[green]Removed server '{name}'[/green]")


async def _connect(manager: ConnectionManager) -> None:
    try:
        await manager.connect_all()
    except ConnectAllError as e:
        for name, err in e.errors.items():
            console.print(f"[yellow]{name}: {err}[/yellow]")


@app.command()
def tools(mcp_config: Optional[Path] = McpConfigOption) -> None:
    """
    Connect to every tool server and list the tools they offer.
    """
    manager = ConnectionManager(load_mcp_config(mcp_config))

    async def discover() -> dict[str, Any]:
        try:
            await _connect(manager)
            return await manager.refresh_tool_discovery()
        finally:
            await manager.close()

    server_tools = run_async_with_cleanup(discover())
    table = Table("Server", "Name", "Description")
    for server in sorted(server_tools):
        for tool in server_tools[server]:
            table.add_row(server, tool.name, tool.description)
    console.print(table)


@app.command()
def status(mcp_config: Optional[Path] = McpConfigOption) -> None:
    """
    Show which tool servers connect and what they offer.
    """
    config = load_mcp_config(mcp_config)
    manager = ConnectionManager(config)

    async def collect() -> Any:
        try:
            await _connect(manager)
            return await collect_server_status(config, manager)
        finally:
            await manager.close()

    summary, infos = run_async_with_cleanup(collect())
    console.print(summary)
    for info in infos:
        console.print(format_server_status(info, client_enabled=True))


if __name__ == "__main__":
    app()
