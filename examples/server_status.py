"""
Example: Inspect the MCP server registry.

Connects to every registered server and prints what each one offers.
"""

import asyncio
import os

from dotenv import load_dotenv

from kubectl_agent import ConnectionManager
from kubectl_agent.errors import ConnectAllError
from kubectl_agent.logging import configure_logging
from kubectl_agent.mcp_status import collect_server_status, format_server_status
from kubectl_agent.server_registry import load_mcp_config

load_dotenv()
configure_logging(level=os.getenv("LOG_LEVEL", "WARNING"))  # type: ignore


async def main():
    config = load_mcp_config()
    manager = ConnectionManager(config)

    try:
        try:
            await manager.connect_all()
        except ConnectAllError as e:
            for name, err in e.errors.items():
                print(f"{name}: {err}")

        summary, infos = await collect_server_status(config, manager)
    finally:
        await manager.close()

    print(summary)
    for info in infos:
        print(format_server_status(info, client_enabled=True))


if __name__ == "__main__":
    asyncio.run(main())
