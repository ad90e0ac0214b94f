"""
Example: One agent round from Python.

Builds the agent context from a config file, discovers MCP tools and asks
the model about the current cluster. Confirmation prompts are answered
in the terminal.
"""

import asyncio
import os

from dotenv import load_dotenv
from rich.console import Console

from kubectl_agent import AgentContext, load_config
from kubectl_agent.logging import configure_logging
from kubectl_agent.terminal import TerminalUI
from kubectl_agent.ui import Document

load_dotenv()
configure_logging(level=os.getenv("LOG_LEVEL", "WARNING"))  # type: ignore

MODEL_NAME = os.getenv("MODEL_NAME", "gpt-4.1-nano")


async def main():
    config = load_config("kubectl_agent_config.json")

    if MODEL_NAME not in config.models:
        print(f"Model '{MODEL_NAME}' not found in config. Available models:")
        for name in config.models:
            print(f"  - {name}")
        return
    config.agent.model = MODEL_NAME

    ctx = AgentContext.from_config(config)
    try:
        count = await ctx.discover_tools()
        print(f"Model: {MODEL_NAME}, MCP tools: {count}")

        doc = Document()
        TerminalUI(doc, console=Console())
        conversation = ctx.new_conversation(remove_work_dir=True)
        conversation.init(doc)
        try:
            await conversation.run_one_round("Which pods in the default namespace are not running?")
        finally:
            conversation.close()
    finally:
        await ctx.close()


if __name__ == "__main__":
    asyncio.run(main())
