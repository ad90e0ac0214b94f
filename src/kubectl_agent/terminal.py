"""Renders a conversation document to the terminal."""

import asyncio
import sys

import questionary
from rich.console import Console
from rich.markdown import Markdown

from kubectl_agent.logging import get_logger
from kubectl_agent.ui import (
    AgentTextBlock,
    Block,
    Document,
    ErrorBlock,
    FunctionCallRequestBlock,
    InputOptionBlock,
)

logger = get_logger("terminal")


class TerminalUI:
    """Prints blocks with rich and answers questions with questionary.

    Streaming text is printed once it is complete. When stdin is not a
    terminal, questions are cancelled, which ends the round.
    """

    def __init__(self, doc: Document, console: Console | None = None, interactive: bool | None = None):
        self.console = console or Console()
        self.interactive = sys.stdin.isatty() if interactive is None else interactive
        self._printed: set[int] = set()
        self._pending: set[asyncio.Task[None]] = set()
        doc.add_listener(self.on_block)

    def on_block(self, block: Block) -> None:
        if id(block) in self._printed:
            return

        if isinstance(block, AgentTextBlock):
            if block.streaming:
                return
            if block.text:
                self.console.print(Markdown(block.text))
        elif isinstance(block, FunctionCallRequestBlock):
            self.console.print(block.text, style="cyan", end="")
        elif isinstance(block, ErrorBlock):
            self.console.print(block.text, style="bold red", end="")
        elif isinstance(block, InputOptionBlock):
            self._ask(block)
        self._printed.add(id(block))

    def _ask(self, block: InputOptionBlock) -> None:
        if not self.interactive:
            block.cancel()
            return
        task = asyncio.get_running_loop().create_task(self._ask_async(block))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _ask_async(self, block: InputOptionBlock) -> None:
        self.console.print(block.prompt)
        answer = await questionary.select("", choices=block.options).ask_async()
        if answer is None:
            block.cancel()
        else:
            block.select(answer)
