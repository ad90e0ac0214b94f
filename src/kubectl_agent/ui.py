"""Transcript of a conversation as an ordered list of blocks.

The conversation appends blocks; a front end subscribes to the document and
renders each block as it arrives. Blocks that change after being added
(streaming text) notify the document again.
"""

import asyncio
from collections.abc import Callable

from kubectl_agent.logging import get_logger

logger = get_logger("ui")


class Block:
    def __init__(self) -> None:
        self.document: "Document | None" = None

    def _changed(self) -> None:
        if self.document is not None:
            self.document.block_changed(self)


class AgentTextBlock(Block):
    def __init__(self, text: str = "") -> None:
        super().__init__()
        self.text = text
        self.streaming = False

    def with_text(self, text: str) -> "AgentTextBlock":
        self.text = text
        return self

    def set_streaming(self, streaming: bool) -> None:
        self.streaming = streaming
        self._changed()

    def append_text(self, text: str) -> None:
        self.text += text
        self._changed()


class FunctionCallRequestBlock(Block):
    def __init__(self, text: str = "") -> None:
        super().__init__()
        self.text = text


class ErrorBlock(Block):
    def __init__(self, text: str = "") -> None:
        super().__init__()
        self.text = text


class InputOptionBlock(Block):
    """A question with a fixed set of answers.

    ``wait`` suspends until a front end calls ``select`` or ``cancel``;
    cancelling means input is exhausted and ``wait`` raises ``EOFError``.
    """

    def __init__(self, prompt: str, options: list[str]) -> None:
        super().__init__()
        self.prompt = prompt
        self.options = list(options)
        self._answer: str | None = None
        self._cancelled = False
        self._event = asyncio.Event()

    @property
    def answered(self) -> bool:
        return self._event.is_set()

    def select(self, choice: str) -> None:
        self._answer = choice
        self._event.set()

    def cancel(self) -> None:
        self._cancelled = True
        self._event.set()

    async def wait(self) -> str:
        await self._event.wait()
        if self._cancelled or self._answer is None:
            raise EOFError("input closed")
        return self._answer


Listener = Callable[[Block], None]


class Document:
    def __init__(self) -> None:
        self.blocks: list[Block] = []
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def add_block(self, block: Block) -> None:
        block.document = self
        self.blocks.append(block)
        self._notify(block)

    def block_changed(self, block: Block) -> None:
        self._notify(block)

    def _notify(self, block: Block) -> None:
        for listener in self._listeners:
            listener(block)
