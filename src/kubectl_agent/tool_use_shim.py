"""Recovering tool calls from plain text for models without function calling.

The model is prompted to answer with a single fenced block::

    ```json
    {"thought": "...", "answer": "...", "action": {"name": "...", ...}}
    ```

``ShimParser`` buffers streamed text until the first complete block appears,
then parses it. Only the first block counts; anything after it is dropped.
"""

import json
from collections.abc import AsyncIterator, Sequence
from enum import Enum

from pydantic import BaseModel, ValidationError

from kubectl_agent.errors import ProtocolViolationError
from kubectl_agent.logging import get_logger
from kubectl_agent.providers.abstract_provider import ChatResponse, FunctionCall

logger = get_logger("tool_use_shim")

JSON_BLOCK_OPENER = "```json"
FENCE = "```"


class Action(BaseModel):
    name: str
    reason: str = ""
    command: str = ""
    modifies_resource: str = ""


class ReActResponse(BaseModel):
    thought: str = ""
    answer: str | None = None
    action: Action | None = None


def extract_json(text: str) -> str | None:
    """Return the body of the first fenced json block, if it is complete.

    An opener with no separate closing fence after it does not count.
    """
    start = text.find(JSON_BLOCK_OPENER)
    if start == -1:
        return None
    body_start = start + len(JSON_BLOCK_OPENER)
    end = text.find(FENCE, body_start)
    if end == -1:
        return None
    return text[body_start:end]


def parse_react_response(block: str) -> ReActResponse:
    cleaned = block.replace("\n", "").strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ProtocolViolationError(f"parsing JSON {cleaned!r}: {e}") from e
    try:
        response = ReActResponse.model_validate(data)
    except ValidationError as e:
        raise ProtocolViolationError(f"unexpected ReAct response {cleaned!r}: {e}") from e
    if response.action is not None and not response.action.name:
        raise ProtocolViolationError(f"action without a name in {cleaned!r}")
    return response


class ShimState(Enum):
    ACCUMULATING = "accumulating"
    MATCHED = "matched"
    PARSED = "parsed"
    FAILED = "failed"


class ShimParser:
    """Accumulates text chunks until a complete json block is seen."""

    def __init__(self) -> None:
        self.state = ShimState.ACCUMULATING
        self.buffer = ""
        self._block: str | None = None

    def feed(self, text: str) -> bool:
        """Add a chunk; returns True once a block has been matched."""
        if self.state is not ShimState.ACCUMULATING:
            return True
        self.buffer += text
        block = extract_json(self.buffer)
        if block is not None:
            self._block = block
            self.state = ShimState.MATCHED
            return True
        return False

    def parse(self) -> ReActResponse | None:
        if self.state is ShimState.ACCUMULATING:
            if self.buffer.strip():
                logger.debug(f"No json block in model output, dropping {len(self.buffer)} characters")
            return None
        if self.state is ShimState.FAILED:
            raise ProtocolViolationError("shim parse already failed")

        assert self._block is not None
        try:
            response = parse_react_response(self._block)
        except ProtocolViolationError:
            self.state = ShimState.FAILED
            raise
        self.state = ShimState.PARSED
        return response


class ShimPart:
    def __init__(self, text: str = "", action: Action | None = None):
        self.text = text
        self.action = action

    def as_text(self) -> tuple[str, bool]:
        return self.text, self.text != ""

    def as_function_calls(self) -> tuple[list[FunctionCall], bool]:
        if self.action is None:
            return [], False
        arguments = self.action.model_dump(exclude={"name"})
        return [FunctionCall(name=self.action.name, arguments=arguments)], True


class ShimCandidate:
    def __init__(self, response: ReActResponse):
        self.response = response

    def parts(self) -> Sequence[ShimPart]:
        parts = []
        if self.response.thought:
            parts.append(ShimPart(text=self.response.thought))
        if self.response.answer:
            parts.append(ShimPart(text=self.response.answer))
        if self.response.action is not None:
            parts.append(ShimPart(action=self.response.action))
        return parts

    def __str__(self) -> str:
        return (
            f"Thought: {self.response.thought}\n"
            f"Answer: {self.response.answer}\n"
            f"Action: {self.response.action}"
        )


class ShimResponse:
    def __init__(self, response: ReActResponse):
        self.response = response

    def candidates(self) -> Sequence[ShimCandidate]:
        return [ShimCandidate(self.response)]


async def _consume(stream: AsyncIterator[ChatResponse | None], parser: ShimParser) -> None:
    try:
        async for response in stream:
            if response is None:
                break
            candidates = response.candidates()
            if not candidates:
                raise ProtocolViolationError("no candidates in LLM response")

            for part in candidates[0].parts():
                text, ok = part.as_text()
                if not ok:
                    _, has_calls = part.as_function_calls()
                    if has_calls:
                        raise ProtocolViolationError("no text part found in candidate")
                    continue
                parser.feed(text)

            if parser.state is ShimState.MATCHED:
                break
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()


async def shim_stream(
    stream: AsyncIterator[ChatResponse | None],
) -> AsyncIterator[ChatResponse | None]:
    """Turn a stream of text responses into at most one parsed response.

    Stops reading the underlying stream as soon as a block is matched.
    Yields ``None`` when the stream ends without a block.
    """
    parser = ShimParser()
    await _consume(stream, parser)

    parsed = parser.parse()
    if parsed is not None:
        yield ShimResponse(parsed)
    yield None
