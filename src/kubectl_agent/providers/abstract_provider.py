"""The chat interface the conversation loop drives.

A chat session keeps its own history. Each ``send_streaming`` call sends the
pending contents (user text or function-call results) and yields responses
until it yields ``None`` or ends. Every response carries candidates, and each
candidate carries parts that are either text or a batch of function calls.
"""

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, Union

from casual_llm import Tool


@dataclass
class FunctionCall:
    """A tool invocation requested by the model."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str = ""


@dataclass
class FunctionCallResult:
    """The outcome of a ``FunctionCall``, keyed by the call's id."""

    id: str
    name: str
    result: dict[str, Any]


ChatContent = Union[str, FunctionCallResult]


class Part(Protocol):
    def as_text(self) -> tuple[str, bool]: ...

    def as_function_calls(self) -> tuple[list[FunctionCall], bool]: ...


class Candidate(Protocol):
    def parts(self) -> Sequence[Part]: ...


class ChatResponse(Protocol):
    def candidates(self) -> Sequence[Candidate]: ...


class Chat(Protocol):
    def send_streaming(self, *contents: ChatContent) -> AsyncIterator[ChatResponse | None]: ...

    def set_function_definitions(self, definitions: list[Tool]) -> None: ...


class LLMClient(Protocol):
    def start_chat(self, system_prompt: str, model: str) -> Chat: ...


@dataclass
class TextPart:
    text: str

    def as_text(self) -> tuple[str, bool]:
        return self.text, self.text != ""

    def as_function_calls(self) -> tuple[list[FunctionCall], bool]:
        return [], False


@dataclass
class FunctionCallPart:
    calls: list[FunctionCall]

    def as_text(self) -> tuple[str, bool]:
        return "", False

    def as_function_calls(self) -> tuple[list[FunctionCall], bool]:
        return self.calls, bool(self.calls)


@dataclass
class SimpleCandidate:
    items: list[Part] = field(default_factory=list)

    def parts(self) -> Sequence[Part]:
        return self.items


@dataclass
class SimpleResponse:
    items: list[Candidate] = field(default_factory=list)

    def candidates(self) -> Sequence[Candidate]:
        return self.items
