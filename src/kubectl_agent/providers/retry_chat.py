from collections.abc import AsyncIterator, Callable
from typing import Any

from casual_llm import Tool

from kubectl_agent.logging import get_logger
from kubectl_agent.providers.abstract_provider import Chat, ChatContent, ChatResponse
from kubectl_agent.retry import RetryConfig, retry_operation

logger = get_logger("providers.retry_chat")

CHAT_RETRY = RetryConfig(
    max_retries=3,
    base_delay=10.0,
    max_delay=60.0,
    multiplier=2.0,
    jitter=True,
    description="LLM request",
)

_END = object()


class RetryChat:
    """Chat decorator that retries requests which fail before streaming starts.

    Once the first response has been yielded the stream is passed through
    as is; a stream that breaks halfway is not replayed.
    """

    def __init__(
        self,
        chat: Chat,
        config: RetryConfig = CHAT_RETRY,
        retry_if: Callable[[Exception], bool] | None = None,
    ):
        self._chat = chat
        self._config = config
        self._retry_if = retry_if

    def set_function_definitions(self, definitions: list[Tool]) -> None:
        self._chat.set_function_definitions(definitions)

    async def send_streaming(self, *contents: ChatContent) -> AsyncIterator[ChatResponse | None]:
        async def open_stream() -> tuple[AsyncIterator[ChatResponse | None], Any]:
            stream = self._chat.send_streaming(*contents)
            try:
                first = await stream.__anext__()
            except StopAsyncIteration:
                return stream, _END
            return stream, first

        stream, first = await retry_operation(self._config, open_stream, retry_if=self._retry_if)
        if first is _END:
            return

        yield first
        async for response in stream:
            yield response
