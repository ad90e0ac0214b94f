"""Chat sessions backed by casual-llm models."""

import json
from collections.abc import AsyncIterator, Sequence

from casual_llm import (
    AssistantMessage,
    AssistantToolCall,
    ChatMessage,
    Model,
    SystemMessage,
    Tool,
    ToolResultMessage,
    UserMessage,
)

from kubectl_agent.errors import ConfigError, ProtocolViolationError
from kubectl_agent.logging import get_logger
from kubectl_agent.model_factory import ModelFactory
from kubectl_agent.models.config import Config
from kubectl_agent.providers.abstract_provider import (
    ChatContent,
    ChatResponse,
    FunctionCall,
    FunctionCallPart,
    FunctionCallResult,
    Part,
    SimpleCandidate,
    SimpleResponse,
    TextPart,
)

logger = get_logger("providers.casual_llm_chat")

NO_RESULT = "No result was returned for this call."


def to_chat_message(content: ChatContent) -> ChatMessage:
    if isinstance(content, FunctionCallResult):
        return ToolResultMessage(
            name=content.name,
            tool_call_id=content.id,
            content=json.dumps(content.result),
        )
    return UserMessage(content=content)


def response_from_message(message: AssistantMessage) -> SimpleResponse:
    parts: list[Part] = []
    if message.content:
        parts.append(TextPart(message.content))

    calls: list[FunctionCall] = []
    for tool_call in message.tool_calls or []:
        try:
            arguments = json.loads(tool_call.function.arguments or "{}")
        except json.JSONDecodeError as e:
            raise ProtocolViolationError(
                f"invalid arguments for function call {tool_call.function.name}: {e}"
            ) from e
        calls.append(FunctionCall(name=tool_call.function.name, arguments=arguments, id=tool_call.id))
    if calls:
        parts.append(FunctionCallPart(calls))

    return SimpleResponse([SimpleCandidate(parts)])


class CasualLLMChat:
    """A chat session that keeps its own message history.

    casual-llm answers a turn in one message, so every ``send_streaming``
    call yields exactly one response.
    """

    def __init__(self, model: Model, system_prompt: str):
        self.model = model
        self.messages: list[ChatMessage] = [SystemMessage(content=system_prompt)]
        self.tools: list[Tool] = []

    def set_function_definitions(self, definitions: list[Tool]) -> None:
        self.tools = list(definitions)

    def _outstanding_calls(self) -> list[AssistantToolCall]:
        last = self.messages[-1]
        if isinstance(last, AssistantMessage):
            return list(last.tool_calls or [])
        return []

    def _pending_messages(self, contents: Sequence[ChatContent]) -> list[ChatMessage]:
        """Messages for one turn, with every open tool call answered first.

        Tool results must directly follow the assistant message that asked
        for them, so user text goes last and calls left without a result
        get a placeholder.
        """
        results = [c for c in contents if isinstance(c, FunctionCallResult)]
        texts = [c for c in contents if not isinstance(c, FunctionCallResult)]

        answered = {r.id for r in results}
        for call in self._outstanding_calls():
            if call.id not in answered:
                logger.warning(f"No result for tool call {call.id} ({call.function.name}), sending placeholder")
                results.append(
                    FunctionCallResult(id=call.id, name=call.function.name, result={"content": NO_RESULT})
                )

        return [to_chat_message(c) for c in [*results, *texts]]

    async def send_streaming(self, *contents: ChatContent) -> AsyncIterator[ChatResponse | None]:
        pending = self._pending_messages(contents)
        # Only commit the turn to history once the model has answered it
        messages = [*self.messages, *pending]

        logger.debug(f"Sending {len(pending)} messages to the LLM")
        ai_message = await self.model.chat(messages=messages, tools=self.tools or None)

        self.messages = [*messages, ai_message]
        yield response_from_message(ai_message)
        yield None


class CasualLLMClient:
    def __init__(self, config: Config, factory: ModelFactory | None = None):
        self.config = config
        self.factory = factory or ModelFactory()

    def start_chat(self, system_prompt: str, model: str) -> CasualLLMChat:
        model_config = self.config.models.get(model)
        if model_config is None:
            raise ConfigError(f"model '{model}' is not configured")
        client_config = self.config.clients[model_config.client]

        llm = self.factory.get_model(model, model_config, client_config)
        return CasualLLMChat(llm, system_prompt)
