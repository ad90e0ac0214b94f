"""Tests for the chat adapters."""

import json
from unittest.mock import AsyncMock, Mock

import pytest
from casual_llm import (
    AssistantMessage,
    AssistantToolCall,
    AssistantToolCallFunction,
    SystemMessage,
    ToolResultMessage,
    UserMessage,
)

from kubectl_agent.errors import ConfigError, ProtocolViolationError
from kubectl_agent.models.config import Config
from kubectl_agent.providers.abstract_provider import FunctionCall, FunctionCallResult
from kubectl_agent.providers.casual_llm_chat import (
    NO_RESULT,
    CasualLLMChat,
    CasualLLMClient,
    response_from_message,
    to_chat_message,
)
from kubectl_agent.providers.retry_chat import RetryChat
from kubectl_agent.retry import RetryConfig, RetryError

NO_WAIT = RetryConfig(max_retries=3, base_delay=0, max_delay=0, description="LLM request")


async def drain(stream):
    return [r async for r in stream]


class FlakyChat:
    """Chat whose first ``failures`` requests fail before yielding anything."""

    def __init__(self, failures=0, responses=("one", "two")):
        self.failures = failures
        self.responses = list(responses)
        self.attempts = 0
        self.definitions = None

    def set_function_definitions(self, definitions):
        self.definitions = definitions

    async def send_streaming(self, *contents):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("503 Service Unavailable")
        for response in self.responses:
            yield response
        yield None


class TestRetryChat:
    """Tests for RetryChat."""

    async def test_passes_through(self):
        chat = FlakyChat()

        assert await drain(RetryChat(chat, NO_WAIT).send_streaming("hi")) == ["one", "two", None]
        assert chat.attempts == 1

    async def test_retries_failed_request(self):
        """Test that a request failing before streaming is retried."""
        chat = FlakyChat(failures=2)

        assert await drain(RetryChat(chat, NO_WAIT).send_streaming("hi")) == ["one", "two", None]
        assert chat.attempts == 3

    async def test_gives_up(self):
        """Test that the error surfaces once all attempts fail."""
        chat = FlakyChat(failures=5)

        with pytest.raises(RetryError, match="503"):
            await drain(RetryChat(chat, NO_WAIT).send_streaming("hi"))
        assert chat.attempts == 3

    async def test_retry_if_rejects(self):
        """Test that non-retryable errors are raised at once."""
        chat = FlakyChat(failures=5)
        retry_chat = RetryChat(chat, NO_WAIT, retry_if=lambda e: not isinstance(e, ConnectionError))

        with pytest.raises(ConnectionError):
            await drain(retry_chat.send_streaming("hi"))
        assert chat.attempts == 1

    async def test_empty_stream(self):
        chat = FlakyChat(responses=())
        chat.send_streaming = Mock(side_effect=lambda *c: _empty())

        assert await drain(RetryChat(chat, NO_WAIT).send_streaming("hi")) == []

    def test_definitions_forwarded(self):
        chat = FlakyChat()

        RetryChat(chat, NO_WAIT).set_function_definitions(["d"])

        assert chat.definitions == ["d"]


async def _empty():
    return
    yield


class TestMessageConversion:
    """Tests for converting between chat contents and casual-llm messages."""

    def test_text_becomes_user_message(self):
        message = to_chat_message("list pods")

        assert isinstance(message, UserMessage)
        assert message.content == "list pods"

    def test_result_becomes_tool_message(self):
        message = to_chat_message(FunctionCallResult(id="c1", name="kubectl", result={"content": "ok"}))

        assert isinstance(message, ToolResultMessage)
        assert message.tool_call_id == "c1"
        assert message.name == "kubectl"
        assert json.loads(message.content) == {"content": "ok"}

    def test_response_with_text_and_calls(self):
        """Test that text and tool calls become separate parts."""
        message = AssistantMessage(
            content="Checking",
            tool_calls=[
                AssistantToolCall(
                    id="c1",
                    function=AssistantToolCallFunction(
                        name="kubectl", arguments='{"command": "kubectl get pods"}'
                    ),
                )
            ],
        )

        [candidate] = response_from_message(message).candidates()
        text_part, call_part = candidate.parts()

        assert text_part.as_text() == ("Checking", True)
        assert call_part.as_function_calls() == (
            [FunctionCall(name="kubectl", arguments={"command": "kubectl get pods"}, id="c1")],
            True,
        )

    def test_invalid_arguments(self):
        message = AssistantMessage(
            content=None,
            tool_calls=[
                AssistantToolCall(
                    id="c1",
                    function=AssistantToolCallFunction(name="kubectl", arguments="{oops"),
                )
            ],
        )

        with pytest.raises(ProtocolViolationError, match="kubectl"):
            response_from_message(message)


class TestCasualLLMChat:
    """Tests for CasualLLMChat."""

    async def test_history_accumulates(self, mock_model):
        """Test that each turn is kept in the history with the model's answer."""
        mock_model.chat = AsyncMock(return_value=AssistantMessage(content="Hello"))
        chat = CasualLLMChat(mock_model, "system prompt")

        responses = await drain(chat.send_streaming("hi"))

        assert responses[-1] is None
        assert responses[0].candidates()[0].parts()[0].as_text() == ("Hello", True)
        assert isinstance(chat.messages[0], SystemMessage)
        assert [type(m) for m in chat.messages] == [SystemMessage, UserMessage, AssistantMessage]

    async def test_tools_sent_when_set(self, mock_model):
        mock_model.chat = AsyncMock(return_value=AssistantMessage(content="ok"))
        chat = CasualLLMChat(mock_model, "system prompt")

        await drain(chat.send_streaming("hi"))
        assert mock_model.chat.call_args.kwargs["tools"] is None

        chat.set_function_definitions(["tool"])
        await drain(chat.send_streaming("again"))
        assert mock_model.chat.call_args.kwargs["tools"] == ["tool"]

    async def test_failed_turn_not_recorded(self, mock_model):
        """Test that a failed request leaves the history unchanged for a retry."""
        mock_model.chat = AsyncMock(side_effect=RuntimeError("timeout"))
        chat = CasualLLMChat(mock_model, "system prompt")

        with pytest.raises(RuntimeError):
            await drain(chat.send_streaming("hi"))

        assert len(chat.messages) == 1

    @staticmethod
    def asking(*call_ids):
        return AssistantMessage(
            content=None,
            tool_calls=[
                AssistantToolCall(
                    id=call_id,
                    function=AssistantToolCallFunction(name="kubectl", arguments="{}"),
                )
                for call_id in call_ids
            ],
        )

    async def test_results_precede_user_text(self, mock_model):
        """Test that tool results go right after the assistant turn, ahead of user text."""
        mock_model.chat = AsyncMock(side_effect=[self.asking("c1"), AssistantMessage(content="ok")])
        chat = CasualLLMChat(mock_model, "system prompt")
        await drain(chat.send_streaming("hi"))

        await drain(
            chat.send_streaming("also this", FunctionCallResult(id="c1", name="kubectl", result={"content": "x"}))
        )

        sent = mock_model.chat.call_args.kwargs["messages"]
        assert [type(m) for m in sent[2:]] == [AssistantMessage, ToolResultMessage, UserMessage]
        assert sent[3].tool_call_id == "c1"

    async def test_unanswered_call_gets_placeholder(self, mock_model):
        """Test that a call left without a result is still answered under its id."""
        mock_model.chat = AsyncMock(side_effect=[self.asking("c1", "c2"), AssistantMessage(content="ok")])
        chat = CasualLLMChat(mock_model, "system prompt")
        await drain(chat.send_streaming("hi"))

        await drain(chat.send_streaming(FunctionCallResult(id="c2", name="kubectl", result={"content": "x"})))

        sent = mock_model.chat.call_args.kwargs["messages"]
        results = [m for m in sent if isinstance(m, ToolResultMessage)]
        assert {m.tool_call_id for m in results} == {"c1", "c2"}
        placeholder = next(m for m in results if m.tool_call_id == "c1")
        assert json.loads(placeholder.content) == {"content": NO_RESULT}

    async def test_no_placeholder_after_plain_reply(self, mock_model):
        mock_model.chat = AsyncMock(return_value=AssistantMessage(content="ok"))
        chat = CasualLLMChat(mock_model, "system prompt")
        await drain(chat.send_streaming("hi"))

        await drain(chat.send_streaming("again"))

        sent = mock_model.chat.call_args.kwargs["messages"]
        assert not any(isinstance(m, ToolResultMessage) for m in sent)


class TestCasualLLMClient:
    """Tests for CasualLLMClient."""

    def test_start_chat(self, sample_config_data, mock_model):
        config = Config.model_validate(sample_config_data)
        factory = Mock()
        factory.get_model.return_value = mock_model

        chat = CasualLLMClient(config, factory).start_chat("prompt", "gpt-4")

        assert chat.model is mock_model
        name, model_config, client_config = factory.get_model.call_args.args
        assert name == "gpt-4"
        assert model_config.model == "gpt-4"
        assert client_config.provider == "openai"

    def test_unknown_model(self, sample_config_data):
        config = Config.model_validate(sample_config_data)

        with pytest.raises(ConfigError, match="not configured"):
            CasualLLMClient(config, Mock()).start_chat("prompt", "missing")
