"""The agent loop: ask the model, run the tools it asks for, repeat."""

import json
import shutil
import tempfile
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

from kubectl_agent.errors import (
    KubectlAgentError,
    MaxIterationsError,
    ProtocolViolationError,
    ToolExecutionError,
)
from kubectl_agent.journal import Event, NoopRecorder, Recorder
from kubectl_agent.logging import get_logger
from kubectl_agent.prompt import DEFAULT_SYSTEM_PROMPT_TEMPLATE, PromptData, generate_prompt
from kubectl_agent.providers.abstract_provider import (
    Chat,
    ChatContent,
    ChatResponse,
    FunctionCall,
    FunctionCallResult,
    LLMClient,
)
from kubectl_agent.providers.retry_chat import CHAT_RETRY, RetryChat
from kubectl_agent.retry import RetryConfig
from kubectl_agent.tool import InvokeToolOptions, ToolCall, tool_result_to_map
from kubectl_agent.tool_registry import Tools
from kubectl_agent.tool_use_shim import shim_stream
from kubectl_agent.ui import AgentTextBlock, Document, ErrorBlock, FunctionCallRequestBlock, InputOptionBlock

logger = get_logger("conversation")

WORK_DIR_PREFIX = "agent-workdir-"

CONFIRMATION_PROMPT = """\
  Do you want to proceed ?
  1) Yes
  2) Yes, and don't ask me again
  3) No"""

PROCEED = "1"
PROCEED_ALWAYS = "2"
DECLINE = "3"


class ConversationState(Enum):
    AWAITING_MODEL = "awaiting_model"
    STREAMING = "streaming"
    DISPATCHING_TOOLS = "dispatching_tools"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DONE = "done"
    FAILED = "failed"


def _observation_text(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(tool_result_to_map(output), indent=2)


class _InputClosed(Exception):
    pass


class Conversation:
    """One agent session against one chat.

    ``init`` must be called before ``run_one_round``; ``close`` releases the
    working directory. Tool calls requested in one turn run one after the
    other, in the order the model asked for them.
    """

    def __init__(
        self,
        llm: LLMClient,
        tools: Tools,
        model: str,
        max_iterations: int = 20,
        skip_permissions: bool = False,
        enable_tool_use_shim: bool = False,
        remove_work_dir: bool = False,
        kubeconfig: str | None = None,
        prompt_template_file: str | None = None,
        extra_prompt_paths: list[str] | None = None,
        recorder: Recorder | None = None,
        chat_retry: RetryConfig = CHAT_RETRY,
    ):
        self.llm = llm
        self.tools = tools
        self.model = model
        self.max_iterations = max_iterations
        self.skip_permissions = skip_permissions
        self.enable_tool_use_shim = enable_tool_use_shim
        self.remove_work_dir = remove_work_dir
        self.kubeconfig = kubeconfig
        self.prompt_template_file = prompt_template_file
        self.extra_prompt_paths = list(extra_prompt_paths or [])
        self.recorder: Recorder = recorder or NoopRecorder()
        self.chat_retry = chat_retry

        self.state = ConversationState.AWAITING_MODEL
        self.work_dir: str | None = None
        self.doc: Document | None = None
        self._chat: Chat | None = None

    def init(self, doc: Document) -> None:
        system_prompt = generate_prompt(
            PromptData(tools=self.tools, enable_tool_use_shim=self.enable_tool_use_shim),
            default_template=DEFAULT_SYSTEM_PROMPT_TEMPLATE,
            template_file=self.prompt_template_file,
            extra_paths=self.extra_prompt_paths,
        )

        chat = RetryChat(self.llm.start_chat(system_prompt, self.model), self.chat_retry)
        if not self.enable_tool_use_shim:
            definitions = sorted(
                (tool.function_definition() for tool in self.tools.all_tools()),
                key=lambda d: d.name,
            )
            chat.set_function_definitions(definitions)

        self.work_dir = tempfile.mkdtemp(prefix=WORK_DIR_PREFIX)
        logger.info(f"Created temporary working directory {self.work_dir}")

        self._chat = chat
        self.doc = doc

    def close(self) -> None:
        if self.work_dir and self.remove_work_dir:
            try:
                shutil.rmtree(self.work_dir)
            except OSError as e:
                logger.warning(f"Error cleaning up directory {self.work_dir}: {e}")

    async def run_one_round(self, query: str) -> None:
        """Drive the model until it stops asking for tools.

        Returns normally when the model finishes or when input runs out at a
        confirmation prompt.

        Raises:
            MaxIterationsError: The iteration budget ran out.
            ToolNotFoundError: The model asked for an unregistered tool.
            ToolExecutionError: A tool failed.
            ProtocolViolationError: The model response was malformed.
            ValueError: An unrecognised confirmation answer was given.
        """
        if self._chat is None or self.doc is None:
            raise RuntimeError("conversation not initialised, call init() first")

        logger.info(f"Starting chat loop for query: {query}")
        try:
            await self._run_loop(query)
        except _InputClosed:
            logger.info("Input closed while waiting for confirmation, ending round")
            self.state = ConversationState.DONE
        except BaseException:
            self.state = ConversationState.FAILED
            raise

    async def _run_loop(self, query: str) -> None:
        assert self._chat is not None and self.doc is not None

        pending: list[ChatContent] = [query]
        iteration = 0

        while iteration < self.max_iterations:
            logger.debug(f"Starting iteration {iteration}")
            self.state = ConversationState.AWAITING_MODEL
            self.recorder.write(Event(action="llm-chat", payload=pending))

            stream: AsyncIterator[ChatResponse | None] = self._chat.send_streaming(*pending)
            pending = []
            if self.enable_tool_use_shim:
                stream = shim_stream(stream)

            self.state = ConversationState.STREAMING
            calls = await self._read_stream(stream)

            self.state = ConversationState.DISPATCHING_TOOLS
            for call in calls:
                content = await self._dispatch(call)
                if content is not None:
                    pending.append(content)

            if not calls:
                logger.info("No function calls were made, task is complete")
                self.state = ConversationState.DONE
                return

            iteration += 1

        logger.info(f"Max iterations reached ({self.max_iterations})")
        self.doc.add_block(
            ErrorBlock(f"Sorry, couldn't complete the task after {self.max_iterations} iterations.\n")
        )
        raise MaxIterationsError(self.max_iterations)

    async def _read_stream(self, stream: AsyncIterator[ChatResponse | None]) -> list[FunctionCall]:
        assert self.doc is not None

        calls: list[FunctionCall] = []
        text_block: AgentTextBlock | None = None
        try:
            async for response in stream:
                if response is None:
                    break
                self.recorder.write(Event(action="llm-response", payload=response))

                candidates = response.candidates()
                if not candidates:
                    logger.error("No candidates in response")
                    raise ProtocolViolationError("no candidates in LLM response")

                for part in candidates[0].parts():
                    text, is_text = part.as_text()
                    if is_text:
                        if text_block is None:
                            text_block = AgentTextBlock()
                            text_block.set_streaming(True)
                            self.doc.add_block(text_block)
                        text_block.append_text(text)

                    function_calls, has_calls = part.as_function_calls()
                    if has_calls:
                        logger.debug(f"Function calls: {[c.name for c in function_calls]}")
                        calls.extend(function_calls)
        finally:
            if text_block is not None:
                text_block.set_streaming(False)

        return calls

    async def _dispatch(self, call: FunctionCall) -> ChatContent | None:
        """Run one call; returns what to send back to the model, if anything."""
        assert self.doc is not None

        tool_call = self.tools.parse_tool_invocation(call.name, call.arguments)
        self.doc.add_block(FunctionCallRequestBlock(f"  Running: {tool_call.pretty_print()}\n"))

        if not self.skip_permissions and call.arguments.get("modifies_resource") != "no":
            choice = await self._ask_confirmation()
            if choice == PROCEED_ALWAYS:
                self.skip_permissions = True
            elif choice == DECLINE:
                self.doc.add_block(AgentTextBlock().with_text("Operation was skipped."))
                observation = f'User didn\'t approve running "{call.name}".\n'
                if self.enable_tool_use_shim:
                    return observation
                # Every native call id needs a result, declined ones included
                return FunctionCallResult(
                    id=call.id, name=call.name, result={"content": observation, "declined": True}
                )
            elif choice != PROCEED:
                logger.error(f"Invalid confirmation choice: {choice!r}")
                self.doc.add_block(ErrorBlock("Invalid choice received. Cancelling operation."))
                raise ValueError(f"invalid confirmation choice: {choice!r}")
            self.state = ConversationState.DISPATCHING_TOOLS

        output = await self._invoke(tool_call)

        if self.enable_tool_use_shim:
            return f'Result of running "{call.name}":\n{_observation_text(output)}'
        return FunctionCallResult(id=call.id, name=call.name, result=tool_result_to_map(output))

    async def _ask_confirmation(self) -> str:
        assert self.doc is not None

        self.state = ConversationState.AWAITING_CONFIRMATION
        block = InputOptionBlock(CONFIRMATION_PROMPT, [PROCEED, PROCEED_ALWAYS, DECLINE])
        self.doc.add_block(block)
        try:
            return await block.wait()
        except EOFError as e:
            raise _InputClosed() from e

    async def _invoke(self, tool_call: ToolCall) -> Any:
        assert self.doc is not None and self.work_dir is not None

        options = InvokeToolOptions(work_dir=self.work_dir, kubeconfig=self.kubeconfig)
        try:
            return await tool_call.invoke(options)
        except KubectlAgentError as e:
            self.doc.add_block(ErrorBlock(f"Error running {tool_call.name}: {e}"))
            raise
        except Exception as e:
            self.doc.add_block(ErrorBlock(f"Error running {tool_call.name}: {e}"))
            raise ToolExecutionError(f"executing action {tool_call.name}: {e}") from e
