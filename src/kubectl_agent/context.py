"""Composition root owning the process-wide pieces of the agent."""

import asyncio

from kubectl_agent.conversation import Conversation
from kubectl_agent.errors import CloseError, ConfigError
from kubectl_agent.journal import FileRecorder, NoopRecorder, Recorder
from kubectl_agent.kubectl_tool import KubectlTool
from kubectl_agent.logging import get_logger
from kubectl_agent.mcp_manager import ClientFactory, ConnectionManager
from kubectl_agent.models.config import Config
from kubectl_agent.models.mcp_server_config import McpConfig
from kubectl_agent.providers.abstract_provider import LLMClient
from kubectl_agent.providers.casual_llm_chat import CasualLLMClient
from kubectl_agent.server_registry import load_mcp_config
from kubectl_agent.tool_discovery import discover_and_register, start_background_discovery
from kubectl_agent.tool_registry import Tools

logger = get_logger("context")


class AgentContext:
    """Everything a conversation needs, built once per process.

    The tool registry and connection manager are shared by every
    conversation created from this context. The manager is only created
    when tool servers are enabled.
    """

    def __init__(
        self,
        config: Config,
        mcp_config: McpConfig | None = None,
        llm: LLMClient | None = None,
        recorder: Recorder | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self.config = config
        self.tools = Tools()
        self.tools.register_tool(KubectlTool())

        self.manager: ConnectionManager | None = None
        if config.agent.mcp_client and mcp_config is not None:
            self.manager = ConnectionManager(mcp_config, client_factory=client_factory)

        self.llm: LLMClient = llm or CasualLLMClient(config)
        if recorder is None:
            recorder = FileRecorder(config.agent.journal_path) if config.agent.journal_path else NoopRecorder()
        self.recorder = recorder
        self._discovery: asyncio.Task[int] | None = None

    @classmethod
    def from_config(cls, config: Config) -> "AgentContext":
        mcp_config = None
        if config.agent.mcp_client:
            mcp_config = load_mcp_config(config.agent.mcp_config_path)
        return cls(config, mcp_config=mcp_config)

    @property
    def model_name(self) -> str:
        if self.config.agent.model:
            return self.config.agent.model
        if not self.config.models:
            raise ConfigError("no models configured")
        return next(iter(self.config.models))

    async def discover_tools(self, background: bool = False) -> int:
        """Connect to tool servers and register their tools.

        In the background the call returns 0 straight away and tools appear
        in the registry once discovery finishes.
        """
        if self.manager is None:
            return 0
        if background:
            self._discovery = start_background_discovery(self.manager, self.tools)
            return 0
        return await discover_and_register(self.manager, self.tools)

    def new_conversation(self, **overrides) -> Conversation:
        settings = self.config.agent
        options = dict(
            max_iterations=settings.max_iterations,
            skip_permissions=settings.skip_permissions,
            enable_tool_use_shim=settings.enable_tool_use_shim,
            remove_work_dir=settings.remove_workdir,
            kubeconfig=settings.kubeconfig,
            prompt_template_file=settings.prompt_template_file,
            extra_prompt_paths=settings.extra_prompt_paths,
        )
        options.update(overrides)
        return Conversation(
            llm=self.llm,
            tools=self.tools,
            model=self.model_name,
            recorder=self.recorder,
            **options,
        )

    async def close(self) -> None:
        if self._discovery is not None and not self._discovery.done():
            self._discovery.cancel()
            await asyncio.gather(self._discovery, return_exceptions=True)
        if self.manager is not None:
            try:
                await self.manager.close()
            except CloseError as e:
                logger.warning(str(e))
        self.recorder.close()
