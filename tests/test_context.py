"""Tests for AgentContext."""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from kubectl_agent.context import AgentContext
from kubectl_agent.errors import ConfigError, McpConnectionError
from kubectl_agent.journal import Event, FileRecorder, NoopRecorder
from kubectl_agent.kubectl_tool import KubectlTool
from kubectl_agent.mcp_client import RemoteTool
from kubectl_agent.models.config import Config
from kubectl_agent.tool_discovery import AUTO_DISCOVER_ENV


@pytest.fixture
def config(sample_config_data):
    return Config.model_validate(sample_config_data)


@pytest.fixture(autouse=True)
def no_settle_delay(monkeypatch):
    monkeypatch.setattr("kubectl_agent.tool_discovery.SETTLE_DELAY", 0)
    monkeypatch.delenv(AUTO_DISCOVER_ENV, raising=False)


def client_factory(failing=()):
    def build(name, command, args, env):
        client = Mock()
        client.name = name
        client.connect = AsyncMock(
            side_effect=McpConnectionError(name, "boom") if name in failing else None
        )
        client.list_tools = AsyncMock(return_value=[RemoteTool(server=name, name=f"{name}_logs")])
        client.close = AsyncMock()
        return client

    return build


class TestAgentContext:
    """Tests for building and tearing down the agent context."""

    def test_kubectl_registered(self, config):
        ctx = AgentContext(config, llm=Mock())

        assert isinstance(ctx.tools.lookup("kubectl"), KubectlTool)
        assert isinstance(ctx.recorder, NoopRecorder)

    def test_no_manager_without_registry(self, config):
        assert AgentContext(config, llm=Mock()).manager is None

    def test_no_manager_when_client_disabled(self, config, mcp_config):
        config.agent.mcp_client = False

        assert AgentContext(config, mcp_config=mcp_config, llm=Mock()).manager is None

    def test_file_recorder_from_settings(self, config, tmp_path):
        config.agent.journal_path = str(tmp_path / "logs" / "journal.jsonl")

        ctx = AgentContext(config, llm=Mock())

        assert isinstance(ctx.recorder, FileRecorder)
        ctx.recorder.close()

    def test_model_name(self, config):
        assert AgentContext(config, llm=Mock()).model_name == "gpt-4"

        config.agent.model = None
        assert AgentContext(config, llm=Mock()).model_name == "gpt-4"

    def test_model_name_without_models(self):
        ctx = AgentContext(Config(models={}), llm=Mock())

        with pytest.raises(ConfigError):
            ctx.model_name

    def test_new_conversation_uses_settings(self, config):
        """Test that conversations pick up agent settings and overrides."""
        config.agent.kubeconfig = "/tmp/kube"
        ctx = AgentContext(config, llm=Mock())

        conversation = ctx.new_conversation(skip_permissions=True)

        assert conversation.max_iterations == 5
        assert conversation.kubeconfig == "/tmp/kube"
        assert conversation.skip_permissions
        assert conversation.tools is ctx.tools
        assert conversation.model == "gpt-4"

    async def test_discover_tools(self, config, mcp_config):
        """Test that tools from connected servers join the registry."""
        ctx = AgentContext(config, mcp_config=mcp_config, llm=Mock(), client_factory=client_factory({"beta"}))

        count = await ctx.discover_tools()

        assert count == 1
        assert ctx.tools.names() == ["alpha_logs", "kubectl"]
        await ctx.close()

    async def test_discover_tools_in_background(self, config, mcp_config):
        ctx = AgentContext(config, mcp_config=mcp_config, llm=Mock(), client_factory=client_factory())

        assert await ctx.discover_tools(background=True) == 0
        assert await ctx._discovery == 2
        assert len(ctx.tools) == 3
        await ctx.close()

    async def test_discover_without_manager(self, config):
        assert await AgentContext(config, llm=Mock()).discover_tools() == 0

    async def test_close_releases_everything(self, config, mcp_config):
        """Test that close shuts down servers and the recorder."""
        recorder = Mock()
        ctx = AgentContext(
            config, mcp_config=mcp_config, llm=Mock(), recorder=recorder, client_factory=client_factory()
        )
        await ctx.discover_tools()
        clients = await ctx.manager.list_clients()

        await ctx.close()

        assert all(c.close.await_count == 1 for c in clients)
        recorder.close.assert_called_once()

    async def test_close_cancels_background_discovery(self, config, mcp_config, monkeypatch):
        monkeypatch.setattr("kubectl_agent.tool_discovery.SETTLE_DELAY", 60)
        ctx = AgentContext(config, mcp_config=mcp_config, llm=Mock(), client_factory=client_factory())
        await ctx.discover_tools(background=True)

        await ctx.close()

        assert ctx._discovery.cancelled()


class TestFileRecorder:
    """Tests for the JSON lines journal."""

    def test_writes_json_lines(self, tmp_path):
        path = tmp_path / "journal.jsonl"
        recorder = FileRecorder(path)

        recorder.write(Event(action="llm-chat", payload=["list pods"]))
        recorder.write(Event(action="llm-response", payload=RemoteTool(server="s", name="t")))
        recorder.close()

        lines = [json.loads(line) for line in path.read_text().splitlines()]
        assert [line["action"] for line in lines] == ["llm-chat", "llm-response"]
        assert lines[0]["payload"] == ["list pods"]
        assert lines[1]["payload"]["name"] == "t"
        assert "timestamp" in lines[0]
