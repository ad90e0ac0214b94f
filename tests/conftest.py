"""Shared pytest fixtures."""

import pytest
from unittest.mock import AsyncMock, Mock

from casual_llm import Model

from kubectl_agent.models.mcp_server_config import McpConfig, ServerConfig


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch):
    """Point per-user config locations at a temporary directory."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    return home


@pytest.fixture
def mock_client():
    """Create a mock MCP client with async context manager support."""
    client = AsyncMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


@pytest.fixture
def mock_model():
    """Create a mock LLM model."""
    model = AsyncMock(spec=Model)
    model.get_usage = Mock(return_value=None)
    return model


@pytest.fixture
def mcp_config():
    """Registry with two servers."""
    return McpConfig(
        servers=[
            ServerConfig(name="alpha", command="alpha-server", args=["--stdio"]),
            ServerConfig(name="beta", command="beta-server", env={"TOKEN": "secret"}),
        ]
    )


@pytest.fixture
def sample_config_data():
    """Sample agent configuration data for tests."""
    return {
        "clients": {
            "openai": {
                "provider": "openai",
                "base_url": "https://api.openai.com/v1",
            },
            "ollama": {
                "provider": "ollama",
                "base_url": "http://localhost:11434",
            },
        },
        "models": {
            "gpt-4": {
                "client": "openai",
                "model": "gpt-4",
            },
            "llama2": {
                "client": "ollama",
                "model": "llama2",
            },
        },
        "agent": {"model": "gpt-4", "max_iterations": 5},
    }


@pytest.fixture
def temp_template_dir(tmp_path):
    """Create a temporary template directory."""
    template_dir = tmp_path / "prompt-templates"
    template_dir.mkdir()
    return template_dir
