"""Tests for the agent config model and its legacy migration."""

import pytest
from pydantic import ValidationError

from kubectl_agent.models.config import AgentSettings, Config


class TestMigrateLegacyConfig:
    """Tests for the migrate_legacy_config validator."""

    def test_migrates_basic_legacy_config(self):
        """Test migration of a basic legacy config."""
        data = {"models": {"test-model": {"provider": "openai", "model": "gpt-4"}}}

        with pytest.warns(DeprecationWarning):
            config = Config.model_validate(data)

        assert config.clients["openai"].provider == "openai"
        assert config.models["test-model"].client == "openai"
        assert config.models["test-model"].model == "gpt-4"

    def test_migrates_with_endpoint(self):
        """Test migration preserves endpoint as base_url."""
        data = {
            "models": {
                "ollama-model": {
                    "provider": "ollama",
                    "model": "llama2",
                    "endpoint": "http://localhost:11434",
                },
            },
        }

        with pytest.warns(DeprecationWarning):
            config = Config.model_validate(data)

        assert config.clients["ollama"].base_url == "http://localhost:11434"
        assert config.models["ollama-model"].client == "ollama"

    def test_migrates_preserves_temperature(self):
        """Test migration preserves temperature field."""
        data = {"models": {"test": {"provider": "openai", "model": "gpt-4", "temperature": 0.7}}}

        with pytest.warns(DeprecationWarning):
            config = Config.model_validate(data)

        assert config.models["test"].temperature == 0.7

    def test_new_format_untouched(self, sample_config_data):
        """Test that a config already split into clients and models validates as is."""
        config = Config.model_validate(sample_config_data)

        assert set(config.clients) == {"openai", "ollama"}
        assert config.models["llama2"].client == "ollama"
        assert config.agent.model == "gpt-4"
        assert config.agent.max_iterations == 5

    def test_deduplicates_same_provider_different_endpoints(self):
        """Test that multiple endpoints for same provider get unique client names."""
        data = {
            "models": {
                "model1": {"provider": "ollama", "model": "llama2", "endpoint": "http://host1:11434"},
                "model2": {"provider": "ollama", "model": "llama3", "endpoint": "http://host2:11434"},
            },
        }

        with pytest.warns(DeprecationWarning):
            config = Config.model_validate(data)

        assert set(config.clients) == {"ollama", "ollama-2"}

    def test_multiple_models_share_same_client(self):
        """Test that models with same provider/endpoint share a client."""
        data = {
            "models": {
                "model1": {"provider": "openai", "model": "gpt-4"},
                "model2": {"provider": "openai", "model": "gpt-4-mini"},
            },
        }

        with pytest.warns(DeprecationWarning):
            config = Config.model_validate(data)

        assert len(config.clients) == 1
        assert config.models["model1"].client == "openai"
        assert config.models["model2"].client == "openai"


class TestConfigReferences:
    """Tests for cross-reference validation."""

    def test_unknown_client_rejected(self):
        """Test that a model must reference a configured client."""
        with pytest.raises(ValidationError, match="unknown client"):
            Config.model_validate(
                {
                    "clients": {"openai": {"provider": "openai"}},
                    "models": {"m": {"client": "missing", "model": "gpt-4"}},
                }
            )

    def test_unknown_agent_model_rejected(self, sample_config_data):
        """Test that the agent model must be configured."""
        sample_config_data["agent"]["model"] = "missing"

        with pytest.raises(ValidationError, match="not configured"):
            Config.model_validate(sample_config_data)


class TestAgentSettings:
    """Tests for agent defaults."""

    def test_defaults(self):
        """Test the default loop settings."""
        settings = AgentSettings()

        assert settings.max_iterations == 20
        assert settings.skip_permissions is False
        assert settings.enable_tool_use_shim is False
        assert settings.mcp_client is True

    def test_max_iterations_must_be_positive(self):
        """Test that a zero iteration budget is rejected."""
        with pytest.raises(ValidationError):
            AgentSettings(max_iterations=0)
