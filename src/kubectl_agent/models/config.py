import warnings
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


class McpClientConfig(BaseModel):
    """Configuration for an LLM API client connection.

    Maps to casual-llm's ClientConfig.
    """

    provider: Literal["openai", "ollama"]
    base_url: str | None = None
    api_key: str | None = None
    timeout: float = 60.0


class McpModelConfig(BaseModel):
    """Configuration for an LLM model.

    References a named client and specifies model-specific settings.
    Maps to casual-llm's ModelConfig.
    """

    client: str
    model: str
    temperature: float | None = None


class AgentSettings(BaseModel):
    """Settings for the conversation loop."""

    model: str | None = Field(default=None, description="Name of the model entry to use")
    max_iterations: int = Field(default=20, ge=1)
    skip_permissions: bool = False
    enable_tool_use_shim: bool = False
    remove_workdir: bool = False
    prompt_template_file: str | None = None
    extra_prompt_paths: list[str] = Field(default_factory=list)
    kubeconfig: str | None = None
    mcp_client: bool = Field(default=True, description="Connect to configured tool servers")
    mcp_config_path: str | None = None
    journal_path: str | None = None


class Config(BaseModel):
    clients: dict[str, McpClientConfig] = Field(default_factory=dict)
    models: dict[str, McpModelConfig]
    agent: AgentSettings = Field(default_factory=AgentSettings)

    @model_validator(mode="before")
    @classmethod
    def migrate_legacy_config(cls, data: Any) -> Any:
        """Auto-migrate old-style configs where models contain provider/endpoint."""
        if not isinstance(data, dict):
            return data

        # If clients already exist, assume new format
        if "clients" in data and data["clients"]:
            return data

        models = data.get("models", {})
        if not models:
            return data

        # Check if any model has "provider" (old style) rather than "client" (new style)
        has_legacy = any(isinstance(m, dict) and "provider" in m for m in models.values())
        if not has_legacy:
            return data

        warnings.warn(
            "Config uses legacy format with provider/endpoint in models. "
            "Migrate to clients/models split.",
            DeprecationWarning,
            stacklevel=2,
        )

        # Build clients dict from unique (provider, endpoint) combos
        clients: dict[str, dict[str, Any]] = {}
        client_key_map: dict[tuple[str, str | None], str] = {}

        for model_data in models.values():
            if not isinstance(model_data, dict) or "provider" not in model_data:
                continue
            key = (model_data["provider"], model_data.get("endpoint"))

            if key not in client_key_map:
                provider, endpoint = key
                client_name = provider
                # Deduplicate if multiple endpoints for same provider
                suffix = 1
                while client_name in clients:
                    suffix += 1
                    client_name = f"{provider}-{suffix}"

                client_config: dict[str, Any] = {"provider": provider}
                if endpoint:
                    client_config["base_url"] = endpoint
                clients[client_name] = client_config
                client_key_map[key] = client_name

        # Rewrite models to reference clients
        new_models: dict[str, Any] = {}
        for model_name, model_data in models.items():
            if not isinstance(model_data, dict):
                new_models[model_name] = model_data
                continue
            key = (model_data.get("provider"), model_data.get("endpoint"))

            new_model: dict[str, Any] = {
                "client": client_key_map.get(key, model_data.get("provider")),
                "model": model_data["model"],
            }
            if "temperature" in model_data:
                new_model["temperature"] = model_data["temperature"]
            new_models[model_name] = new_model

        return {**data, "clients": clients, "models": new_models}

    @model_validator(mode="after")
    def check_references(self) -> "Config":
        for name, model in self.models.items():
            if model.client not in self.clients:
                raise ValueError(f"model '{name}' references unknown client '{model.client}'")
        if self.agent.model is not None and self.agent.model not in self.models:
            raise ValueError(f"agent model '{self.agent.model}' is not configured")
        return self
