import os

from casual_llm import (
    ClientConfig,
    LLMClient,
    Model,
    ModelConfig,
    Provider,
    create_client,
    create_model,
)

from kubectl_agent.logging import get_logger
from kubectl_agent.models.config import McpClientConfig, McpModelConfig

logger = get_logger("model_factory")


class ModelFactory:
    PROVIDER_MAP = {
        "openai": Provider.OPENAI,
        "ollama": Provider.OLLAMA,
    }

    def __init__(self) -> None:
        self._clients: dict[str, LLMClient] = {}
        self._models: dict[str, Model] = {}

    def _get_client_key(self, provider: Provider, endpoint: str | None) -> str:
        return f"{provider.value}:{endpoint or 'default'}"

    def _get_or_create_client(
        self, provider: Provider, endpoint: str | None, api_key: str | None
    ) -> LLMClient:
        key = self._get_client_key(provider, endpoint)
        existing = self._clients.get(key)
        if existing:
            logger.debug("Reusing cached client for %s", key)
            return existing

        logger.info("Creating client for %s", key)
        client = create_client(
            ClientConfig(
                provider=provider,
                base_url=endpoint,
                api_key=api_key,
            )
        )
        self._clients[key] = client
        return client

    def get_model(
        self, name: str, model_config: McpModelConfig, client_config: McpClientConfig
    ) -> Model:
        existing = self._models.get(name)
        if existing:
            logger.debug("Reusing cached model '%s'", name)
            return existing

        provider = self.PROVIDER_MAP.get(client_config.provider)
        if provider is None:
            logger.error("Unknown provider '%s' for model '%s'", client_config.provider, name)
            raise ValueError(f"Unknown provider: {client_config.provider}")

        api_key = client_config.api_key
        if api_key is None and provider == Provider.OPENAI:
            api_key = os.getenv("OPENAI_API_KEY")
        client = self._get_or_create_client(provider, client_config.base_url, api_key)

        logger.info(
            "Creating model '%s' (provider=%s, model=%s)",
            name,
            client_config.provider,
            model_config.model,
        )
        model = create_model(
            client, ModelConfig(name=model_config.model, temperature=model_config.temperature)
        )

        self._models[name] = model
        return model
