from .config import AgentSettings, Config, McpClientConfig, McpModelConfig
from .mcp_server_config import McpConfig, ServerConfig

__all__ = [
    "AgentSettings",
    "Config",
    "McpClientConfig",
    "McpModelConfig",
    "McpConfig",
    "ServerConfig",
]
