from . import models
from .context import AgentContext
from .conversation import Conversation, ConversationState
from .mcp_client import McpClient
from .mcp_manager import ConnectionManager
from .tool_registry import Tools
from .utils import load_config, render_system_prompt

__all__ = [
    "AgentContext",
    "ConnectionManager",
    "Conversation",
    "ConversationState",
    "McpClient",
    "Tools",
    "load_config",
    "render_system_prompt",
    "models",
]
