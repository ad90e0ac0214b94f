"""Tool server registry models.

The registry is persisted as ``{"servers": [{name, command, args, env}, ...]}``.
Older files keyed servers by name under ``mcpServers``; those are migrated
into the list form on validation.
"""

import warnings
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from kubectl_agent.logging import get_logger

logger = get_logger("models.mcp_server_config")


class ServerConfig(BaseModel):
    """One external tool server, launched over stdio.

    Attributes:
        name: Unique name of the server within the registry.
        command: Executable to launch. Environment variables and ``~`` are
            expanded, and bare names are looked up on ``PATH``.
        args: Command-line arguments passed to the server process.
        env: Environment overrides for the server process. These may carry
            secrets, which is why the registry file is owner-only.
    """

    name: str = Field(min_length=1)
    command: str = Field(min_length=1)
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


def is_legacy_format(data: Any) -> bool:
    """True when ``data`` carries servers in the map-keyed ``mcpServers`` form."""
    return isinstance(data, dict) and bool(data.get("mcpServers"))


class McpConfig(BaseModel):
    servers: list[ServerConfig] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def migrate_legacy_config(cls, data: Any) -> Any:
        """Auto-migrate map-keyed ``mcpServers`` into the ``servers`` list.

        Legacy entries are appended after any listed servers. An entry whose
        name is already listed is dropped with a warning.
        """
        if not isinstance(data, dict) or "mcpServers" not in data:
            return data

        legacy = data["mcpServers"]
        migrated = {k: v for k, v in data.items() if k != "mcpServers"}
        if not legacy:
            return migrated
        if not isinstance(legacy, dict):
            raise ValueError("'mcpServers' must map server names to server entries")

        warnings.warn(
            "MCP config uses the legacy 'mcpServers' map. Migrate to a 'servers' list.",
            DeprecationWarning,
            stacklevel=2,
        )

        listed = migrated.get("servers") or []
        if not isinstance(listed, list):
            raise ValueError("'servers' must be a list")
        servers: list[Any] = list(listed)
        taken = {str(s.get("name")) for s in servers if isinstance(s, dict)}
        for name, server in legacy.items():
            if isinstance(server, dict):
                server = dict(server)
                # The map key names the server unless the entry says otherwise
                if not server.get("name"):
                    server["name"] = name
                name = str(server["name"])
            if name in taken:
                logger.warning(f"Ignoring legacy 'mcpServers' entry '{name}': already listed in 'servers'")
                continue
            taken.add(name)
            servers.append(server)

        migrated["servers"] = servers
        return migrated

    @field_validator("servers")
    @classmethod
    def check_unique_names(cls, servers: list[ServerConfig]) -> list[ServerConfig]:
        seen: set[str] = set()
        for server in servers:
            if server.name in seen:
                raise ValueError(f"duplicate server name '{server.name}'")
            seen.add(server.name)
        return servers

    def add_server(
        self,
        name: str,
        command: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
    ) -> ServerConfig:
        if self.get_server(name) is not None:
            raise ValueError(f"server '{name}' already exists")

        server = ServerConfig(name=name, command=command, args=args or [], env=env or {})
        self.servers.append(server)
        return server

    def remove_server(self, name: str) -> bool:
        for i, server in enumerate(self.servers):
            if server.name == name:
                del self.servers[i]
                return True
        return False

    def get_server(self, name: str) -> ServerConfig | None:
        for server in self.servers:
            if server.name == name:
                return server
        return None
