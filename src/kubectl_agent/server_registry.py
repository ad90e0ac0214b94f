"""Loading and saving the per-user tool server registry."""

import json
import os
import sys
import tempfile
import warnings
from pathlib import Path

from pydantic import ValidationError

from kubectl_agent.errors import ConfigError
from kubectl_agent.logging import get_logger
from kubectl_agent.models.mcp_server_config import McpConfig, ServerConfig, is_legacy_format

logger = get_logger("server_registry")

APP_DIR_NAME = "kubectl-agent"
CONFIG_FILE_NAME = "mcp.json"


def default_mcp_config() -> McpConfig:
    """Registry written on first use."""
    return McpConfig(
        servers=[
            ServerConfig(
                name="sequential-thinking",
                command="npx",
                args=["-y", "@modelcontextprotocol/server-sequential-thinking"],
            )
        ]
    )


def legacy_config_path() -> Path:
    return Path.home() / ".kube" / "mcp-config.json"


def default_config_path() -> Path:
    """Return the platform-appropriate registry path.

    A registry found at the legacy ``~/.kube/mcp-config.json`` location is
    moved to the new path the first time this is called.
    """
    home = Path.home()
    if sys.platform == "win32":
        app_data = os.getenv("APPDATA")
        base = Path(app_data) if app_data else home / "AppData" / "Roaming"
    else:
        xdg = os.getenv("XDG_CONFIG_HOME")
        base = Path(xdg) if xdg else home / ".config"

    config_path = base / APP_DIR_NAME / CONFIG_FILE_NAME

    old_path = legacy_config_path()
    if old_path.exists() and not config_path.exists():
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            old_path.rename(config_path)
            logger.info(f"Migrated MCP config from {old_path} to {config_path}")
        except OSError as e:
            logger.warning(f"Could not migrate MCP config from {old_path}: {e}")

    return config_path


def load_mcp_config(path: str | Path | None = None) -> McpConfig:
    """Load the server registry, creating it with defaults when missing.

    Legacy map-keyed files are migrated and rewritten in place.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated.
    """
    config_path = Path(path) if path else default_config_path()

    if not config_path.exists():
        config = default_mcp_config()
        save_mcp_config(config, config_path)
        logger.info(f"Created default MCP configuration at {config_path}")
        return config

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Could not parse MCP config JSON at {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read MCP config at {config_path}: {e}") from e

    legacy = is_legacy_format(raw)
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", DeprecationWarning)
            config = McpConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid MCP config at {config_path}: {e}") from e

    if legacy:
        logger.info(f"Converting legacy MCP config at {config_path}")
        try:
            save_mcp_config(config, config_path)
        except OSError as e:
            logger.warning(f"Failed to save converted MCP config: {e}")

    return config


def save_mcp_config(config: McpConfig, path: str | Path | None = None) -> None:
    """Atomically write the registry with owner-only permissions."""
    config_path = Path(path) if path else default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump_json(indent=2)
    fd, tmp_name = tempfile.mkstemp(prefix=".mcp-config-", dir=config_path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, 0o600)
        os.replace(tmp_name, config_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.debug(f"Saved MCP configuration to {config_path}")
