import os
import shutil
from collections.abc import Iterable, Mapping
from pathlib import Path

from kubectl_agent.logging import get_logger

logger = get_logger("mcp_utils")


def expand_path(command: str) -> str:
    """Resolve a server launch command to an absolute executable path.

    Environment variables are expanded first. A bare name (no path separator
    and no leading ``~``) is looked up on ``PATH``; if that fails it is
    treated as relative to the current directory like any other path.

    Raises:
        ValueError: If the command is empty.
        FileNotFoundError: If the resolved path does not exist.
        PermissionError: If it is not a regular, executable file.
    """
    if not command:
        raise ValueError("command cannot be empty")

    expanded = os.path.expandvars(command)

    if os.sep not in expanded and not expanded.startswith("~"):
        resolved = shutil.which(expanded)
        if resolved:
            logger.debug(f"Found command '{expanded}' on PATH at {resolved}")
            return resolved
        logger.debug(f"Command '{expanded}' not on PATH, trying current directory")

    path = Path(os.path.expanduser(expanded))
    if not path.is_absolute():
        path = Path.cwd() / path
    path = Path(os.path.normpath(path))

    if not path.exists():
        raise FileNotFoundError(f"command path '{path}' does not exist")
    if not path.is_file():
        raise PermissionError(f"path '{path}' is not a regular file")
    if not os.access(path, os.X_OK):
        raise PermissionError(f"file '{path}' is not executable")

    return str(path)


def env_to_list(env: Mapping[str, str]) -> list[str]:
    return [f"{k}={v}" for k, v in env.items()]


def env_from_list(entries: Iterable[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if sep:
            env[key] = value
    return env


def merge_environment(
    process_env: Iterable[str], custom_env: Iterable[str]
) -> list[str]:
    """Merge ``KEY=value`` lists, with ``custom_env`` winning on collisions."""
    return env_to_list(env_from_list([*process_env, *custom_env]))
