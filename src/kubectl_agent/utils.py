import json
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError
from pydantic import ValidationError

from kubectl_agent.errors import ConfigError
from kubectl_agent.logging import get_logger
from kubectl_agent.models.config import Config

logger = get_logger("utils")


def load_config(path: str | Path) -> Config:
    """Load the agent config.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid JSON or does not match the schema.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Config file not found: {path}")
    except json.JSONDecodeError as e:
        raise ValueError(f"Could not parse config JSON in {path}: {e}") from e

    try:
        return Config.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid config in {path}: {e}") from e


def read_prompt_files(template_file: str | None, extra_paths: list[str], default: str) -> str:
    """Assemble the prompt template source.

    A template file replaces the default template; extra files are appended,
    each on a new line.
    """
    source = default
    if template_file:
        try:
            source = Path(template_file).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"error reading template file {template_file}: {e}") from e

    for extra in extra_paths:
        try:
            source += "\n" + Path(extra).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"error reading extra prompt path {extra}: {e}") from e

    return source


def render_system_prompt(source: str, extra: dict[str, Any] | None = None) -> str:
    env = Environment(undefined=StrictUndefined, keep_trailing_newline=True)
    try:
        template = env.from_string(source)
        return template.render(**(extra or {}))
    except TemplateError as e:
        raise ConfigError(f"evaluating template for prompt: {e}") from e
