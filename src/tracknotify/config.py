"""Loading of `.tracknotify.yaml`.

Values may reference environment variables, so bot tokens and client
secrets stay out of the file:

    tracker:
      base_url: https://youtrack.example.com
      token: ${YOUTRACK_TOKEN}
    telegram:
      default_token: ${TELEGRAM_BOT_TOKEN:-}

Example:
    config = load_config()
    for project in config.resolve_projects():
        print(f"{project.name} -> {project.target}")
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from tracknotify.constants import CONFIG_FILE_NAME
from tracknotify.exceptions import ConfigError
from tracknotify.models import NotifierConfig
from tracknotify.utils import resolve_timezone

# ${NAME}, ${NAME:-fallback} or $NAME
ENV_REFERENCE = re.compile(
    r"\$\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<fallback>[^}]*))?\}"
    r"|\$(?P<bare>[A-Za-z_][A-Za-z0-9_]*)"
)


def _substitute(match: re.Match[str]) -> str:
    name = match.group("braced") or match.group("bare")
    if name in os.environ:
        return os.environ[name]
    fallback = match.group("fallback")
    return fallback if fallback is not None else match.group(0)


def expand_env_vars(value: Any) -> Any:
    """Replace environment references inside strings of a parsed YAML tree.

    `${NAME:-fallback}` uses the fallback when NAME is unset. Other
    references to unset variables are kept as written, so validation
    reports them instead of silently seeing an empty string.

    Args:
        value: A YAML node (mapping, list, string or scalar).

    Returns:
        A copy of the node with references substituted.
    """
    if isinstance(value, str):
        return ENV_REFERENCE.sub(_substitute, value)
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def _candidate_paths(start: Path) -> Iterator[Path]:
    yield start / CONFIG_FILE_NAME
    for parent in start.parents:
        yield parent / CONFIG_FILE_NAME


def find_config_file() -> Path | None:
    """Return the nearest .tracknotify.yaml from the working directory upwards."""
    return next((path for path in _candidate_paths(Path.cwd()) if path.is_file()), None)


def load_config(config_path: Path | None = None) -> NotifierConfig:
    """Read, expand and validate the configuration file.

    Args:
        config_path: Explicit file; when None the nearest .tracknotify.yaml
            above the working directory is used.

    Returns:
        Validated configuration.

    Raises:
        ConfigError: If no file is found, the YAML is invalid, or validation fails.
    """
    if config_path is None:
        config_path = find_config_file()

    if config_path is None or not config_path.is_file():
        raise ConfigError(
            f"No {CONFIG_FILE_NAME} found",
            details={"path": str(config_path) if config_path else None},
        )

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid YAML in {config_path}", details={"error": str(e)}) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {config_path}")

    try:
        config = NotifierConfig.model_validate(expand_env_vars(data))
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration in {config_path}",
            details={"errors": e.error_count(), "first": e.errors()[0]["msg"]},
        ) from e

    validate_config(config)
    return config


def validate_config(config: NotifierConfig) -> None:
    """Check cross-field constraints pydantic cannot express alone.

    Args:
        config: Parsed configuration.

    Raises:
        ConfigError: On duplicate projects, missing bot tokens or a bad timezone.
    """
    resolve_timezone(config.timezone)

    names = [project.name for project in config.projects]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigError("Duplicate project names", details={"projects": duplicates})

    for project in config.resolve_projects():
        if not project.token:
            raise ConfigError(
                "No bot token for project; set telegram.default_token or projects[].token",
                details={"project": project.name},
            )
