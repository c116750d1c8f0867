"""Locate, read and validate config.yaml.

Search order:

1. an explicit path (``--config`` / ``ATLAS_CONFIG``)
2. ``config.yaml`` in the working directory
3. ``$ATLAS_HOME/config.yaml`` (``ATLAS_HOME`` defaults to ``~/.atlas``)

With no file, every setting takes its default from
:mod:`atlas.config.defaults`. String values may reference environment
variables as ``${NAME}``; unset variables expand to an empty string.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from atlas.config.schema import AtlasConfig
from atlas.errors import ConfigError

logger = logging.getLogger(__name__)

ATLAS_HOME_ENV = "ATLAS_HOME"
DEFAULT_HOME = "~/.atlas"
CONFIG_FILENAME = "config.yaml"

_ENV_REF = re.compile(r"\$\{(\w+)\}")


def atlas_home() -> Path:
    return Path(os.environ.get(ATLAS_HOME_ENV) or DEFAULT_HOME).expanduser()


def config_search_paths() -> list[Path]:
    """Implicit config locations, most specific first."""
    return [Path(CONFIG_FILENAME), atlas_home() / CONFIG_FILENAME]


def _expand_env_vars(value: Any) -> Any:
    """Replace ${NAME} references in every string of a parsed YAML tree."""
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    return value


def _find_config_file(explicit_path: str | Path | None = None) -> Path | None:
    if explicit_path is not None:
        path = Path(explicit_path).expanduser()
        if path.is_file():
            return path
        logger.warning("Config file not found: %s (using defaults)", path)
        return None
    return next((p for p in config_search_paths() if p.is_file()), None)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(str(path), f"not valid YAML: {e}") from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(str(path), "top level must be a mapping")
    return _expand_env_vars(raw)


def load_config(path: str | Path | None = None) -> AtlasConfig:
    """Load and validate configuration.

    Raises:
        ConfigError: the file is not YAML or does not match the schema.
    """
    config_path = _find_config_file(path)
    if config_path is None:
        logger.info("No config file found, using defaults")
        raw: dict[str, Any] = {}
    else:
        logger.info("Loading config from %s", config_path)
        raw = _read_yaml(config_path)

    try:
        config = AtlasConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(str(config_path) if config_path else None, str(e)) from e

    logger.debug(
        "Config: %d organization(s), %d account(s), %d FX pair(s)",
        len(config.organizations), len(config.accounts), len(config.fx_rates),
    )
    return config


def resolve_path(path_str: str) -> Path:
    """Expand ~ and make a config path absolute; ``:memory:`` passes through."""
    if path_str == ":memory:":
        return Path(path_str)
    return Path(path_str).expanduser().resolve()
