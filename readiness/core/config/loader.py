"""
Configuration loader — reads readiness.yml into a HubConfig.

This is the primary entry point for loading engine configuration.
It reads YAML, validates against Pydantic schemas, and returns typed
domain objects.  Unlike a project file, the config is optional: with no
file present the built-in defaults are used.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from readiness.core.models.settings import HubConfig

logger = logging.getLogger(__name__)

# Default config filename
HUB_CONFIG_FILE = "readiness.yml"


class ConfigError(Exception):
    """Raised when hub configuration is invalid or unreadable."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for readiness.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to readiness.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / HUB_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None, *, search: bool = True) -> HubConfig:
    """Load and validate hub configuration.

    Args:
        path: Explicit path to readiness.yml.  Must exist when given.
        search: When ``path`` is None, search upward from cwd.

    Returns:
        Validated HubConfig (defaults when no file is found).

    Raises:
        ConfigError: If an explicit file is missing or any file is invalid.
    """
    if path is None:
        path = find_config_file() if search else None
        if path is None:
            logger.debug("No %s found — using defaults", HUB_CONFIG_FILE)
            return HubConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading hub config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "hub" key or be flat
    hub_data = data.get("hub", data) if isinstance(data.get("hub"), dict) else data

    try:
        config = HubConfig.model_validate(hub_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid hub configuration: {e}") from e

    logger.info("Loaded hub config with %d resources", len(config.resources))
    return config
