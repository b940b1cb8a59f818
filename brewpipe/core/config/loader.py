"""
Configuration loader — reads brewpipe.yml into a Settings snapshot.

Lookup order:
    explicit path  >  BREWPIPE_CONFIG env var  >  brewpipe.yml (walking up
    from cwd)  >  ~/.config/brewpipe/config.yml

No file at all is not an error: the defaults apply.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from brewpipe.core.models.settings import Settings

logger = logging.getLogger(__name__)

CONFIG_FILE = "brewpipe.yml"
CONFIG_ENV_VAR = "BREWPIPE_CONFIG"


class ConfigError(Exception):
    """Raised when the configuration file is invalid or unreadable."""


def user_config_path() -> Path:
    """The per-user config location."""
    return Path.home() / ".config" / "brewpipe" / "config.yml"


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for brewpipe.yml starting from the given directory, walking up.

    Falls back to the env var and then the per-user config file.

    Returns:
        Path to the config file, or None if none exists.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    current = (start_dir or Path.cwd()).resolve()
    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    user_path = user_config_path()
    if user_path.is_file():
        return user_path
    return None


def load_settings(path: Path | None = None, *, search: bool = True) -> Settings:
    """Load and validate the settings snapshot.

    Args:
        path: Explicit config path. If None and ``search`` is set, the
            lookup order above is used.
        search: Whether to search for a config file when ``path`` is None.

    Returns:
        Validated Settings (defaults when no file is found).

    Raises:
        ConfigError: If the file is missing (explicit path) or invalid.
    """
    if path is None and search:
        path = find_config_file()

    if path is None:
        logger.debug("No config file found, using defaults")
        return Settings()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return Settings()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "brewpipe" key or be flat
    if isinstance(data.get("brewpipe"), dict):
        data = data["brewpipe"]

    try:
        settings = Settings.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.info("Loaded settings from %s", path)
    return settings
