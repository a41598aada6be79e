"""
Configuration loader — reads provision.yml into ProvisionConfig.

Search order:
    explicit path  >  $PROVISIONER_CONFIG  >  ./provision.yml
    >  ~/.config/provisioner/provision.yml

No file anywhere is not an error: every option has a default.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from provisioner.core.errors import ConfigError
from provisioner.core.models.config import ProvisionConfig

logger = logging.getLogger(__name__)

CONFIG_FILE = "provision.yml"
CONFIG_ENV_VAR = "PROVISIONER_CONFIG"
USER_CONFIG_DIR = Path("~/.config/provisioner")


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Locate the options file, or None if there isn't one."""
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env).expanduser()

    candidates = [
        (start_dir or Path.cwd()) / CONFIG_FILE,
        USER_CONFIG_DIR.expanduser() / CONFIG_FILE,
    ]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def read_yaml_mapping(path: Path) -> dict:
    """Read a YAML file that must contain a mapping.

    Raises:
        ConfigError: Missing, unreadable, malformed, or not a mapping.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def load_config(path: Path | None = None) -> ProvisionConfig:
    """Load and validate provisioner options.

    Args:
        path: Explicit path to provision.yml. If None, searches.

    Returns:
        Validated ProvisionConfig (defaults when no file is found).

    Raises:
        ConfigError: If the file is invalid, or an explicit path is missing.
    """
    if path is None:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILE)
        return ProvisionConfig()

    logger.debug("Loading options from %s", path)
    data = read_yaml_mapping(path)

    # Options may sit under an "options" key or at the top level
    options = data.get("options", data)

    try:
        config = ProvisionConfig.model_validate(options)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    # A relative steps_file is relative to the options file
    if config.steps_file and not Path(config.steps_file).expanduser().is_absolute():
        config.steps_file = str((path.parent / config.steps_file).resolve())

    logger.info("Loaded options from %s", path)
    return config
