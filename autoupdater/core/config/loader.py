"""
Configuration loader — reads autoupdater.yml into AutoupdaterConfig.

Lookup order:
    explicit path  >  AUTOUPDATER_CONFIG env var  >  /etc/autoupdater/autoupdater.yml

A missing file means "use the defaults"; a file that exists but is
invalid is an error.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AUTOUPDATER_CONFIG"
DEFAULT_CONFIG_PATH = Path("/etc/autoupdater/autoupdater.yml")
DEFAULT_STATE_DIR = Path("/var/lib/autoupdater")


class ConfigError(Exception):
    """Raised when the autoupdater configuration is invalid."""


class AutoinstallDir(BaseModel):
    """One layer of autoinstall files. Higher priority wins on a name clash."""

    path: Path
    priority: int = 0


def _default_autoinstall_dirs() -> list[AutoinstallDir]:
    return [
        AutoinstallDir(path=Path("/usr/share/flatpak-autoinstall.d"), priority=0),
        AutoinstallDir(path=Path("/etc/flatpak-autoinstall.d"), priority=10),
    ]


class AutoupdaterConfig(BaseModel):
    """Everything an invocation needs to know about this machine."""

    refspec: str = ""
    state_dir: Path = DEFAULT_STATE_DIR

    last_automatic_step: Literal["poll", "apply"] = "apply"
    interval_days: int = Field(default=1, ge=0)
    user_visible_update_delay_days: int = Field(default=7, ge=0)
    force_update: bool = False
    transport_timeout_seconds: float | None = Field(default=600.0, gt=0)

    autoinstall_dirs: list[AutoinstallDir] = Field(default_factory=_default_autoinstall_dirs)

    # System-configured environment facts (None = detect)
    architecture: str | None = None
    locales: list[str] | None = None

    def autoinstall_search_path(self) -> list[tuple[Path, int]]:
        """(directory, priority) pairs in configured order."""
        return [(d.path, d.priority) for d in self.autoinstall_dirs]


def find_config_file(explicit: Path | None = None) -> Path | None:
    """Resolve which config file applies, if any.

    An explicit path is returned even if missing, so the caller can
    report it.
    """
    if explicit is not None:
        return explicit

    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env)

    if DEFAULT_CONFIG_PATH.is_file():
        return DEFAULT_CONFIG_PATH
    return None


def load_config(path: Path | None = None) -> AutoupdaterConfig:
    """Load and validate the configuration.

    Args:
        path: Explicit config path. If None, uses the lookup order.

    Returns:
        Validated AutoupdaterConfig (defaults if no file applies).

    Raises:
        ConfigError: If an explicitly named file is missing, or the file
            is unreadable or invalid.
    """
    resolved = find_config_file(path)

    if resolved is None:
        logger.debug("No config file — using defaults")
        return AutoupdaterConfig()

    if not resolved.is_file():
        raise ConfigError(f"Config file not found: {resolved}")

    logger.debug("Loading config from %s", resolved)

    try:
        raw = resolved.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {resolved}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {resolved}: {e}") from e

    # An empty file is the same as no file
    if data is None:
        return AutoupdaterConfig()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {resolved}, got {type(data).__name__}")

    # The YAML may wrap everything under an "autoupdater" key or be flat
    if "autoupdater" in data and isinstance(data["autoupdater"], dict):
        data = data["autoupdater"]

    try:
        config = AutoupdaterConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {resolved}: {e}") from e

    logger.info(
        "Loaded config from %s (refspec=%r, %d autoinstall dirs)",
        resolved,
        config.refspec,
        len(config.autoinstall_dirs),
    )
    return config
