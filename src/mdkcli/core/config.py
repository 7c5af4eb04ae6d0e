# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Configuration for the mdk client.

Two layers:

- ``MDKSettings``: environment-backed settings (``MDK_*`` variables, ``.env``)
- ``MDKConfig``: the resolved per-invocation config, loaded from
  ``~/.mdk/config.toml`` with environment and flag overrides.

Precedence: CLI flags > env vars > config file > defaults.

Usage:
    from mdkcli.core.config import MDKConfig
    config = MDKConfig.load(key_file=args.key_file)
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

import toml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = Path.home() / ".mdk"
DEFAULT_CONFIG_PATH = DEFAULT_STATE_DIR / "config.toml"
DEFAULT_DB_PATH = DEFAULT_STATE_DIR / "state.db"
DEFAULT_RELAYS = ["wss://relay.primal.net", "wss://relay.damus.io"]
DEFAULT_FETCH_TIMEOUT = 10.0

CURSOR_FILENAME = "cursors.json"
KEY_FILENAME = "identity.key"


class MDKSettings(BaseSettings):
    """Environment settings for mdk.

    All settings use the ``MDK_`` prefix.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # IDENTITY AND STATE
    # ==========================================================================

    key_file: str | None = Field(
        default=None,
        description="Path to the secret key file (hex or nsec)",
        validation_alias="MDK_KEY_FILE",
    )
    db_path: str | None = Field(
        default=None,
        description="Path to the group-state database",
        validation_alias="MDK_DB_PATH",
    )
    config_path: str | None = Field(
        default=None,
        description="Path to the TOML config file",
        validation_alias="MDK_CONFIG_PATH",
    )

    # ==========================================================================
    # TRANSPORT
    # ==========================================================================

    relays: str | None = Field(
        default=None,
        description="Comma-separated relay URLs",
        validation_alias="MDK_RELAYS",
    )
    fetch_timeout: float | None = Field(
        default=None,
        description="Per-fetch timeout in seconds",
        validation_alias="MDK_FETCH_TIMEOUT",
    )

    # ==========================================================================
    # LOGGING
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="MDK_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="MDK_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="MDK_LOG_FILE",
    )

    @property
    def relay_list(self) -> list[str] | None:
        """Relays from ``MDK_RELAYS`` split on commas, or None if unset."""
        if not self.relays:
            return None
        return split_relays(self.relays)


_settings: MDKSettings | None = None


def get_settings() -> MDKSettings:
    """Get the cached environment settings."""
    global _settings
    if _settings is None:
        _settings = MDKSettings()
    return _settings


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    global _settings
    _settings = None


def split_relays(value: str) -> list[str]:
    """Split a comma-separated relay list, dropping blanks."""
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass
class MDKConfig:
    """Resolved configuration for one invocation."""

    key_file: Path | None = None
    db_path: Path = DEFAULT_DB_PATH
    relays: list[str] = field(default_factory=lambda: list(DEFAULT_RELAYS))
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    config_path: Path = DEFAULT_CONFIG_PATH

    @classmethod
    def load(
        cls,
        config_path: Path | str | None = None,
        key_file: Path | str | None = None,
        db_path: Path | str | None = None,
        relays: list[str] | None = None,
    ) -> MDKConfig:
        """Load config with precedence: flags > env > file > defaults."""
        settings = get_settings()
        config = cls()

        # 1. Load from file
        if config_path is not None:
            config.config_path = Path(config_path)
        elif settings.config_path:
            config.config_path = Path(settings.config_path)
        if config.config_path.exists():
            config._load_from_file(config.config_path)

        # 2. Override from env
        if settings.key_file:
            config.key_file = Path(settings.key_file)
        if settings.db_path:
            config.db_path = Path(settings.db_path)
        if settings.relay_list:
            config.relays = settings.relay_list
        if settings.fetch_timeout is not None:
            config.fetch_timeout = settings.fetch_timeout

        # 3. Override from flags (highest precedence)
        if key_file is not None:
            config.key_file = Path(key_file)
        if db_path is not None:
            config.db_path = Path(db_path)
        if relays:
            config.relays = list(relays)

        config.key_file = config.key_file.expanduser() if config.key_file else None
        config.db_path = config.db_path.expanduser()
        return config

    def _load_from_file(self, path: Path) -> None:
        """Parse the TOML config file. A malformed file is ignored."""
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Ignoring unreadable config file {path}: {e}")
            return

        if data.get("key_file"):
            self.key_file = Path(str(data["key_file"]))
        if data.get("db_path"):
            self.db_path = Path(str(data["db_path"]))
        if isinstance(data.get("relays"), list) and data["relays"]:
            self.relays = [str(r) for r in data["relays"]]
        if "fetch_timeout" in data:
            self.fetch_timeout = float(data["fetch_timeout"])

    @property
    def state_dir(self) -> Path:
        """Directory holding the database, cursors and default key file."""
        return self.db_path.parent

    @property
    def cursor_path(self) -> Path:
        """Location of the persisted sync cursors."""
        return self.state_dir / CURSOR_FILENAME

    @property
    def default_key_path(self) -> Path:
        """Where ``init`` writes a new key when no key file is configured."""
        return self.state_dir / KEY_FILENAME

    def ensure_state_dir(self) -> None:
        """Create the state directory if it does not exist."""
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def save(self, path: Path | None = None) -> Path:
        """Write the config file.

        Args:
            path: Destination (defaults to the loaded config path)

        Returns:
            The path written
        """
        target = path or self.config_path
        target.parent.mkdir(parents=True, exist_ok=True)

        data: dict[str, object] = {
            "db_path": str(self.db_path),
            "relays": list(self.relays),
        }
        if self.key_file is not None:
            data["key_file"] = str(self.key_file)

        target.write_text(toml.dumps(data))
        return target

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for output."""
        return {
            "key_file": str(self.key_file) if self.key_file else None,
            "db_path": str(self.db_path),
            "relays": list(self.relays),
            "fetch_timeout": self.fetch_timeout,
        }
