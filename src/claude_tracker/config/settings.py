"""Process settings for claude-tracker.

These are runtime knobs (paths, timeouts, backends), loaded from the
environment. The persisted account list and its ``settings`` block live in
the config file handled by :mod:`claude_tracker.accounts.config_file`.
"""

import hashlib
from enum import StrEnum
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from claude_tracker.constants import (
    APP_NAME,
    CLAUDE_CODE_CREDENTIALS_FILENAME,
    CLAUDE_CODE_SERVICE_NAME,
    CONFIG_FILENAME,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_TICK_INTERVAL_SECONDS,
    LIVE_THRESHOLD_SECONDS,
)
from claude_tracker.core.system import get_xdg_config_home, is_macos


__all__ = [
    "StoreBackend",
    "TrackerSettings",
    "get_config_dir",
    "get_settings",
]


class StoreBackend(StrEnum):
    """Where Claude Code keeps its own login."""

    AUTO = "auto"
    KEYCHAIN = "keychain"
    FILE = "file"


def get_config_dir() -> Path:
    """Get the tracker configuration directory.

    Returns:
        Path to the tracker directory within the user config directory.
    """
    return get_xdg_config_home() / APP_NAME


class TrackerSettings(BaseSettings):
    """Configuration settings for the tracker process.

    Settings are loaded from ``CLAUDE_TRACKER_*`` environment variables.
    ``CLAUDE_CONFIG_DIR`` is honored as-is because the external tool reads
    the same variable.
    """

    model_config = SettingsConfigDict(
        env_prefix="CLAUDE_TRACKER_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    config_dir: Path = Field(
        default_factory=get_config_dir,
        description="Directory holding config.json",
    )

    claude_config_dir: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("CLAUDE_CONFIG_DIR", "claude_config_dir"),
        description="Alternate Claude Code profile directory",
    )

    store_backend: StoreBackend = Field(
        default=StoreBackend.AUTO,
        description="Claude Code login location: auto, keychain or file",
    )

    http_timeout: float = Field(
        default=DEFAULT_HTTP_TIMEOUT_SECONDS,
        gt=0,
        le=120,
        description="Timeout in seconds for usage and profile requests",
    )

    tick_interval: float = Field(
        default=DEFAULT_TICK_INTERVAL_SECONDS,
        gt=0,
        le=60,
        description="Seconds between display refreshes",
    )

    live_threshold_seconds: int = Field(
        default=LIVE_THRESHOLD_SECONDS,
        ge=1,
        description="Fetch age below which an account shows as Live",
    )

    log_level: str = Field(default="WARNING", description="Log level")
    log_file: Path | None = Field(default=None, description="Optional log file")

    @field_validator("config_dir", "claude_config_dir", "log_file", mode="after")
    @classmethod
    def expand_paths(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else None

    @property
    def config_path(self) -> Path:
        """Path to the persisted account config."""
        return self.config_dir / CONFIG_FILENAME

    @property
    def use_keychain(self) -> bool:
        """Whether Claude Code's login lives in the macOS keychain."""
        if self.store_backend == StoreBackend.AUTO:
            return is_macos()
        return self.store_backend == StoreBackend.KEYCHAIN

    @property
    def claude_credentials_path(self) -> Path:
        """Location of the external tool's credentials file."""
        base = self.claude_config_dir or Path("~/.claude").expanduser()
        return base / CLAUDE_CODE_CREDENTIALS_FILENAME

    @property
    def claude_keychain_service(self) -> str:
        """Keychain service name the external tool uses for its entry.

        An alternate profile directory gets its own entry, suffixed with the
        first 8 hex chars of the directory's SHA-256.
        """
        if self.claude_config_dir is None:
            return CLAUDE_CODE_SERVICE_NAME
        digest = hashlib.sha256(str(self.claude_config_dir).encode()).hexdigest()
        return f"{CLAUDE_CODE_SERVICE_NAME}-{digest[:8]}"


def get_settings(**overrides: object) -> TrackerSettings:
    """Build settings from the environment plus explicit overrides."""
    return TrackerSettings(**overrides)  # type: ignore[arg-type]
