"""Config file schema and atomic file operations.

Handles loading, validating, and persisting the tracker config from
``<user config dir>/claude-tracker/config.json``. The file holds settings and
account identities only; secrets stay in the credential store.
"""

import os
from pathlib import Path
from typing import Any

import orjson
from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator
from structlog import get_logger

from claude_tracker.accounts.models import AuthMethod
from claude_tracker.constants import (
    CONFIG_VERSION,
    DEFAULT_POLL_INTERVAL_SECONDS,
    MIN_POLL_INTERVAL_SECONDS,
)
from claude_tracker.exceptions import ConfigError, ConfigErrorKind


logger = get_logger(__name__)


class TrackerConfigSettings(BaseModel):
    """Process-wide settings persisted with the accounts."""

    poll_interval_secs: int = Field(
        default=DEFAULT_POLL_INTERVAL_SECONDS,
        description="Seconds between scheduled polls of each account",
    )
    active_account: int | None = Field(
        default=None, description="Id of the account marked active"
    )

    @field_validator("poll_interval_secs", mode="after")
    @classmethod
    def clamp_poll_interval(cls, v: int) -> int:
        if v < MIN_POLL_INTERVAL_SECONDS:
            logger.warning(
                "poll_interval_clamped",
                configured=v,
                minimum=MIN_POLL_INTERVAL_SECONDS,
            )
            return MIN_POLL_INTERVAL_SECONDS
        return v


class AccountRecord(BaseModel):
    """Persisted identity of one account."""

    id: int | None = Field(default=None, ge=1)
    name: str = Field(..., min_length=1)
    org_id: str = ""
    auth_method: AuthMethod = AuthMethod.SESSION_KEY
    credential_ref: str | None = None

    @field_validator("auth_method", mode="before")
    @classmethod
    def normalize_auth_method(cls, v: Any) -> Any:
        # Older configs spelled OAuth as "o_auth" or "OAuth"
        if isinstance(v, str) and v.replace("_", "").lower() == "oauth":
            return AuthMethod.OAUTH
        return v


class TrackerConfig(BaseModel):
    """Represents the config.json file structure."""

    version: int = CONFIG_VERSION
    settings: TrackerConfigSettings = Field(default_factory=TrackerConfigSettings)
    accounts: list[AccountRecord] = Field(default_factory=list)


_account_list = TypeAdapter(list[AccountRecord])


def _parse_settings(raw: Any) -> TrackerConfigSettings:
    """Parse the settings block, falling back to defaults when invalid."""
    if raw is None:
        return TrackerConfigSettings()
    try:
        return TrackerConfigSettings.model_validate(raw)
    except ValidationError as e:
        logger.warning(
            "invalid_settings_replaced_with_defaults",
            errors=e.error_count(),
            error=str(e),
        )
        return TrackerConfigSettings()


def parse_config(data: Any) -> TrackerConfig:
    """Validate decoded config data.

    Invalid settings fall back to defaults. An invalid account list is fatal
    so accounts are never silently dropped.

    Raises:
        ConfigError: If the document or its account list is invalid
    """
    if not isinstance(data, dict):
        raise ConfigError(
            ConfigErrorKind.INVALID,
            f"Invalid config format: expected object, got {type(data).__name__}",
        )

    settings = _parse_settings(data.get("settings"))

    try:
        accounts = _account_list.validate_python(data.get("accounts", []))
    except ValidationError as e:
        raise ConfigError(
            ConfigErrorKind.INVALID,
            f"Invalid account list in config: {e}",
            details={"errors": e.error_count()},
        ) from e

    version = data.get("version", CONFIG_VERSION)
    if not isinstance(version, int):
        version = CONFIG_VERSION

    return TrackerConfig(version=version, settings=settings, accounts=accounts)


def load_config(path: Path) -> TrackerConfig:
    """Load the config file, creating it with defaults when missing.

    Args:
        path: Path to config.json

    Returns:
        Validated TrackerConfig

    Raises:
        ConfigError: If the file cannot be read or decoded (UNREADABLE), or
            its account list is invalid (INVALID)
    """
    path = Path(path).expanduser()

    if not path.exists():
        config = TrackerConfig()
        save_config(config, path)
        logger.info("config_initialized", path=str(path))
        return config

    try:
        raw = path.read_bytes()
    except OSError as e:
        raise ConfigError(
            ConfigErrorKind.UNREADABLE,
            f"Failed to read config {path}: {e}",
            details={"path": str(path)},
        ) from e

    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ConfigError(
            ConfigErrorKind.UNREADABLE,
            f"Failed to parse config {path}: {e}",
            details={"path": str(path)},
        ) from e

    config = parse_config(data)
    logger.debug("config_loaded", path=str(path), accounts=len(config.accounts))
    return config


def save_config(config: TrackerConfig, path: Path) -> None:
    """Save the config via atomic replace.

    The document is written to a temp file in the same directory, flushed to
    disk, then moved over the target, so readers see either the old or the
    new file in full.

    Raises:
        ConfigError: If writing fails (UNWRITABLE); the target is untouched
    """
    path = Path(path).expanduser()
    temp_path = path.with_suffix(path.suffix + ".tmp")
    payload = orjson.dumps(config.model_dump(mode="json"), option=orjson.OPT_INDENT_2)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with temp_path.open("wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except OSError as e:
        # OSError: File system errors (permissions, disk full, path issues)
        temp_path.unlink(missing_ok=True)
        logger.error("config_save_failed", path=str(path), error=str(e))
        raise ConfigError(
            ConfigErrorKind.UNWRITABLE,
            f"Failed to save config {path}: {e}",
            details={"path": str(path)},
        ) from e

    logger.debug("config_saved", path=str(path), accounts=len(config.accounts))
