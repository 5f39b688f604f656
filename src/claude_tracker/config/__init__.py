"""Configuration package."""

from claude_tracker.config.settings import (
    StoreBackend,
    TrackerSettings,
    get_config_dir,
    get_settings,
)


__all__ = [
    "StoreBackend",
    "TrackerSettings",
    "get_config_dir",
    "get_settings",
]
