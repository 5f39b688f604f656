"""Core utilities shared across the tracker."""

from claude_tracker.core.async_utils import run_in_executor
from claude_tracker.core.logging import setup_logging
from claude_tracker.core.system import get_xdg_config_home


__all__ = ["get_xdg_config_home", "run_in_executor", "setup_logging"]
