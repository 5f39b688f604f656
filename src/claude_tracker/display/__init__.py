"""Read-side projections: timers, status and the display tick."""

from claude_tracker.display.state import (
    AccountView,
    Status,
    StatusKind,
    WindowView,
    derive_status,
    project,
)
from claude_tracker.display.ticker import DisplayTicker
from claude_tracker.display.timer import format_countdown, presented_percent, remaining


__all__ = [
    "AccountView",
    "DisplayTicker",
    "Status",
    "StatusKind",
    "WindowView",
    "derive_status",
    "format_countdown",
    "presented_percent",
    "project",
    "remaining",
]
