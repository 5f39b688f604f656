"""Pure time arithmetic over usage windows.

Nothing here mutates a snapshot: an expired window is presented as 0%
while the stored percent stays as fetched.
"""

from datetime import datetime, timedelta

from claude_tracker.accounts.models import UsageWindow


def remaining(window: UsageWindow, now: datetime) -> timedelta:
    """Time until the window resets, floored at zero.

    A window without a reset time counts as already reset.
    """
    if window.reset_at is None:
        return timedelta(0)
    return max(window.reset_at - now, timedelta(0))


def is_reset(window: UsageWindow, now: datetime) -> bool:
    """Check if the window has reset; true from the reset instant on."""
    return window.reset_at is None or now >= window.reset_at


def presented_percent(window: UsageWindow, now: datetime) -> int:
    """Percent to display: 0 once the window has reset, else as fetched."""
    return 0 if is_reset(window, now) else window.percent


def format_countdown(window: UsageWindow, now: datetime) -> str:
    """Render time to reset as ``2d 3h``, ``1h 05m``, ``4m 09s``, ``12s`` or ``now``.

    Returns ``--`` when the window has no reset time.
    """
    if window.reset_at is None:
        return "--"

    total_secs = int((window.reset_at - now).total_seconds())
    if total_secs <= 0:
        return "now"

    days, rest = divmod(total_secs, 86400)
    hours, rest = divmod(rest, 3600)
    mins, secs = divmod(rest, 60)

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {mins:02d}m"
    if mins > 0:
        return f"{mins}m {secs:02d}s"
    return f"{secs}s"
