"""Derived per-account status and table rows.

Everything here is a pure function of an account, the current time and the
external entry's signature; it is recomputed on every display tick.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from claude_tracker.accounts.models import Account, AuthMethod, UsageWindow
from claude_tracker.constants import LIVE_THRESHOLD_SECONDS
from claude_tracker.display.timer import format_countdown, is_reset, presented_percent


ERROR_LABEL_MAX = 30


class StatusKind(StrEnum):
    LOGGED_IN = "logged_in"
    LIVE = "live"
    STALE = "stale"
    NO_DATA = "no_data"


@dataclass(frozen=True)
class Status:
    kind: StatusKind
    stale_for: timedelta | None = None

    @property
    def label(self) -> str:
        """Short label for the status column."""
        if self.kind == StatusKind.LOGGED_IN:
            return "Logged In"
        if self.kind == StatusKind.LIVE:
            return "Live"
        if self.kind == StatusKind.STALE and self.stale_for is not None:
            minutes = int(self.stale_for.total_seconds()) // 60
            if minutes < 60:
                return f"{minutes}m ago"
            return f"{minutes // 60}h ago"
        return "--"


def derive_status(
    account: Account,
    now: datetime,
    external_signature: str | None,
    live_threshold: timedelta = timedelta(seconds=LIVE_THRESHOLD_SECONDS),
) -> Status:
    """Classify an account for display.

    Checks in order: the external tool holds this account's login, the last
    fetch is recent, the account has ever been fetched.
    """
    if (
        external_signature is not None
        and account.auth_method == AuthMethod.OAUTH
        and account.credential_signature == external_signature
    ):
        return Status(StatusKind.LOGGED_IN)

    age = account.fetch_age(now)
    if age is None:
        return Status(StatusKind.NO_DATA)
    if age < live_threshold:
        return Status(StatusKind.LIVE)
    return Status(StatusKind.STALE, stale_for=age)


def truncate_error(message: str) -> str:
    if len(message) > ERROR_LABEL_MAX:
        return f"{message[:ERROR_LABEL_MAX - 3]}..."
    return message


@dataclass(frozen=True)
class WindowView:
    percent: int
    countdown: str
    expired: bool


@dataclass(frozen=True)
class AccountView:
    """One table row, ready to render."""

    account_id: int
    name: str
    org_id: str
    auth_method: AuthMethod
    is_active: bool
    status: Status
    five_hour: WindowView | None
    seven_day: WindowView | None
    error: str | None

    @property
    def status_label(self) -> str:
        return self.status.label


def project_window(window: UsageWindow | None, now: datetime) -> WindowView | None:
    if window is None:
        return None
    return WindowView(
        percent=presented_percent(window, now),
        countdown=format_countdown(window, now),
        expired=is_reset(window, now),
    )


def project(
    account: Account,
    now: datetime,
    external_signature: str | None,
    live_threshold: timedelta = timedelta(seconds=LIVE_THRESHOLD_SECONDS),
) -> AccountView:
    """Build the display row for an account."""
    snapshot = account.usage_snapshot
    error = account.last_fetch_error
    return AccountView(
        account_id=account.id,
        name=account.name,
        org_id=account.org_id,
        auth_method=account.auth_method,
        is_active=account.is_active,
        status=derive_status(account, now, external_signature, live_threshold),
        five_hour=project_window(snapshot.five_hour, now) if snapshot else None,
        seven_day=project_window(snapshot.seven_day, now) if snapshot else None,
        error=truncate_error(error.message) if error else None,
    )
