"""Account and usage models.

Accounts combine persisted identity (name, org, auth method, credential
reference) with runtime state that is never written to disk: the latest
usage snapshot, fetch bookkeeping and the credential signature.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum

import shortuuid

from claude_tracker.exceptions import FetchError, FetchErrorKind


class AuthMethod(StrEnum):
    """How an account authenticates against the usage endpoint."""

    OAUTH = "oauth"
    SESSION_KEY = "session_key"


@dataclass(frozen=True)
class UsageWindow:
    """Utilization of one rate-limit window."""

    percent: int  # 0-100
    reset_at: datetime | None = None  # tz-aware UTC; None when no window is open


@dataclass(frozen=True)
class UsageSnapshot:
    """Result of one successful usage fetch.

    Installed on an account all at once; never mutated afterwards.
    """

    five_hour: UsageWindow
    seven_day: UsageWindow | None
    captured_at: datetime


@dataclass(frozen=True)
class FetchFailure:
    """Last failed fetch for an account."""

    kind: FetchErrorKind
    message: str
    occurred_at: datetime

    @classmethod
    def from_error(cls, error: FetchError, now: datetime | None = None) -> "FetchFailure":
        """Create from a FetchError."""
        return cls(
            kind=error.kind,
            message=error.message,
            occurred_at=now or datetime.now(UTC),
        )


def new_credential_ref() -> str:
    """Generate a fresh key for the tracker's credential store namespace."""
    return f"acct-{shortuuid.uuid()[:12]}"


@dataclass
class AccountDraft:
    """Fields needed to create an account."""

    name: str
    org_id: str
    auth_method: AuthMethod
    credential_ref: str = field(default_factory=new_credential_ref)
    credential_signature: str | None = None


@dataclass
class Account:
    """A tracked Claude account.

    ``credential_ref`` is the lookup key of the account's secret in the
    credential store; the secret itself is never held here.
    """

    id: int
    name: str
    org_id: str
    auth_method: AuthMethod
    credential_ref: str

    # Runtime state (not persisted to file)
    usage_snapshot: UsageSnapshot | None = None
    last_fetch_at: datetime | None = None
    last_fetch_error: FetchFailure | None = None
    is_active: bool = False
    credential_signature: str | None = field(default=None, repr=False)

    def fetch_age(self, now: datetime) -> timedelta | None:
        """Time since the last successful fetch, floored at zero."""
        if self.last_fetch_at is None:
            return None
        return max(now - self.last_fetch_at, timedelta(0))

    @property
    def has_credential_error(self) -> bool:
        """Check if the last fetch failed because the credential expired."""
        return (
            self.last_fetch_error is not None
            and self.last_fetch_error.kind == FetchErrorKind.CREDENTIAL_EXPIRED
        )
