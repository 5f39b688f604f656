"""Tracked accounts: models, persisted config and the registry."""

from claude_tracker.accounts.models import (
    Account,
    AccountDraft,
    AuthMethod,
    FetchFailure,
    UsageSnapshot,
    UsageWindow,
)
from claude_tracker.accounts.registry import AccountRegistry


__all__ = [
    "Account",
    "AccountDraft",
    "AccountRegistry",
    "AuthMethod",
    "FetchFailure",
    "UsageSnapshot",
    "UsageWindow",
]
