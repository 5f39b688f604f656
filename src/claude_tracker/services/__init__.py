"""Engine services: fetching, importing, swapping and polling."""

from claude_tracker.services.importer import CredentialImporter, ImportOutcome, ImportStatus
from claude_tracker.services.poller import UsagePoller
from claude_tracker.services.token_sync import SwapOutcome, TokenSync
from claude_tracker.services.usage_client import Profile, UsageClient


__all__ = [
    "CredentialImporter",
    "ImportOutcome",
    "ImportStatus",
    "Profile",
    "SwapOutcome",
    "TokenSync",
    "UsageClient",
    "UsagePoller",
]
