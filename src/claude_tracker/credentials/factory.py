"""Choose credential backends for the current platform."""

import getpass

from claude_tracker.config.settings import TrackerSettings
from claude_tracker.credentials.base import CredentialStore
from claude_tracker.credentials.claude_file import CredentialsFileStore
from claude_tracker.credentials.external import ExternalCredentialEntry
from claude_tracker.credentials.keychain import KeychainCredentialStore
from claude_tracker.credentials.keyring_store import KeyringCredentialStore


def create_tracker_store(settings: TrackerSettings) -> CredentialStore:
    """Store for the tracker's own namespace: always the system keyring."""
    return KeyringCredentialStore()


def create_external_entry(settings: TrackerSettings) -> ExternalCredentialEntry:
    """Entry the external tool reads its login from.

    On macOS this is the tool's keychain item, keyed by the login user name;
    elsewhere it is the credentials file in the tool's profile directory.
    """
    if settings.use_keychain:
        return ExternalCredentialEntry(
            KeychainCredentialStore(),
            settings.claude_keychain_service,
            getpass.getuser(),
        )
    return ExternalCredentialEntry(
        CredentialsFileStore(settings.claude_credentials_path),
        settings.claude_keychain_service,
    )
