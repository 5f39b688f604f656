"""Credential store implementations and helpers."""

from claude_tracker.credentials.base import CredentialStore
from claude_tracker.credentials.claude_file import CredentialsFileStore
from claude_tracker.credentials.external import ExternalCredentialEntry
from claude_tracker.credentials.keychain import KeychainCredentialStore
from claude_tracker.credentials.keyring_store import KeyringCredentialStore
from claude_tracker.credentials.tokens import OAuthCredential, credential_signature


__all__ = [
    "CredentialStore",
    "CredentialsFileStore",
    "ExternalCredentialEntry",
    "KeychainCredentialStore",
    "KeyringCredentialStore",
    "OAuthCredential",
    "credential_signature",
]
