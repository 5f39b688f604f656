"""Consolidated exception hierarchy for claude-tracker.

All exceptions use proper exception chaining with the `from` keyword.
Error kinds use StrEnum for type safety and autocompletion.
"""

from enum import StrEnum
from typing import Any


class ImportErrorKind(StrEnum):
    """Reasons an import of the external credential can fail."""

    NO_EXTERNAL_CREDENTIAL = "no_external_credential"
    PROFILE_FETCH_FAILED = "profile_fetch_failed"


class SwapErrorKind(StrEnum):
    """Reasons a credential swap can fail."""

    CONCURRENT_MODIFICATION = "concurrent_modification"
    STORE_WRITE_FAILED = "store_write_failed"
    MISSING_CREDENTIAL = "missing_credential"
    UNSUPPORTED_AUTH_METHOD = "unsupported_auth_method"


class FetchErrorKind(StrEnum):
    """Reasons a usage fetch can fail."""

    CREDENTIAL_EXPIRED = "credential_expired"
    TRANSIENT = "transient"


class ConfigErrorKind(StrEnum):
    """Reasons loading or persisting the config can fail."""

    UNREADABLE = "unreadable"
    INVALID = "invalid"
    UNWRITABLE = "unwritable"


# ============================================================================
# Base Exception
# ============================================================================


class TrackerError(Exception):
    """Base exception for all claude-tracker errors.

    Carries a machine-readable ``kind`` and structured details alongside the
    human-readable message.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: StrEnum | str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.details = details or {}


# ============================================================================
# Engine Errors
# ============================================================================


class CredentialImportError(TrackerError):
    """Importing the external tool's credential failed."""

    def __init__(
        self,
        kind: ImportErrorKind,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        default = {
            ImportErrorKind.NO_EXTERNAL_CREDENTIAL: (
                "No Claude Code credentials found. Log into Claude Code first."
            ),
            ImportErrorKind.PROFILE_FETCH_FAILED: "Could not identify the account",
        }[kind]
        super().__init__(message or default, kind=kind, details=details)
        self.kind: ImportErrorKind = kind


class SwapError(TrackerError):
    """Writing an account's credential into the external entry failed."""

    def __init__(
        self,
        kind: SwapErrorKind,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        default = {
            SwapErrorKind.CONCURRENT_MODIFICATION: (
                "Claude Code credentials changed outside the tracker; re-import first"
            ),
            SwapErrorKind.STORE_WRITE_FAILED: "Failed to write Claude Code credentials",
            SwapErrorKind.MISSING_CREDENTIAL: "No stored credential for this account",
            SwapErrorKind.UNSUPPORTED_AUTH_METHOD: (
                "Only OAuth accounts can be swapped into Claude Code"
            ),
        }[kind]
        super().__init__(message or default, kind=kind, details=details)
        self.kind: SwapErrorKind = kind


class FetchError(TrackerError):
    """A usage or profile fetch failed."""

    def __init__(
        self,
        kind: FetchErrorKind,
        message: str,
        *,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, kind=kind, details=details)
        self.kind: FetchErrorKind = kind
        self.status_code = status_code

    @property
    def is_expired(self) -> bool:
        """Check if the failure means the credential needs re-import."""
        return self.kind == FetchErrorKind.CREDENTIAL_EXPIRED


class ConfigError(TrackerError):
    """Loading or persisting the config file failed."""

    def __init__(
        self,
        kind: ConfigErrorKind,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, kind=kind, details=details)
        self.kind: ConfigErrorKind = kind


class CredentialStoreError(TrackerError):
    """The credential store backend failed."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, kind="credential_store_error", details=details)


class AccountNotFoundError(TrackerError):
    """No account with the requested id."""

    def __init__(self, account_id: int) -> None:
        super().__init__(
            f"Account {account_id} not found",
            kind="not_found",
            details={"account_id": account_id},
        )
        self.account_id = account_id


__all__ = [
    "AccountNotFoundError",
    "ConfigError",
    "ConfigErrorKind",
    "CredentialImportError",
    "CredentialStoreError",
    "FetchError",
    "FetchErrorKind",
    "ImportErrorKind",
    "SwapError",
    "SwapErrorKind",
    "TrackerError",
]
