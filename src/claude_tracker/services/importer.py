"""Import the external tool's current login as a tracked account."""

from dataclasses import dataclass
from enum import StrEnum

from structlog import get_logger

from claude_tracker.accounts.models import AccountDraft, AuthMethod
from claude_tracker.accounts.registry import AccountRegistry
from claude_tracker.constants import TRACKER_SERVICE_NAME
from claude_tracker.credentials.base import CredentialStore
from claude_tracker.credentials.external import ExternalCredentialEntry
from claude_tracker.credentials.tokens import OAuthCredential, credential_signature
from claude_tracker.exceptions import (
    CredentialImportError,
    CredentialStoreError,
    FetchError,
    ImportErrorKind,
)
from claude_tracker.services.usage_client import UsageClient


logger = get_logger(__name__)


class ImportStatus(StrEnum):
    """What an import did."""

    MATCHED = "matched"  # already tracked; nothing new
    UPDATED = "updated"  # same identity, new tokens
    CREATED = "created"


@dataclass(frozen=True)
class ImportOutcome:
    account_id: int
    status: ImportStatus
    name: str


class CredentialImporter:
    """Turns the external entry into an account, without duplicates."""

    def __init__(
        self,
        registry: AccountRegistry,
        store: CredentialStore,
        entry: ExternalCredentialEntry,
        client: UsageClient,
    ):
        self.registry = registry
        self.store = store
        self.entry = entry
        self.client = client

    async def import_current(self) -> ImportOutcome:
        """Import whatever login the external tool currently holds.

        Raises:
            CredentialImportError: NO_EXTERNAL_CREDENTIAL if the entry is
                absent or unreadable, PROFILE_FETCH_FAILED if the login
                cannot be identified
            CredentialStoreError: If the tracker's own store fails
            ConfigError: If persisting a new account fails
        """
        async with self.entry.lock:
            try:
                raw = await self.entry.read()
            except CredentialStoreError as e:
                raise CredentialImportError(
                    ImportErrorKind.NO_EXTERNAL_CREDENTIAL,
                    f"Could not read Claude Code credentials: {e.message}",
                ) from e
            if raw is None or not raw.strip():
                raise CredentialImportError(ImportErrorKind.NO_EXTERNAL_CREDENTIAL)

            try:
                credential = OAuthCredential.parse(raw)
            except ValueError as e:
                raise CredentialImportError(
                    ImportErrorKind.NO_EXTERNAL_CREDENTIAL,
                    "Claude Code credentials are not in a recognized format",
                ) from e

            signature = credential_signature(raw)
            self.entry.observe(signature)

            matched = self.registry.find_by_signature(signature)
            if matched is not None:
                await self._refresh_stored_copy(matched.credential_ref, raw)
                logger.info("import_matched", account_id=matched.id)
                return ImportOutcome(matched.id, ImportStatus.MATCHED, matched.name)

            try:
                profile = await self.client.fetch_profile(credential.access_token)
            except FetchError as e:
                logger.warning("import_profile_failed", error=e.message)
                raise CredentialImportError(
                    ImportErrorKind.PROFILE_FETCH_FAILED,
                    f"Could not identify the account: {e.message}",
                    details={"fetch_error": e.kind},
                ) from e

            existing = self.registry.find_by_identity(profile.email, profile.org_id)
            if existing is not None:
                await self.store.set(TRACKER_SERVICE_NAME, existing.credential_ref, raw)

                def apply(account):
                    account.credential_signature = signature
                    account.last_fetch_error = None

                await self.registry.update(existing.id, apply)
                logger.info("import_updated", account_id=existing.id)
                return ImportOutcome(existing.id, ImportStatus.UPDATED, existing.name)

            draft = AccountDraft(
                name=profile.email,
                org_id=profile.org_id,
                auth_method=AuthMethod.OAUTH,
                credential_signature=signature,
            )
            await self.store.set(TRACKER_SERVICE_NAME, draft.credential_ref, raw)
            account_id = await self.registry.insert(draft)
            logger.info("import_created", account_id=account_id)
            return ImportOutcome(account_id, ImportStatus.CREATED, profile.email)

    async def _refresh_stored_copy(self, credential_ref: str, raw: str) -> None:
        stored = await self.store.get(TRACKER_SERVICE_NAME, credential_ref)
        if stored != raw:
            await self.store.set(TRACKER_SERVICE_NAME, credential_ref, raw)
            logger.debug("stored_credential_refreshed")
