"""Account registry: the single source of truth for tracked accounts.

All writes (poll results, imports, swaps, manual edits) pass through one
asyncio lock so concurrent completions cannot interleave into an
inconsistent record.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from pathlib import Path

from structlog import get_logger

from claude_tracker.accounts.config_file import (
    AccountRecord,
    TrackerConfig,
    TrackerConfigSettings,
    load_config,
    save_config,
)
from claude_tracker.accounts.models import (
    Account,
    AccountDraft,
    AuthMethod,
    FetchFailure,
    UsageSnapshot,
)
from claude_tracker.constants import TRACKER_SERVICE_NAME
from claude_tracker.credentials.base import CredentialStore
from claude_tracker.exceptions import AccountNotFoundError, ConfigError, CredentialStoreError


logger = get_logger(__name__)

AccountMutation = Callable[[Account], None]


def _persisted_fields(account: Account) -> tuple[str, str, AuthMethod]:
    return (account.name, account.org_id, account.auth_method)


class AccountRegistry:
    """In-memory table of accounts backed by the config file.

    Features:
    - Stable integer ids, never reused while the account exists
    - Serialized mutations (single writer)
    - Atomic persistence; a failed save is retried on the next mutation
    - At most one active account
    """

    def __init__(
        self,
        config_path: Path,
        store: CredentialStore,
        autosave: bool = True,
    ):
        """Initialize the registry.

        Args:
            config_path: Path to config.json
            store: Credential store holding the tracker's own entries
            autosave: Persist automatically after mutations of persisted fields
        """
        self._config_path = Path(config_path).expanduser()
        self._store = store
        self._autosave = autosave
        self._accounts: dict[int, Account] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()
        self._dirty = False
        self.settings = TrackerConfigSettings()

    @property
    def config_path(self) -> Path:
        """Get the config file path."""
        return self._config_path

    @property
    def store(self) -> CredentialStore:
        """Credential store for the tracker's own entries."""
        return self._store

    @property
    def active_id(self) -> int | None:
        """Id of the active account, if any."""
        return self.settings.active_account

    @property
    def is_dirty(self) -> bool:
        """Whether in-memory state has changes the last save did not write."""
        return self._dirty

    def __len__(self) -> int:
        return len(self._accounts)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list(self) -> list[Account]:
        """Get all accounts in creation order."""
        return list(self._accounts.values())

    def get(self, account_id: int) -> Account:
        """Get an account by id.

        Raises:
            AccountNotFoundError: If no account has this id
        """
        account = self._accounts.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def find_by_signature(
        self,
        signature: str | None,
        auth_method: AuthMethod | None = AuthMethod.OAUTH,
    ) -> Account | None:
        """Find the account whose stored credential has this signature."""
        if signature is None:
            return None
        for account in self._accounts.values():
            if auth_method is not None and account.auth_method != auth_method:
                continue
            if account.credential_signature == signature:
                return account
        return None

    def find_by_identity(
        self,
        name: str,
        org_id: str,
        auth_method: AuthMethod = AuthMethod.OAUTH,
    ) -> Account | None:
        """Find an account by (name, org_id, auth_method)."""
        for account in self._accounts.values():
            if (
                account.name == name
                and account.org_id == org_id
                and account.auth_method == auth_method
            ):
                return account
        return None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load accounts from the config file.

        Preserves runtime state (snapshots, fetch bookkeeping, signatures)
        for accounts that were already loaded under the same id.

        Raises:
            ConfigError: If the file is unreadable or its account list invalid
        """
        config = load_config(self._config_path)

        accounts: dict[int, Account] = {}
        used_ids = {r.id for r in config.accounts if r.id is not None}
        next_id = max(used_ids, default=0) + 1

        for record in config.accounts:
            account_id = record.id
            if account_id is None or account_id in accounts:
                # Legacy record without an id, or a duplicate id
                account_id = next_id
                next_id += 1

            account = Account(
                id=account_id,
                name=record.name,
                org_id=record.org_id,
                auth_method=record.auth_method,
                # Legacy configs keyed the store by account name
                credential_ref=record.credential_ref or record.name,
            )

            existing = self._accounts.get(account_id)
            if existing is not None and existing.credential_ref == account.credential_ref:
                account.usage_snapshot = existing.usage_snapshot
                account.last_fetch_at = existing.last_fetch_at
                account.last_fetch_error = existing.last_fetch_error
                account.credential_signature = existing.credential_signature

            accounts[account_id] = account

        settings = config.settings
        if settings.active_account is not None and settings.active_account not in accounts:
            logger.warning(
                "active_account_not_found",
                active_account=settings.active_account,
            )
            settings = settings.model_copy(update={"active_account": None})

        for account in accounts.values():
            account.is_active = account.id == settings.active_account

        self._accounts = accounts
        self._next_id = max(accounts, default=0) + 1
        self.settings = settings
        self._dirty = False

        logger.info(
            "accounts_loaded",
            path=str(self._config_path),
            count=len(accounts),
            poll_interval_secs=settings.poll_interval_secs,
        )

    def to_config(self) -> TrackerConfig:
        """Build the persisted representation (no secrets)."""
        return TrackerConfig(
            settings=self.settings,
            accounts=[
                AccountRecord(
                    id=account.id,
                    name=account.name,
                    org_id=account.org_id,
                    auth_method=account.auth_method,
                    credential_ref=account.credential_ref,
                )
                for account in self._accounts.values()
            ],
        )

    def persist(self) -> None:
        """Write settings and all accounts to the config file atomically.

        Raises:
            ConfigError: If the write fails; the registry stays dirty
        """
        try:
            save_config(self.to_config(), self._config_path)
        except ConfigError:
            self._dirty = True
            raise
        self._dirty = False

    def _autopersist(self, changed: bool) -> None:
        if self._autosave and (changed or self._dirty):
            self.persist()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def insert(self, draft: AccountDraft) -> int:
        """Create an account from a draft.

        Returns:
            The new account's id

        Raises:
            ConfigError: If persisting fails; the account stays in memory
        """
        async with self._lock:
            account_id = self._next_id
            self._next_id += 1
            self._accounts[account_id] = Account(
                id=account_id,
                name=draft.name,
                org_id=draft.org_id,
                auth_method=draft.auth_method,
                credential_ref=draft.credential_ref,
                credential_signature=draft.credential_signature,
            )
            logger.info(
                "account_inserted",
                account_id=account_id,
                auth_method=draft.auth_method,
            )
            self._autopersist(changed=True)
            return account_id

    async def update(self, account_id: int, mutation: AccountMutation) -> Account:
        """Apply a mutation to one account atomically.

        The mutation runs on a copy that replaces the stored record only if
        it leaves the identity fields intact.

        Raises:
            AccountNotFoundError: If no account has this id
            ValueError: If the mutation changes id, credential_ref or is_active
            ConfigError: If persisting a changed record fails
        """
        async with self._lock:
            current = self.get(account_id)
            candidate = copy.copy(current)
            mutation(candidate)

            if candidate.id != current.id:
                raise ValueError("Account id cannot change")
            if candidate.credential_ref != current.credential_ref:
                raise ValueError("Account credential_ref cannot change")
            if candidate.is_active != current.is_active:
                raise ValueError("Use set_active() to change the active account")

            self._accounts[account_id] = candidate
            changed = _persisted_fields(candidate) != _persisted_fields(current)
            if changed:
                logger.info("account_updated", account_id=account_id)
            self._autopersist(changed=changed)
            return candidate

    async def install_snapshot(self, account_id: int, snapshot: UsageSnapshot) -> bool:
        """Install a successful fetch result.

        Sets the snapshot and fetch time and clears the error in one step.
        A snapshot older than the installed one is dropped, so overlapping
        manual and scheduled polls cannot roll usage back.

        Returns:
            False if the account was deleted while the fetch was in flight,
            or a newer snapshot is already installed
        """
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return False
            current = account.usage_snapshot
            if current is not None and current.captured_at > snapshot.captured_at:
                logger.debug("usage_snapshot_superseded", account_id=account_id)
                return False
            account.usage_snapshot = snapshot
            account.last_fetch_at = snapshot.captured_at
            account.last_fetch_error = None
            return True

    async def record_fetch_error(self, account_id: int, failure: FetchFailure) -> bool:
        """Record a failed fetch, keeping the previous snapshot.

        Returns:
            False if the account was deleted while the fetch was in flight
        """
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return False
            account.last_fetch_error = failure
            return True

    async def set_signature(self, account_id: int, signature: str | None) -> None:
        """Record the signature of the account's stored credential."""
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is not None:
                account.credential_signature = signature

    async def set_active(self, account_id: int | None) -> None:
        """Mark one account active, clearing any previous holder.

        Args:
            account_id: Account to activate, or None to clear the selection

        Raises:
            AccountNotFoundError: If no account has this id
            ConfigError: If persisting fails
        """
        async with self._lock:
            if account_id is not None:
                self.get(account_id)

            previous = self.settings.active_account
            for account in self._accounts.values():
                account.is_active = account.id == account_id
            self.settings = self.settings.model_copy(update={"active_account": account_id})

            if previous != account_id:
                logger.info(
                    "active_account_changed",
                    previous=previous,
                    active=account_id,
                )
            self._autopersist(changed=previous != account_id)

    async def delete(self, account_id: int) -> Account:
        """Delete an account and request deletion of its store entry.

        Deleting the active account clears the selection. A store failure
        is logged and does not undo the delete.

        Returns:
            The removed account

        Raises:
            AccountNotFoundError: If no account has this id
            ConfigError: If persisting fails
        """
        async with self._lock:
            account = self._accounts.pop(account_id, None)
            if account is None:
                raise AccountNotFoundError(account_id)

            if self.settings.active_account == account_id:
                self.settings = self.settings.model_copy(update={"active_account": None})

            logger.info("account_deleted", account_id=account_id)

            try:
                self._autopersist(changed=True)
            finally:
                await self._delete_credential(account)

            return account

    async def _delete_credential(self, account: Account) -> None:
        try:
            deleted = await self._store.delete(TRACKER_SERVICE_NAME, account.credential_ref)
        except CredentialStoreError as e:
            logger.warning(
                "credential_delete_failed",
                account_id=account.id,
                error=e.message,
            )
            return
        if not deleted:
            logger.debug("credential_already_absent", account_id=account.id)
