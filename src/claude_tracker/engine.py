"""Wires the tracker's components together.

One ``TrackerEngine`` owns the registry, the credential stores, the HTTP
client and the background jobs. Each user command maps to one method.
"""

from datetime import UTC, datetime, timedelta

import httpx
from structlog import get_logger

from claude_tracker.accounts.models import Account, AccountDraft, AuthMethod, UsageSnapshot
from claude_tracker.accounts.registry import AccountRegistry
from claude_tracker.config.settings import TrackerSettings
from claude_tracker.constants import TRACKER_SERVICE_NAME
from claude_tracker.credentials.base import CredentialStore
from claude_tracker.credentials.external import ExternalCredentialEntry
from claude_tracker.credentials.factory import create_external_entry, create_tracker_store
from claude_tracker.credentials.tokens import credential_signature
from claude_tracker.display.state import AccountView, project
from claude_tracker.display.ticker import DisplayTicker, RenderCallback
from claude_tracker.exceptions import CredentialStoreError, FetchError
from claude_tracker.services.importer import CredentialImporter, ImportOutcome
from claude_tracker.services.poller import UsagePoller
from claude_tracker.services.token_sync import SwapOutcome, TokenSync
from claude_tracker.services.usage_client import UsageClient


logger = get_logger(__name__)


class TrackerEngine:
    """Credential and usage state engine for several Claude accounts."""

    def __init__(
        self,
        settings: TrackerSettings,
        store: CredentialStore | None = None,
        entry: ExternalCredentialEntry | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the engine.

        Args:
            settings: Process settings
            store: Tracker credential store (default: platform backend)
            entry: External tool's entry (default: platform location)
            http_client: Shared HTTP client (default: one owned by the engine)
        """
        self.settings = settings
        self.store = store or create_tracker_store(settings)
        self.entry = entry or create_external_entry(settings)
        self.client = UsageClient(http_client, timeout=settings.http_timeout)
        self.registry = AccountRegistry(settings.config_path, self.store)
        self.importer = CredentialImporter(self.registry, self.store, self.entry, self.client)
        self.token_sync = TokenSync(self.registry, self.store, self.entry)
        self.poller = UsagePoller(self.registry, self.store, self.client)
        self.ticker: DisplayTicker | None = None

    @property
    def live_threshold(self) -> timedelta:
        return timedelta(seconds=self.settings.live_threshold_seconds)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Load accounts and compute their signatures, without scheduling."""
        self.registry.load()
        await self._refresh_signatures()
        await self.detect_logged_in()

    async def start(self, poll: bool = True) -> None:
        """Load state, start scheduled polling and run an initial poll.

        Raises:
            ConfigError: If the config cannot be read
        """
        await self.load()
        self.poller.start()
        if poll:
            await self.poller.poll_all()

    async def stop(self) -> None:
        """Stop the ticker and poller and release the HTTP client."""
        if self.ticker is not None:
            await self.ticker.stop()
            self.ticker = None
        self.poller.stop()
        await self.client.aclose()
        logger.debug("engine_stopped")

    async def __aenter__(self) -> "TrackerEngine":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _refresh_signatures(self) -> None:
        for account in self.registry.list():
            try:
                raw = await self.store.get(TRACKER_SERVICE_NAME, account.credential_ref)
            except CredentialStoreError as e:
                logger.warning(
                    "credential_read_failed", account_id=account.id, error=e.message
                )
                continue
            await self.registry.set_signature(account.id, credential_signature(raw))

    async def detect_logged_in(self) -> Account | None:
        """Re-read the external entry and return the account it holds, if any."""
        try:
            signature = await self.entry.refresh_signature()
        except CredentialStoreError as e:
            logger.warning("external_credential_read_failed", error=e.message)
            return None
        return self.registry.find_by_signature(signature)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def import_account(self) -> ImportOutcome:
        """Import the external tool's current login and poll it once.

        Raises:
            CredentialImportError: If the login cannot be imported
        """
        outcome = await self.importer.import_current()
        await self._poll_new(outcome.account_id)
        return outcome

    async def refresh_all(self) -> dict[int, UsageSnapshot | BaseException]:
        """Poll every account now and re-detect the logged-in account."""
        await self.detect_logged_in()
        return await self.poller.poll_all()

    async def refresh_one(self, account_id: int) -> UsageSnapshot:
        """Poll one account now.

        Raises:
            AccountNotFoundError: If no account has this id
            FetchError: If the fetch failed
        """
        return await self.poller.poll_one(account_id)

    async def swap(self, account_id: int) -> SwapOutcome:
        """Swap ``account_id`` into the external tool.

        Raises:
            AccountNotFoundError: If no account has this id
            SwapError: If the swap was refused or failed
        """
        return await self.token_sync.swap(account_id)

    async def mark_active(self, account_id: int | None) -> None:
        await self.registry.set_active(account_id)

    async def add_manual(self, name: str, org_id: str, session_key: str) -> int:
        """Track an account by browser session key.

        Raises:
            ValueError: If any field is blank
            CredentialStoreError: If the key cannot be stored
            ConfigError: If persisting fails
        """
        name, org_id, session_key = name.strip(), org_id.strip(), session_key.strip()
        if not name or not org_id or not session_key:
            raise ValueError("Name, organization id and session key are required")

        draft = AccountDraft(
            name=name,
            org_id=org_id,
            auth_method=AuthMethod.SESSION_KEY,
            credential_signature=credential_signature(session_key),
        )
        await self.store.set(TRACKER_SERVICE_NAME, draft.credential_ref, session_key)
        account_id = await self.registry.insert(draft)
        await self._poll_new(account_id)
        return account_id

    async def edit(
        self,
        account_id: int,
        name: str | None = None,
        org_id: str | None = None,
        secret: str | None = None,
    ) -> Account:
        """Edit an account's name, org id or stored credential.

        A new credential is written before any registry change, so a store
        failure leaves the account as it was.

        Raises:
            AccountNotFoundError: If no account has this id
            CredentialStoreError: If the credential cannot be stored
            ConfigError: If persisting fails
        """
        account = self.registry.get(account_id)
        new_signature = None
        if secret is not None and secret.strip():
            secret = secret.strip()
            await self.store.set(TRACKER_SERVICE_NAME, account.credential_ref, secret)
            new_signature = credential_signature(secret)

        def apply(acct: Account) -> None:
            if name is not None and name.strip():
                acct.name = name.strip()
            if org_id is not None and org_id.strip():
                acct.org_id = org_id.strip()
            if new_signature is not None:
                acct.credential_signature = new_signature
                acct.last_fetch_error = None

        updated = await self.registry.update(account_id, apply)
        if new_signature is not None:
            await self._poll_new(account_id)
        return updated

    async def delete(self, account_id: int) -> Account:
        """Stop tracking an account and delete its stored credential.

        Raises:
            AccountNotFoundError: If no account has this id
            ConfigError: If persisting fails
        """
        account = await self.registry.delete(account_id)
        self.poller.sync_jobs()
        return account

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def views(self, now: datetime | None = None) -> list[AccountView]:
        """Project every account for display from cached state."""
        now = now or datetime.now(UTC)
        signature = self.entry.observed_signature
        return [
            project(account, now, signature, self.live_threshold)
            for account in self.registry.list()
        ]

    def start_ticker(self, render: RenderCallback) -> DisplayTicker:
        """Start calling ``render`` with fresh rows every tick."""
        if self.ticker is None:
            self.ticker = DisplayTicker(
                self.registry,
                self.entry,
                render,
                interval=self.settings.tick_interval,
                live_threshold=self.live_threshold,
            )
        self.ticker.start()
        return self.ticker

    async def _poll_new(self, account_id: int) -> None:
        self.poller.sync_jobs()
        self.poller.resume(account_id)
        try:
            await self.poller.poll_one(account_id)
        except FetchError as e:
            logger.info("initial_poll_failed", account_id=account_id, error=e.message)
