"""Swap a tracked account's login into the external tool's entry.

The swap is read-verify-write: the external entry is re-read under the
entry lock and only overwritten if its current contents belong to the
tracker. A login the user made directly in Claude Code since the last
import is never clobbered.
"""

from dataclasses import dataclass

from structlog import get_logger

from claude_tracker.accounts.models import Account, AuthMethod
from claude_tracker.accounts.registry import AccountRegistry
from claude_tracker.constants import TRACKER_SERVICE_NAME
from claude_tracker.credentials.base import CredentialStore
from claude_tracker.credentials.external import ExternalCredentialEntry
from claude_tracker.credentials.tokens import OAuthCredential, credential_signature
from claude_tracker.exceptions import (
    ConfigError,
    CredentialStoreError,
    SwapError,
    SwapErrorKind,
)


logger = get_logger(__name__)


@dataclass(frozen=True)
class SwapOutcome:
    account_id: int
    previous_account_id: int | None
    wrote_back: bool = False


class TokenSync:
    """Guarded writes of stored credentials into the external entry."""

    def __init__(
        self,
        registry: AccountRegistry,
        store: CredentialStore,
        entry: ExternalCredentialEntry,
    ):
        self.registry = registry
        self.store = store
        self.entry = entry

    async def swap(self, account_id: int, *, mark_active: bool = True) -> SwapOutcome:
        """Make ``account_id`` the external tool's login.

        Raises:
            AccountNotFoundError: If no account has this id
            SwapError: UNSUPPORTED_AUTH_METHOD, MISSING_CREDENTIAL,
                CONCURRENT_MODIFICATION or STORE_WRITE_FAILED
        """
        target = self.registry.get(account_id)
        if target.auth_method != AuthMethod.OAUTH:
            raise SwapError(
                SwapErrorKind.UNSUPPORTED_AUTH_METHOD,
                details={"account_id": account_id},
            )

        async with self.entry.lock:
            target_raw, target_credential = await self._load_target(target)
            target_signature = credential_signature(target_raw)

            try:
                current_raw = await self.entry.read()
            except CredentialStoreError as e:
                raise SwapError(
                    SwapErrorKind.STORE_WRITE_FAILED,
                    f"Failed to read Claude Code credentials: {e.message}",
                ) from e

            current_signature = credential_signature(current_raw)
            source = self.registry.find_by_signature(current_signature)

            if not (
                current_signature is None
                or source is not None
                or current_signature == target_signature
            ):
                logger.warning("swap_aborted_untracked_login", account_id=account_id)
                raise SwapError(
                    SwapErrorKind.CONCURRENT_MODIFICATION,
                    details={"account_id": account_id},
                )

            wrote_back = False
            if source is not None and source.id == target.id:
                # Already logged in; keep the fresher external copy
                if current_raw is not None and current_raw != target_raw:
                    wrote_back = await self._write_back(target, current_raw)
            else:
                try:
                    await self.entry.write(target_credential.merge_into(current_raw))
                except CredentialStoreError as e:
                    logger.error(
                        "swap_write_failed", account_id=account_id, error=e.message
                    )
                    raise SwapError(
                        SwapErrorKind.STORE_WRITE_FAILED,
                        f"Failed to write Claude Code credentials: {e.message}",
                    ) from e

                if source is not None and current_raw is not None:
                    wrote_back = await self._write_back(source, current_raw)

            self.entry.observe(target_signature)

        logger.info(
            "swap_completed",
            account_id=account_id,
            previous_account_id=source.id if source else None,
            wrote_back=wrote_back,
        )

        if mark_active:
            try:
                await self.registry.set_active(account_id)
            except ConfigError as e:
                logger.warning("swap_mark_active_not_saved", error=e.message)

        return SwapOutcome(
            account_id=account_id,
            previous_account_id=source.id if source else None,
            wrote_back=wrote_back,
        )

    async def _load_target(self, target: Account) -> tuple[str, OAuthCredential]:
        try:
            raw = await self.store.get(TRACKER_SERVICE_NAME, target.credential_ref)
        except CredentialStoreError as e:
            raise SwapError(
                SwapErrorKind.MISSING_CREDENTIAL,
                f"Could not read stored credential: {e.message}",
                details={"account_id": target.id},
            ) from e
        if raw is None:
            raise SwapError(
                SwapErrorKind.MISSING_CREDENTIAL, details={"account_id": target.id}
            )
        try:
            return raw, OAuthCredential.parse(raw)
        except ValueError as e:
            raise SwapError(
                SwapErrorKind.MISSING_CREDENTIAL,
                "Stored credential is not a valid OAuth login; re-import it",
                details={"account_id": target.id},
            ) from e

    async def _write_back(self, account: Account, raw: str) -> bool:
        """Save the external tool's fresher copy of ``account``'s login."""
        try:
            stored = await self.store.get(TRACKER_SERVICE_NAME, account.credential_ref)
            if stored == raw:
                return False
            await self.store.set(TRACKER_SERVICE_NAME, account.credential_ref, raw)
        except CredentialStoreError as e:
            logger.warning("swap_write_back_failed", account_id=account.id, error=e.message)
            return False
        await self.registry.set_signature(account.id, credential_signature(raw))
        logger.debug("swap_wrote_back", account_id=account.id)
        return True
