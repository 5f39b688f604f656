"""The external tool's single credential entry."""

import asyncio

from structlog import get_logger

from claude_tracker.credentials.base import CredentialStore
from claude_tracker.credentials.tokens import credential_signature


logger = get_logger(__name__)


class ExternalCredentialEntry:
    """Claude Code's current login, wherever the platform keeps it.

    Import and swap both hold ``lock`` for their whole read-check-write
    sequence. ``observed_signature`` caches the signature of the contents
    last read or written so status queries never touch the store.
    """

    def __init__(self, store: CredentialStore, service: str, key: str | None = None):
        self.store = store
        self.service = service
        # Reads match any account when no key is given; writes need one
        self.key = key
        self.lock = asyncio.Lock()
        self.observed_signature: str | None = None

    async def read(self) -> str | None:
        """Read the entry's raw contents.

        Raises:
            CredentialStoreError: If the backend fails
        """
        return await self.store.get(self.service, self.key)

    async def write(self, secret: str) -> None:
        """Replace the entry's contents.

        Raises:
            CredentialStoreError: If the backend fails
        """
        await self.store.set(self.service, self.key or "", secret)

    def observe(self, signature: str | None) -> None:
        """Record the signature of the contents just read or written."""
        if signature != self.observed_signature:
            logger.debug("external_credential_changed")
        self.observed_signature = signature

    async def refresh_signature(self) -> str | None:
        """Re-read the entry and cache its signature.

        Raises:
            CredentialStoreError: If the backend fails
        """
        signature = credential_signature(await self.read())
        self.observe(signature)
        return signature

    def get_location(self) -> str:
        return f"{self.service} ({self.store.get_location()})"
