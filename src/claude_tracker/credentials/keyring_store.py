"""Credential store backed by the platform keyring.

Uses the ``keyring`` package, which picks the macOS Keychain, Windows
Credential Locker or a Secret Service provider on Linux. Calls block, so
they run in the default executor.
"""

import keyring
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError
from structlog import get_logger

from claude_tracker.core.async_utils import run_in_executor
from claude_tracker.credentials.base import CredentialStore
from claude_tracker.exceptions import CredentialStoreError


logger = get_logger(__name__)


class KeyringCredentialStore(CredentialStore):
    """Secrets keyed by (service, username) in the system keyring."""

    def __init__(self, backend: KeyringBackend | None = None):
        """Initialize the store.

        Args:
            backend: Keyring backend to use (default: the one ``keyring`` selects)
        """
        self._backend = backend

    @property
    def backend(self) -> KeyringBackend:
        return self._backend or keyring.get_keyring()

    def _get(self, service: str, key: str | None) -> str | None:
        if key is None:
            credential = self.backend.get_credential(service, None)
            return credential.password if credential is not None else None
        return self.backend.get_password(service, key)

    def _delete(self, service: str, key: str) -> bool:
        backend = self.backend
        if backend.get_password(service, key) is None:
            return False
        backend.delete_password(service, key)
        return True

    async def get(self, service: str, key: str | None) -> str | None:
        try:
            return await run_in_executor(self._get, service, key)
        except KeyringError as e:
            logger.error("keyring_read_failed", service=service, error=str(e))
            raise CredentialStoreError(
                f"Keyring read failed for {service}: {e}",
                details={"service": service},
            ) from e

    async def set(self, service: str, key: str, secret: str) -> None:
        try:
            await run_in_executor(self.backend.set_password, service, key, secret)
        except KeyringError as e:
            logger.error("keyring_write_failed", service=service, error=str(e))
            raise CredentialStoreError(
                f"Keyring write failed for {service}: {e}",
                details={"service": service},
            ) from e
        logger.debug("keyring_entry_saved", service=service)

    async def delete(self, service: str, key: str) -> bool:
        try:
            deleted = await run_in_executor(self._delete, service, key)
        except KeyringError as e:
            raise CredentialStoreError(
                f"Keyring delete failed for {service}: {e}",
                details={"service": service},
            ) from e
        if deleted:
            logger.debug("keyring_entry_deleted", service=service)
        return deleted

    def get_location(self) -> str:
        backend = self.backend
        return f"{type(backend).__module__}.{type(backend).__name__}"
