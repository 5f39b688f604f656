"""Abstract base class for credential stores."""

from abc import ABC, abstractmethod


class CredentialStore(ABC):
    """Abstract interface for secure credential storage.

    Entries are opaque secret strings keyed by (service, key).
    """

    @abstractmethod
    async def get(self, service: str, key: str | None) -> str | None:
        """Load a secret.

        Args:
            service: Service name (namespace)
            key: Account key within the service; None matches any entry

        Returns:
            The secret if the entry exists, None otherwise

        Raises:
            CredentialStoreError: If the backend fails
        """

    @abstractmethod
    async def set(self, service: str, key: str, secret: str) -> None:
        """Create or replace a secret.

        Raises:
            CredentialStoreError: If the backend fails
        """

    @abstractmethod
    async def delete(self, service: str, key: str) -> bool:
        """Delete a secret.

        Returns:
            True if an entry was deleted, False if none existed

        Raises:
            CredentialStoreError: If the backend fails
        """

    @abstractmethod
    def get_location(self) -> str:
        """Get the storage location description.

        Returns:
            Human-readable description of where credentials are stored
        """
