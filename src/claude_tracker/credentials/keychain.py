"""macOS keychain credential store backed by the ``security`` tool."""

import asyncio

from structlog import get_logger

from claude_tracker.credentials.base import CredentialStore
from claude_tracker.exceptions import CredentialStoreError


logger = get_logger(__name__)

SECURITY_BINARY = "security"

# errSecItemNotFound
_ITEM_NOT_FOUND = 44

_COMMAND_TIMEOUT_SECONDS = 10.0


class KeychainCredentialStore(CredentialStore):
    """Generic-password items in the login keychain.

    Service maps to the item's service attribute and key to its account
    attribute.
    """

    def __init__(self, binary: str = SECURITY_BINARY, timeout: float = _COMMAND_TIMEOUT_SECONDS):
        self._binary = binary
        self._timeout = timeout

    async def _run(self, *args: str) -> tuple[int, str, str]:
        try:
            process = await asyncio.create_subprocess_exec(
                self._binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CredentialStoreError(
                f"Failed to run {self._binary}: {e}",
                details={"command": args[0]},
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self._timeout
            )
        except TimeoutError as e:
            process.kill()
            await process.wait()
            raise CredentialStoreError(
                f"Keychain command timed out: {args[0]}",
                details={"command": args[0]},
            ) from e

        return (
            process.returncode if process.returncode is not None else -1,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace").strip(),
        )

    async def get(self, service: str, key: str | None) -> str | None:
        args = ["find-generic-password", "-s", service]
        if key is not None:
            args += ["-a", key]
        args.append("-w")

        code, stdout, stderr = await self._run(*args)
        if code == _ITEM_NOT_FOUND:
            return None
        if code != 0:
            logger.error("keychain_read_failed", service=service, code=code, error=stderr)
            raise CredentialStoreError(
                f"Keychain read failed for {service}: {stderr or code}",
                details={"service": service, "code": code},
            )
        return stdout.rstrip("\n")

    async def set(self, service: str, key: str, secret: str) -> None:
        code, _, stderr = await self._run(
            "add-generic-password", "-U", "-s", service, "-a", key, "-w", secret
        )
        if code != 0:
            logger.error("keychain_write_failed", service=service, code=code, error=stderr)
            raise CredentialStoreError(
                f"Keychain write failed for {service}: {stderr or code}",
                details={"service": service, "code": code},
            )
        logger.debug("keychain_entry_saved", service=service)

    async def delete(self, service: str, key: str) -> bool:
        code, _, stderr = await self._run(
            "delete-generic-password", "-s", service, "-a", key
        )
        if code == _ITEM_NOT_FOUND:
            return False
        if code != 0:
            raise CredentialStoreError(
                f"Keychain delete failed for {service}: {stderr or code}",
                details={"service": service, "code": code},
            )
        logger.debug("keychain_entry_deleted", service=service)
        return True

    def get_location(self) -> str:
        return "macOS login keychain"
