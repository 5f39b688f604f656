"""Claude Code's own ``.credentials.json`` as a single-entry store."""

import contextlib
import os
from pathlib import Path

from structlog import get_logger

from claude_tracker.credentials.base import CredentialStore
from claude_tracker.exceptions import CredentialStoreError


logger = get_logger(__name__)


def write_private_file(path: Path, payload: bytes) -> None:
    """Atomically write ``payload`` to ``path`` with owner-only permissions.

    Raises:
        OSError: If the write or rename fails; the target is untouched
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except OSError:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise
    with contextlib.suppress(OSError):
        path.chmod(0o600)


class CredentialsFileStore(CredentialStore):
    """The external tool's credentials file on platforms without a keychain.

    The file holds exactly one entry, so ``service`` and ``key`` are ignored.
    Contents are passed through verbatim.
    """

    def __init__(self, file_path: Path):
        self.file_path = Path(file_path).expanduser()

    async def get(self, service: str, key: str | None) -> str | None:
        try:
            return self.file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CredentialStoreError(
                f"Failed to read {self.file_path}: {e}",
                details={"path": str(self.file_path)},
            ) from e

    async def set(self, service: str, key: str, secret: str) -> None:
        try:
            write_private_file(self.file_path, secret.encode("utf-8"))
        except OSError as e:
            logger.error("credentials_file_write_failed", path=str(self.file_path), error=str(e))
            raise CredentialStoreError(
                f"Failed to write {self.file_path}: {e}",
                details={"path": str(self.file_path)},
            ) from e

    async def delete(self, service: str, key: str) -> bool:
        try:
            self.file_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CredentialStoreError(
                f"Failed to delete {self.file_path}: {e}",
                details={"path": str(self.file_path)},
            ) from e
        return True

    def get_location(self) -> str:
        return str(self.file_path)
