"""Shared fixtures and fakes for the tracker tests."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import httpx
import orjson
import pytest

from claude_tracker.accounts.registry import AccountRegistry
from claude_tracker.constants import CLAUDE_CODE_SERVICE_NAME
from claude_tracker.credentials.base import CredentialStore
from claude_tracker.credentials.external import ExternalCredentialEntry
from claude_tracker.exceptions import CredentialStoreError


class MemoryCredentialStore(CredentialStore):
    """In-memory store with switchable failures."""

    def __init__(self) -> None:
        self.entries: dict[tuple[str, str], str] = {}
        self.fail_get = False
        self.fail_set = False
        self.fail_delete = False
        self.set_calls: list[tuple[str, str]] = []
        self.deleted: list[tuple[str, str]] = []

    async def get(self, service: str, key: str | None) -> str | None:
        if self.fail_get:
            raise CredentialStoreError("get failed")
        if key is None:
            for (svc, _), secret in self.entries.items():
                if svc == service:
                    return secret
            return None
        return self.entries.get((service, key))

    async def set(self, service: str, key: str, secret: str) -> None:
        if self.fail_set:
            raise CredentialStoreError("set failed")
        self.set_calls.append((service, key))
        self.entries[(service, key)] = secret

    async def delete(self, service: str, key: str) -> bool:
        self.deleted.append((service, key))
        if self.fail_delete:
            raise CredentialStoreError("delete failed")
        return self.entries.pop((service, key), None) is not None

    def get_location(self) -> str:
        return "memory"


def oauth_blob(
    access_token: str,
    refresh_token: str | None = None,
    expires_at: int = 9999999999999,
    **top_level: Any,
) -> str:
    """Render a credential the way Claude Code stores it."""
    oauth: dict[str, Any] = {"accessToken": access_token, "expiresAt": expires_at}
    if refresh_token is not None:
        oauth["refreshToken"] = refresh_token
    return orjson.dumps({"claudeAiOauth": oauth, **top_level}).decode()


def usage_body(
    five_hour: float = 42,
    five_hour_resets: str | None = "2030-01-01T05:00:00Z",
    seven_day: float | None = 10,
    seven_day_resets: str | None = "2030-01-07T00:00:00Z",
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "five_hour": {"utilization": five_hour, "resets_at": five_hour_resets}
    }
    if seven_day is not None:
        body["seven_day"] = {"utilization": seven_day, "resets_at": seven_day_resets}
    return body


def profile_body(email: str = "alice@example.com", org_id: str = "org-1") -> dict[str, Any]:
    return {"account": {"email": email}, "organization": {"uuid": org_id}}


Handler = Callable[[httpx.Request], httpx.Response]


def mock_http(handler: Handler) -> httpx.AsyncClient:
    """HTTP client whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def bearer(request: httpx.Request) -> str:
    return request.headers.get("Authorization", "").removeprefix("Bearer ")


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2030, 1, 1, 3, 0, 0, tzinfo=UTC)


@pytest.fixture
def store() -> MemoryCredentialStore:
    """Tracker's own credential namespace."""
    return MemoryCredentialStore()


@pytest.fixture
def external_store() -> MemoryCredentialStore:
    """Backend of the external tool's entry."""
    return MemoryCredentialStore()


@pytest.fixture
def entry(external_store: MemoryCredentialStore) -> ExternalCredentialEntry:
    return ExternalCredentialEntry(external_store, CLAUDE_CODE_SERVICE_NAME, "user")


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "claude-tracker" / "config.json"


@pytest.fixture
def registry(config_path: Path, store: MemoryCredentialStore) -> AccountRegistry:
    """Loaded registry over an empty config."""
    reg = AccountRegistry(config_path, store)
    reg.load()
    return reg


@pytest.fixture
def recent(fixed_now: datetime) -> Callable[[int], datetime]:
    """Timestamp ``seconds`` before ``fixed_now``."""

    def _at(seconds: int) -> datetime:
        return fixed_now - timedelta(seconds=seconds)

    return _at
