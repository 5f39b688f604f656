# tests/unit/services/test_importer.py
"""Tests for CredentialImporter."""

import httpx
import pytest

from claude_tracker.accounts.models import AuthMethod
from claude_tracker.constants import TRACKER_SERVICE_NAME
from claude_tracker.credentials.tokens import credential_signature
from claude_tracker.exceptions import CredentialImportError, ImportErrorKind
from claude_tracker.services.importer import CredentialImporter, ImportStatus
from claude_tracker.services.usage_client import UsageClient
from conftest import mock_http, oauth_blob, profile_body


def profile_client(calls: list[str], email: str = "alice@example.com", org: str = "org-1"):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200, json=profile_body(email, org))

    return UsageClient(mock_http(handler))


@pytest.fixture
def calls() -> list[str]:
    return []


@pytest.fixture
def importer(registry, store, entry, calls) -> CredentialImporter:
    return CredentialImporter(registry, store, entry, profile_client(calls))


@pytest.mark.unit
class TestImportCurrent:
    """Tests for import_current."""

    @pytest.mark.asyncio
    async def test_creates_account(self, importer, registry, store, entry, calls) -> None:
        blob = oauth_blob("at-1", "rt-1")
        await entry.write(blob)

        outcome = await importer.import_current()

        assert outcome.status == ImportStatus.CREATED
        account = registry.get(outcome.account_id)
        assert account.name == "alice@example.com"
        assert account.org_id == "org-1"
        assert account.auth_method == AuthMethod.OAUTH
        assert account.credential_signature == credential_signature(blob)
        assert await store.get(TRACKER_SERVICE_NAME, account.credential_ref) == blob
        assert entry.observed_signature == credential_signature(blob)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_reimport_matches_without_profile_call(
        self, importer, registry, entry, calls
    ) -> None:
        await entry.write(oauth_blob("at-1", "rt-1"))
        first = await importer.import_current()

        second = await importer.import_current()

        assert second.status == ImportStatus.MATCHED
        assert second.account_id == first.account_id
        assert len(registry) == 1
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_match_refreshes_stored_copy(self, importer, registry, store, entry) -> None:
        await entry.write(oauth_blob("at-old", "rt-1"))
        first = await importer.import_current()
        refreshed = oauth_blob("at-new", "rt-1")
        await entry.write(refreshed)

        outcome = await importer.import_current()

        ref = registry.get(first.account_id).credential_ref
        assert outcome.status == ImportStatus.MATCHED
        assert await store.get(TRACKER_SERVICE_NAME, ref) == refreshed

    @pytest.mark.asyncio
    async def test_same_identity_with_new_tokens_updates(
        self, importer, registry, store, entry, calls
    ) -> None:
        await entry.write(oauth_blob("at-1", "rt-1"))
        first = await importer.import_current()
        rotated = oauth_blob("at-2", "rt-2")
        await entry.write(rotated)

        outcome = await importer.import_current()

        account = registry.get(first.account_id)
        assert outcome.status == ImportStatus.UPDATED
        assert outcome.account_id == first.account_id
        assert len(registry) == 1
        assert account.credential_signature == credential_signature(rotated)
        assert await store.get(TRACKER_SERVICE_NAME, account.credential_ref) == rotated
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_absent_entry(self, importer, registry) -> None:
        with pytest.raises(CredentialImportError) as exc_info:
            await importer.import_current()

        assert exc_info.value.kind == ImportErrorKind.NO_EXTERNAL_CREDENTIAL
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_unparseable_entry(self, importer, entry) -> None:
        await entry.write("garbage")

        with pytest.raises(CredentialImportError) as exc_info:
            await importer.import_current()

        assert exc_info.value.kind == ImportErrorKind.NO_EXTERNAL_CREDENTIAL

    @pytest.mark.asyncio
    async def test_profile_failure_creates_nothing(self, registry, store, entry) -> None:
        importer = CredentialImporter(
            registry,
            store,
            entry,
            UsageClient(mock_http(lambda r: httpx.Response(401))),
        )
        await entry.write(oauth_blob("at-1", "rt-1"))

        with pytest.raises(CredentialImportError) as exc_info:
            await importer.import_current()

        assert exc_info.value.kind == ImportErrorKind.PROFILE_FETCH_FAILED
        assert len(registry) == 0
        assert store.entries == {}

    @pytest.mark.asyncio
    async def test_different_logins_create_separate_accounts(
        self, registry, store, entry
    ) -> None:
        emails = iter(["a@example.com", "b@example.com"])

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=profile_body(next(emails), "org-1"))

        importer = CredentialImporter(registry, store, entry, UsageClient(mock_http(handler)))

        await entry.write(oauth_blob("at-a", "rt-a"))
        a = await importer.import_current()
        await entry.write(oauth_blob("at-b", "rt-b"))
        b = await importer.import_current()

        assert a.account_id != b.account_id
        assert {acct.name for acct in registry.list()} == {"a@example.com", "b@example.com"}
        refs = {acct.credential_ref for acct in registry.list()}
        assert len(refs) == 2
