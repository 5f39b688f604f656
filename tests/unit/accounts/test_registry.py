# tests/unit/accounts/test_registry.py
"""Tests for AccountRegistry mutations and persistence."""

import asyncio
import copy
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import orjson
import pytest

from claude_tracker.accounts.models import (
    AccountDraft,
    AuthMethod,
    FetchFailure,
    UsageSnapshot,
    UsageWindow,
)
from claude_tracker.accounts.registry import AccountRegistry
from claude_tracker.constants import TRACKER_SERVICE_NAME
from claude_tracker.exceptions import AccountNotFoundError, ConfigError, FetchErrorKind


def draft(name: str = "alice", auth_method: AuthMethod = AuthMethod.OAUTH) -> AccountDraft:
    return AccountDraft(name=name, org_id=f"org-{name}", auth_method=auth_method)


def snapshot(percent: int, captured_at: datetime) -> UsageSnapshot:
    return UsageSnapshot(
        five_hour=UsageWindow(percent, datetime(2030, 1, 1, 5, tzinfo=UTC)),
        seven_day=None,
        captured_at=captured_at,
    )


@pytest.mark.unit
class TestInsert:
    """Tests for id assignment."""

    @pytest.mark.asyncio
    async def test_ids_are_unique_and_increasing(self, registry: AccountRegistry) -> None:
        ids = [await registry.insert(draft(f"user{i}")) for i in range(3)]

        assert ids == [1, 2, 3]
        assert [a.id for a in registry.list()] == ids

    @pytest.mark.asyncio
    async def test_concurrent_inserts_get_distinct_ids(
        self, registry: AccountRegistry
    ) -> None:
        ids = await asyncio.gather(*(registry.insert(draft(f"u{i}")) for i in range(10)))

        assert len(set(ids)) == 10

    @pytest.mark.asyncio
    async def test_ids_not_reused_after_delete(self, registry: AccountRegistry) -> None:
        await registry.insert(draft("a"))
        second = await registry.insert(draft("b"))
        await registry.delete(second)

        third = await registry.insert(draft("c"))

        assert third == 3

    @pytest.mark.asyncio
    async def test_insert_persists(self, registry: AccountRegistry, config_path: Path) -> None:
        await registry.insert(draft("alice"))

        data = orjson.loads(config_path.read_bytes())

        assert [a["name"] for a in data["accounts"]] == ["alice"]


@pytest.mark.unit
class TestSetActive:
    """Tests for the single active account."""

    @pytest.mark.asyncio
    async def test_at_most_one_active(self, registry: AccountRegistry) -> None:
        a = await registry.insert(draft("a"))
        b = await registry.insert(draft("b"))

        await registry.set_active(a)
        await registry.set_active(b)

        assert [acct.id for acct in registry.list() if acct.is_active] == [b]
        assert registry.active_id == b

    @pytest.mark.asyncio
    async def test_clear_selection(self, registry: AccountRegistry) -> None:
        a = await registry.insert(draft("a"))
        await registry.set_active(a)

        await registry.set_active(None)

        assert not any(acct.is_active for acct in registry.list())

    @pytest.mark.asyncio
    async def test_unknown_id_raises(self, registry: AccountRegistry) -> None:
        with pytest.raises(AccountNotFoundError):
            await registry.set_active(99)


@pytest.mark.unit
class TestDelete:
    """Tests for delete."""

    @pytest.mark.asyncio
    async def test_delete_requests_store_deletion(self, registry: AccountRegistry, store) -> None:
        account_id = await registry.insert(draft("a"))
        ref = registry.get(account_id).credential_ref
        await store.set(TRACKER_SERVICE_NAME, ref, "secret")

        await registry.delete(account_id)

        assert (TRACKER_SERVICE_NAME, ref) in store.deleted
        assert await store.get(TRACKER_SERVICE_NAME, ref) is None

    @pytest.mark.asyncio
    async def test_delete_leaves_other_accounts_unchanged(
        self, registry: AccountRegistry, fixed_now: datetime
    ) -> None:
        a = await registry.insert(draft("a"))
        b = await registry.insert(draft("b"))
        await registry.install_snapshot(b, snapshot(55, fixed_now))
        before = copy.copy(registry.get(b))

        await registry.delete(a)

        after = registry.get(b)
        assert after == before
        assert after.usage_snapshot is not None

    @pytest.mark.asyncio
    async def test_delete_active_clears_selection(self, registry: AccountRegistry) -> None:
        a = await registry.insert(draft("a"))
        await registry.set_active(a)

        await registry.delete(a)

        assert registry.active_id is None

    @pytest.mark.asyncio
    async def test_store_failure_does_not_stop_delete(
        self, registry: AccountRegistry, store
    ) -> None:
        a = await registry.insert(draft("a"))
        store.fail_delete = True

        await registry.delete(a)

        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_unknown_id_raises(self, registry: AccountRegistry) -> None:
        with pytest.raises(AccountNotFoundError):
            await registry.delete(7)


@pytest.mark.unit
class TestFetchResults:
    """Tests for installing poll results."""

    @pytest.mark.asyncio
    async def test_install_sets_all_fields(
        self, registry: AccountRegistry, fixed_now: datetime
    ) -> None:
        a = await registry.insert(draft("a"))
        await registry.record_fetch_error(
            a, FetchFailure(FetchErrorKind.TRANSIENT, "Timeout", fixed_now)
        )

        installed = await registry.install_snapshot(a, snapshot(87, fixed_now))

        account = registry.get(a)
        assert installed is True
        assert account.usage_snapshot.five_hour.percent == 87
        assert account.last_fetch_at == fixed_now
        assert account.last_fetch_error is None

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_snapshot(
        self, registry: AccountRegistry, fixed_now: datetime
    ) -> None:
        a = await registry.insert(draft("a"))
        good = snapshot(40, fixed_now)
        await registry.install_snapshot(a, good)

        await registry.record_fetch_error(
            a, FetchFailure(FetchErrorKind.TRANSIENT, "No network", fixed_now)
        )

        account = registry.get(a)
        assert account.usage_snapshot == good
        assert account.last_fetch_at == fixed_now
        assert account.last_fetch_error.message == "No network"

    @pytest.mark.asyncio
    async def test_older_snapshot_does_not_replace_newer(
        self, registry: AccountRegistry, fixed_now: datetime
    ) -> None:
        a = await registry.insert(draft("a"))
        newer = snapshot(60, fixed_now)
        await registry.install_snapshot(a, newer)

        installed = await registry.install_snapshot(
            a, snapshot(20, fixed_now - timedelta(seconds=5))
        )

        account = registry.get(a)
        assert installed is False
        assert account.usage_snapshot == newer
        assert account.last_fetch_at == fixed_now

    @pytest.mark.asyncio
    async def test_result_for_deleted_account_is_discarded(
        self, registry: AccountRegistry, fixed_now: datetime
    ) -> None:
        a = await registry.insert(draft("a"))
        await registry.delete(a)

        assert await registry.install_snapshot(a, snapshot(10, fixed_now)) is False
        assert len(registry) == 0


@pytest.mark.unit
class TestUpdate:
    """Tests for update."""

    @pytest.mark.asyncio
    async def test_rename_persists(self, registry: AccountRegistry, config_path: Path) -> None:
        a = await registry.insert(draft("a"))

        def rename(account):
            account.name = "renamed"

        await registry.update(a, rename)

        data = orjson.loads(config_path.read_bytes())
        assert data["accounts"][0]["name"] == "renamed"

    @pytest.mark.asyncio
    async def test_changing_credential_ref_is_rejected(self, registry: AccountRegistry) -> None:
        a = await registry.insert(draft("a"))
        ref = registry.get(a).credential_ref

        def change_ref(account):
            account.credential_ref = "other"

        with pytest.raises(ValueError):
            await registry.update(a, change_ref)

        assert registry.get(a).credential_ref == ref


@pytest.mark.unit
class TestPersistence:
    """Tests for persist/load."""

    @pytest.mark.asyncio
    async def test_reload_restores_identity_and_active(
        self, registry: AccountRegistry, config_path: Path, store
    ) -> None:
        a = await registry.insert(draft("a"))
        b = await registry.insert(draft("b", AuthMethod.SESSION_KEY))
        await registry.set_active(b)

        reloaded = AccountRegistry(config_path, store)
        reloaded.load()

        assert [(x.id, x.name, x.auth_method) for x in reloaded.list()] == [
            (a, "a", AuthMethod.OAUTH),
            (b, "b", AuthMethod.SESSION_KEY),
        ]
        assert reloaded.get(b).is_active is True
        assert reloaded.get(a).credential_ref == registry.get(a).credential_ref

    def test_legacy_records_get_ids_and_name_refs(self, config_path: Path, store) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_bytes(
            orjson.dumps(
                {
                    "settings": {"active_account": 9},
                    "accounts": [
                        {"name": "first", "auth_method": "oauth"},
                        {"id": 4, "name": "second"},
                        {"name": "third"},
                    ],
                }
            )
        )

        reg = AccountRegistry(config_path, store)
        reg.load()

        assert [a.id for a in reg.list()] == [5, 4, 6]
        assert reg.get(5).credential_ref == "first"
        assert reg.active_id is None

    @pytest.mark.asyncio
    async def test_failed_persist_is_retried_on_next_mutation(
        self, registry: AccountRegistry, config_path: Path
    ) -> None:
        with (
            patch(
                "claude_tracker.accounts.config_file.os.replace",
                side_effect=OSError("read-only"),
            ),
            pytest.raises(ConfigError),
        ):
            await registry.insert(draft("a"))

        assert registry.is_dirty
        assert len(registry) == 1

        await registry.set_active(None)

        data = orjson.loads(config_path.read_bytes())
        assert [a["name"] for a in data["accounts"]] == ["a"]
        assert not registry.is_dirty
