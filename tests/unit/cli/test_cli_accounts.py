# tests/unit/cli/test_cli_accounts.py
"""Tests for the account CLI commands."""

from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from typer.testing import CliRunner

from claude_tracker import __version__
from claude_tracker.cli.main import app
from claude_tracker.config.settings import TrackerSettings
from claude_tracker.constants import CLAUDE_CODE_SERVICE_NAME, PROFILE_ENDPOINT
from claude_tracker.credentials.external import ExternalCredentialEntry
from claude_tracker.engine import TrackerEngine
from conftest import MemoryCredentialStore, mock_http, oauth_blob, profile_body, usage_body


runner = CliRunner()


class Harness:
    """Runs CLI commands against in-memory stores and a fake backend."""

    def __init__(self, config_dir: Path) -> None:
        self.config_dir = config_dir
        self.store = MemoryCredentialStore()
        self.external_store = MemoryCredentialStore()
        self.usage_status = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == PROFILE_ENDPOINT:
            return httpx.Response(200, json=profile_body("alice@example.com", "org-1"))
        if self.usage_status != 200:
            return httpx.Response(self.usage_status)
        return httpx.Response(200, json=usage_body(five_hour=40))

    def create_engine(self, settings: TrackerSettings) -> TrackerEngine:
        entry = ExternalCredentialEntry(self.external_store, CLAUDE_CODE_SERVICE_NAME, "user")
        return TrackerEngine(
            settings,
            store=self.store,
            entry=entry,
            http_client=mock_http(self.handler),
        )

    def invoke(self, *args: str, input: str | None = None):
        with patch(
            "claude_tracker.cli.commands.accounts.create_engine", self.create_engine
        ):
            return runner.invoke(
                app,
                ["--config-dir", str(self.config_dir), *args],
                input=input,
                env={"COLUMNS": "200"},
            )

    def login(self, access_token: str) -> None:
        self.external_store.entries[(CLAUDE_CODE_SERVICE_NAME, "user")] = oauth_blob(
            access_token, f"rt-{access_token}"
        )


@pytest.fixture
def cli(tmp_path: Path) -> Harness:
    return Harness(tmp_path / "claude-tracker")


@pytest.mark.unit
class TestGlobalOptions:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_invalid_settings(self, cli, monkeypatch) -> None:
        monkeypatch.setenv("CLAUDE_TRACKER_HTTP_TIMEOUT", "-1")

        result = cli.invoke("list")

        assert result.exit_code == 1


@pytest.mark.unit
class TestListAndImport:
    def test_list_empty(self, cli) -> None:
        result = cli.invoke("list")

        assert result.exit_code == 0
        assert "No accounts tracked" in result.stdout

    def test_import_then_list(self, cli) -> None:
        cli.login("at-a")

        imported = cli.invoke("import")
        listed = cli.invoke("list")

        assert imported.exit_code == 0
        assert "Imported alice@example.com as account 1" in imported.stdout
        assert listed.exit_code == 0
        assert "40%" in listed.stdout
        assert (cli.config_dir / "config.json").exists()

    def test_list_without_refresh_skips_fetch(self, cli) -> None:
        cli.login("at-a")
        cli.invoke("import")

        result = cli.invoke("list", "--no-refresh")

        assert result.exit_code == 0
        assert "40%" not in result.stdout
        assert "Logged In" in result.stdout

    def test_import_twice_reports_match(self, cli) -> None:
        cli.login("at-a")
        cli.invoke("import")

        result = cli.invoke("import")

        assert result.exit_code == 0
        assert "already tracked as account 1" in result.stdout

    def test_import_without_login(self, cli) -> None:
        result = cli.invoke("import")

        assert result.exit_code == 1
        assert "No Claude Code credentials found" in result.stdout


@pytest.mark.unit
class TestManualAccounts:
    def test_add_with_options(self, cli) -> None:
        result = cli.invoke(
            "add", "--name", "bob", "--org-id", "org-9", "--session-key", "sk-ant-sid"
        )

        assert result.exit_code == 0
        assert "Added bob as account 1" in result.stdout
        assert list(cli.store.entries.values()) == ["sk-ant-sid"]

    def test_add_with_prompts(self, cli) -> None:
        result = cli.invoke("add", input="bob\norg-9\nsk-ant-sid\n")

        assert result.exit_code == 0
        assert "Added bob as account 1" in result.stdout

    def test_add_blank_org_fails(self, cli) -> None:
        result = cli.invoke("add", "--name", "bob", "--org-id", " ", "--session-key", "sk")

        assert result.exit_code == 1
        assert cli.store.entries == {}

    def test_edit_rename(self, cli) -> None:
        cli.invoke("add", "--name", "bob", "--org-id", "org-9", "--session-key", "sk")

        result = cli.invoke("edit", "1", "--name", "robert")

        assert result.exit_code == 0
        assert "robert" in cli.invoke("list").stdout

    def test_edit_session_key_of_oauth_account_refused(self, cli) -> None:
        cli.login("at-a")
        cli.invoke("import")

        result = cli.invoke("edit", "1", "--session-key", "sk")

        assert result.exit_code == 1
        assert "claude-tracker import" in result.stdout

    def test_edit_unknown_account(self, cli) -> None:
        result = cli.invoke("edit", "7", "--name", "x")

        assert result.exit_code == 1
        assert "Account 7 not found" in result.stdout

    def test_delete_requires_confirmation(self, cli) -> None:
        cli.invoke("add", "--name", "bob", "--org-id", "org-9", "--session-key", "sk")

        result = cli.invoke("delete", "1", input="n\n")

        assert result.exit_code == 1
        assert len(cli.store.entries) == 1

    def test_delete_forced(self, cli) -> None:
        cli.invoke("add", "--name", "bob", "--org-id", "org-9", "--session-key", "sk")

        result = cli.invoke("delete", "1", "--force")

        assert result.exit_code == 0
        assert "Deleted bob" in result.stdout
        assert cli.store.entries == {}
        assert "No accounts tracked" in cli.invoke("list").stdout


@pytest.mark.unit
class TestSwapAndRefresh:
    def test_swap_session_key_account_refused(self, cli) -> None:
        cli.invoke("add", "--name", "bob", "--org-id", "org-9", "--session-key", "sk")

        result = cli.invoke("swap", "1")

        assert result.exit_code == 1
        assert "Only OAuth accounts" in result.stdout

    def test_swap_to_imported_account(self, cli) -> None:
        cli.login("at-a")
        cli.invoke("import")

        result = cli.invoke("swap", "1")

        assert result.exit_code == 0
        assert "Claude Code now uses alice@example.com" in result.stdout

    def test_refresh_failure_exits_nonzero(self, cli) -> None:
        cli.invoke("add", "--name", "bob", "--org-id", "org-9", "--session-key", "sk")
        cli.usage_status = 503

        result = cli.invoke("refresh")

        assert result.exit_code == 1
        assert "HTTP 503" in result.stdout

    def test_refresh_one(self, cli) -> None:
        cli.invoke("add", "--name", "bob", "--org-id", "org-9", "--session-key", "sk")

        result = cli.invoke("refresh", "1")

        assert result.exit_code == 0
        assert "40%" in result.stdout
