"""Tests for src/cli.py — issue and sweep commands."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import src.store.factory as factory_mod
from src.cli import main
from src.keys.codec import hash_secret


@pytest.fixture(autouse=True)
def quiet_cli(monkeypatch):
    """Fresh store singleton per test and no handler changes on the root logger."""
    monkeypatch.setattr(factory_mod, "_store", None)
    with patch("src.cli.setup_logging"):
        yield


@pytest.fixture
def keys_path(tmp_path, override_settings):
    path = tmp_path / "api_keys.json"
    override_settings(STORE_BACKEND="json", API_KEYS_PATH=str(path))
    return path


class TestIssueCommand:

    def test_prints_secret_and_persists_record(self, keys_path, capsys):
        assert main(["issue", "CI key", "--scope", "read", "--per-minute", "10"]) == 0

        out = capsys.readouterr().out
        secret = next(word for word in out.split() if word.startswith("spw_live_"))
        assert "10/min" in out

        records = json.loads(keys_path.read_text(encoding="utf-8"))["api_keys"]
        assert len(records) == 1
        assert records[0]["name"] == "CI key"
        assert records[0]["scopes"] == ["read"]
        assert records[0]["key_hash"] == hash_secret(secret)
        assert secret not in keys_path.read_text(encoding="utf-8")

    def test_repeated_scope_flags(self, keys_path, capsys):
        main(["issue", "Admin", "--scope", "read", "--scope", "write", "--expires-at", "2030-01-01T00:00:00Z"])

        record = json.loads(keys_path.read_text(encoding="utf-8"))["api_keys"][0]
        assert record["scopes"] == ["read", "write"]
        assert record["expires_at"] == "2030-01-01T00:00:00+00:00"

    def test_appends_to_existing_file(self, keys_path, capsys):
        main(["issue", "one"])
        main(["issue", "two"])
        records = json.loads(keys_path.read_text(encoding="utf-8"))["api_keys"]
        assert [r["name"] for r in records] == ["one", "two"]


class TestSweepCommand:

    def test_reports_deleted_count(self, monkeypatch, capsys):
        store = MagicMock()
        store.delete_windows_before = AsyncMock(return_value=3)
        monkeypatch.setattr(factory_mod, "_store", store)

        assert main(["sweep", "--retention-hours", "1"]) == 0
        assert "Deleted 3 rate limit window(s)" in capsys.readouterr().out

        cutoff = store.delete_windows_before.call_args.args[0]
        expected = datetime.now(timezone.utc) - timedelta(hours=1)
        assert abs(cutoff - expected) < timedelta(minutes=1)

    def test_default_retention_from_settings(self, monkeypatch, override_settings, capsys):
        override_settings(WINDOW_RETENTION_HOURS=72)
        store = MagicMock()
        store.delete_windows_before = AsyncMock(return_value=0)
        monkeypatch.setattr(factory_mod, "_store", store)

        main(["sweep"])
        cutoff = store.delete_windows_before.call_args.args[0]
        expected = datetime.now(timezone.utc) - timedelta(hours=72)
        assert abs(cutoff - expected) < timedelta(minutes=1)


class TestParser:

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            main([])

    def test_issue_needs_a_name(self):
        with pytest.raises(SystemExit):
            main(["issue"])
