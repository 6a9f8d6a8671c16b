"""
CLI tests for `credit-ledger`.

Each invocation opens the ledger file fresh, so these also exercise
persistence across processes.
"""

from __future__ import annotations

import json
import logging

import pytest
import typer.testing

from credit_ledger.cli.main import app
from credit_ledger.version import __version__

from .helpers import ADMIN, ALICE, BOB

runner = typer.testing.CliRunner()


@pytest.fixture(autouse=True)
def _root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def db(tmp_path, monkeypatch):
    for var in ("CREDIT_LEDGER_DB", "CREDIT_LEDGER_ADMIN", "CREDIT_LEDGER_CALLER", "CREDIT_LEDGER_EVENTS"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("CREDIT_LEDGER_LOG_LEVEL", "WARNING")
    monkeypatch.setenv("CREDIT_LEDGER_LOG_FORMAT", "text")
    return str(tmp_path / "ledger.db")


def _cli(db, *args, caller=None, json_out=False):
    argv = ["--db", db, "--admin", ADMIN]
    if caller:
        argv += ["--caller", caller]
    if json_out:
        argv.append("--json")
    return runner.invoke(app, argv + list(args))


class TestCLIBasics:
    def test_help(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "mint" in result.stdout
        assert "batch-burn" in result.stdout

    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert result.stdout.strip() == __version__

    def test_version_json(self) -> None:
        result = runner.invoke(app, ["--json", "version"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["version"] == __version__

    def test_log_settings_from_env(self, db, monkeypatch) -> None:
        monkeypatch.setenv("CREDIT_LEDGER_LOG_LEVEL", "INFO")
        monkeypatch.setenv("CREDIT_LEDGER_LOG_FORMAT", "json")
        r = _cli(db, "mint", "ipfs://a")
        assert r.exit_code == 0, r.output
        records = [json.loads(line) for line in r.output.splitlines() if line.startswith("{")]
        ready = [rec for rec in records if rec["msg"].startswith("ledger ready")]
        assert ready and ready[0]["level"] == "INFO"
        assert ready[0]["logger"] == "credit_ledger.ledger"
        assert not any(rec["level"] == "DEBUG" for rec in records)

    def test_verbose_overrides_log_level(self, db, monkeypatch) -> None:
        monkeypatch.setenv("CREDIT_LEDGER_LOG_FORMAT", "json")
        r = _cli(db, "-v", "mint", "ipfs://a")
        assert r.exit_code == 0, r.output
        records = [json.loads(line) for line in r.output.splitlines() if line.startswith("{")]
        assert any(rec["level"] == "DEBUG" and rec.get("op") == "mint" for rec in records)


class TestMutations:
    def test_mint_and_show(self, db) -> None:
        r = _cli(db, "mint", "ipfs://a")
        assert r.exit_code == 0, r.output
        assert r.stdout.strip() == "1"

        r = _cli(db, "show", "1", json_out=True)
        assert r.exit_code == 0, r.output
        assert json.loads(r.stdout) == {
            "id": 1,
            "owner": ADMIN,
            "uri": "ipfs://a",
            "burned": False,
            "metadata": None,
        }

    def test_mint_by_non_admin_fails(self, db) -> None:
        _cli(db, "mint", "ipfs://a")
        r = _cli(db, "mint", "ipfs://b", caller=ALICE)
        assert r.exit_code == 1
        assert "Error: [LEDGER/NOT_AUTHORIZED]" in r.output

    def test_batch_mint_skips_invalid(self, db) -> None:
        r = _cli(db, "batch-mint", "", "ipfs://b", json_out=True)
        assert r.exit_code == 0, r.output
        assert json.loads(r.stdout) == {"ids": [1]}

    def test_batch_mint_strict(self, db) -> None:
        r = _cli(db, "batch-mint", "--strict", "ipfs://a", "", "ipfs://c")
        assert r.exit_code == 1
        assert "LEDGER/INVALID_URI" in r.output
        r = _cli(db, "stats", json_out=True)
        assert json.loads(r.stdout)["minted"] == 0

    def test_pull_transfer(self, db) -> None:
        _cli(db, "mint", "ipfs://a")
        r = _cli(db, "transfer", "1", ADMIN, ALICE)
        assert r.exit_code == 1
        assert "LEDGER/NOT_TOKEN_OWNER" in r.output

        r = _cli(db, "transfer", "1", ADMIN, ALICE, caller=ALICE)
        assert r.exit_code == 0, r.output
        r = _cli(db, "show", "1", json_out=True)
        assert json.loads(r.stdout)["owner"] == ALICE

    def test_secure_transfer_requires_ownership(self, db) -> None:
        _cli(db, "mint", "ipfs://a")
        r = _cli(db, "secure-transfer", "1", ADMIN, BOB, caller=BOB)
        assert r.exit_code == 1
        assert "LEDGER/NOT_TOKEN_OWNER" in r.output

    def test_burn_twice(self, db) -> None:
        _cli(db, "mint", "ipfs://a")
        assert _cli(db, "burn", "1").exit_code == 0
        r = _cli(db, "burn", "1")
        assert r.exit_code == 1
        assert "LEDGER/BURN_FAILED" in r.output

    def test_batch_burn_bounds(self, db) -> None:
        _cli(db, "batch-mint", "ipfs://a", "ipfs://b")
        ids = [str(i) for i in range(1, 52)]
        r = _cli(db, "batch-burn", *ids)
        assert r.exit_code == 1
        assert "LEDGER/INVALID_BATCH_SIZE" in r.output
        r = _cli(db, "batch-burn", "1", "2", "3")
        assert r.exit_code == 0, r.output
        r = _cli(db, "list", "--field", "burned", json_out=True)
        assert json.loads(r.stdout) == [True, True]

    def test_update_uri_and_metadata(self, db) -> None:
        _cli(db, "mint", "ipfs://a")
        assert _cli(db, "update-uri", "1", "ipfs://b").exit_code == 0
        assert _cli(db, "add-metadata", "1", "lot-7").exit_code == 0
        r = _cli(db, "show", "1")
        assert r.exit_code == 0
        assert "uri=ipfs://b" in r.stdout
        assert "metadata=lot-7" in r.stdout


class TestQueries:
    def test_page_fail_fast_and_lenient(self, db) -> None:
        _cli(db, "batch-mint", "ipfs://a", "ipfs://b")
        r = _cli(db, "page", "1", "3")
        assert r.exit_code == 1
        assert "LEDGER/TOKEN_NOT_FOUND" in r.output

        r = _cli(db, "page", "1", "3", "--lenient", json_out=True)
        assert r.exit_code == 0, r.output
        assert [item["ok"] for item in json.loads(r.stdout)] == [True, True, False]

    def test_list_projections(self, db) -> None:
        _cli(db, "batch-mint", "ipfs://a", "ipfs://b")
        r = _cli(db, "list", "--field", "uris", json_out=True)
        assert json.loads(r.stdout) == ["ipfs://a", "ipfs://b"]
        r = _cli(db, "list", "--field", "owners", json_out=True)
        assert json.loads(r.stdout) == [ADMIN, ADMIN]
        r = _cli(db, "list", "--field", "colour")
        assert r.exit_code == 1

    def test_show_missing(self, db) -> None:
        r = _cli(db, "show", "9")
        assert r.exit_code == 1
        assert "LEDGER/TOKEN_NOT_FOUND" in r.output

    def test_events_log(self, db, tmp_path) -> None:
        events = str(tmp_path / "events.jsonl")
        base = ["--db", db, "--admin", ADMIN, "--events", events]
        assert runner.invoke(app, base + ["mint", "ipfs://a"]).exit_code == 0
        assert runner.invoke(app, base + ["burn", "1"]).exit_code == 0
        r = runner.invoke(app, base + ["--json", "events"])
        assert r.exit_code == 0, r.output
        assert [e["name"] for e in json.loads(r.stdout)] == ["Minted", "Burned"]

    def test_events_requires_log(self, db) -> None:
        r = _cli(db, "events")
        assert r.exit_code == 1


class TestSnapshots:
    def test_export_import_roundtrip(self, db, tmp_path) -> None:
        _cli(db, "batch-mint", "ipfs://a", "ipfs://b")
        _cli(db, "burn", "2")
        out = tmp_path / "snap.json"
        r = _cli(db, "export", "--out", str(out))
        assert r.exit_code == 0, r.output
        root = r.stdout.strip()
        assert root.startswith("0x")

        other = str(tmp_path / "other.db")
        r = _cli(other, "import", str(out), json_out=True)
        assert r.exit_code == 0, r.output
        assert json.loads(r.stdout) == {"imported": 2, "state_root": root}

    def test_import_into_non_empty_fails(self, db, tmp_path) -> None:
        _cli(db, "mint", "ipfs://a")
        out = tmp_path / "snap.json"
        _cli(db, "export", "--out", str(out))
        r = _cli(db, "import", str(out))
        assert r.exit_code == 1
        assert "LEDGER/CONFIG" in r.output

    def test_admin_mismatch_on_reopen(self, db) -> None:
        _cli(db, "mint", "ipfs://a")
        r = runner.invoke(app, ["--db", db, "--admin", "acct:other", "show", "1"])
        assert r.exit_code == 1
        assert "LEDGER/CONFIG" in r.output

    def test_reopen_without_admin_uses_stored(self, db) -> None:
        _cli(db, "mint", "ipfs://a")
        r = runner.invoke(app, ["--db", db, "mint", "ipfs://b"])
        assert r.exit_code == 0, r.output
        assert r.stdout.strip() == "2"
