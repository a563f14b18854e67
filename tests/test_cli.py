"""Tests for the disclosure-gov CLI."""

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from disclosure_governance.cli.main import cli
from disclosure_governance.config import CONFIG_FILENAME


def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def db(tmp_path: Path, monkeypatch) -> str:
    monkeypatch.chdir(tmp_path)
    return str(tmp_path / "governance.db")


def _invoke(db: str, *args: str, actor: str = "u-alice"):
    return runner().invoke(cli, [*args, "--store", db, "--actor", actor])


def _add_point(db: str, dp_id: str = "dp-1", *extra: str):
    result = _invoke(db, "datapoint", "add", dp_id, "--section", "sec-e1", "--title", "Scope 1", *extra)
    assert result.exit_code == 0, result.output
    return result


def _snapshot_file(tmp_path: Path, name: str, value: str) -> str:
    path = tmp_path / name
    path.write_text(yaml.safe_dump({"sections": [{
        "id": "sec-e1", "title": "Climate change",
        "data_points": [{"id": "dp-1", "title": "Scope 1", "value": value}],
    }]}), encoding="utf-8")
    return str(path)


def _created_id(output: str, prefix: str) -> str:
    return next(word for word in output.split() if word.startswith(prefix))


# --- init ---


class TestInit:
    def test_creates_config_and_db(self, tmp_path: Path):
        result = runner().invoke(cli, ["init", str(tmp_path / "proj")])
        assert result.exit_code == 0
        assert (tmp_path / "proj" / CONFIG_FILENAME).exists()
        assert (tmp_path / "proj" / "governance.db").exists()
        assert "Created:" in result.output

    def test_skips_existing(self, tmp_path: Path):
        runner().invoke(cli, ["init", str(tmp_path)])
        result = runner().invoke(cli, ["init", str(tmp_path)])
        assert result.exit_code == 0
        assert "skip" in result.output


# --- status ---


class TestStatus:
    def test_show_lists_missing_fields(self, db):
        _add_point(db, "dp-1", "--value", "12")
        result = _invoke(db, "status", "show", "dp-1")
        assert result.exit_code == 0
        assert "[missing]" in result.output
        assert "period/deadline" in result.output
        assert "value:" not in result.output

    def test_show_json(self, db):
        _add_point(db)
        result = _invoke(db, "status", "show", "dp-1", "--json-output")
        data = json.loads(result.stdout)
        assert data["id"] == "dp-1"
        assert [m["field"] for m in data["missing_fields"]] == [
            "value", "period/deadline", "methodology/source", "owner",
        ]

    def test_set_complete_blocked(self, db):
        _add_point(db, "dp-1", "--value", "12", "--owner", "u-alice")
        result = _invoke(db, "status", "set", "dp-1", "complete")
        assert result.exit_code == 1
        assert "BLOCKED" in result.stderr
        assert "methodology/source" in result.stderr

    def test_set_complete_ok(self, db):
        _add_point(
            db, "dp-1", "--value", "12", "--period", "FY2025",
            "--source", "ERP", "--owner", "u-alice",
        )
        result = _invoke(db, "status", "set", "dp-1", "complete", "--note", "Reviewed")
        assert result.exit_code == 0
        assert "[complete]" in result.output

    def test_set_unknown_data_point(self, db):
        result = _invoke(db, "status", "set", "dp-nope", "incomplete")
        assert result.exit_code == 1
        assert "NOT_FOUND" in result.stderr

    def test_set_invalid_status_choice(self, db):
        result = _invoke(db, "status", "set", "dp-1", "done")
        assert result.exit_code == 2

    def test_summary(self, db):
        _add_point(db, "dp-1")
        _add_point(db, "dp-2")
        _invoke(db, "status", "set", "dp-2", "not applicable")
        result = _invoke(db, "summary", "sec-e1")
        assert result.exit_code == 0
        assert "0.0% complete" in result.output
        assert "blocked dp-1" in result.output


# --- exceptions ---


class TestExceptions:
    def test_exception_unblocks_completion(self, db):
        _add_point(db)
        result = _invoke(
            db, "exceptions", "add", "sec-e1", "--title", "Data pending",
            "--type", "missing-data", "--justification", "Supplier data arrives in Q3.",
            "--data-point", "dp-1",
        )
        assert result.exit_code == 0
        assert _invoke(db, "status", "set", "dp-1", "complete").exit_code == 0

        listed = _invoke(db, "exceptions", "list", "sec-e1")
        assert "Data pending" in listed.output

    def test_past_expiry_rejected(self, db):
        result = _invoke(
            db, "exceptions", "add", "sec-e1", "--title", "Old",
            "--type", "other", "--justification", "Long enough justification.",
            "--expires", "2000-01-01",
        )
        assert result.exit_code == 1
        assert "INVALID_INPUT" in result.stderr


# --- plans ---


class TestPlans:
    def test_add_list_complete(self, db):
        added = _invoke(db, "plans", "add", "sec-e1", "--title", "Close gap", "--priority", "high")
        assert added.exit_code == 0
        plan_id = _created_id(added.output, "rp-")

        listed = _invoke(db, "plans", "list", "sec-e1")
        assert plan_id in listed.output
        assert "[planned]" in listed.output

        done = _invoke(db, "plans", "complete", plan_id)
        assert done.exit_code == 0
        assert "COMPLETED" in done.output

        again = _invoke(db, "plans", "complete", plan_id)
        assert again.exit_code == 1
        assert "INVALID_TRANSITION" in again.stderr

    def test_list_empty(self, db):
        result = _invoke(db, "plans", "list", "sec-e1")
        assert "No remediation plans." in result.output


# --- generations ---


class TestGenerations:
    def test_full_cycle(self, db, tmp_path: Path):
        assert _invoke(db, "periods", "add", "fy2025", "--name", "FY2025").exit_code == 0
        first = _invoke(db, "generations", "create", "fy2025", _snapshot_file(tmp_path, "a.yaml", "100"))
        second = _invoke(db, "generations", "create", "fy2025", _snapshot_file(tmp_path, "b.yaml", "90"))
        assert first.exit_code == 0, first.output
        g1 = _created_id(first.output, "gen-")
        g2 = _created_id(second.output, "gen-")

        history = _invoke(db, "generations", "list", "fy2025", "--json-output")
        assert [g["id"] for g in json.loads(history.stdout)] == [g2, g1]

        compared = _invoke(db, "generations", "compare", g1, g2)
        assert compared.exit_code == 0
        assert "~1" in compared.output

        assert _invoke(db, "generations", "verify", g2).exit_code == 0
        assert _invoke(db, "generations", "finalize", g2).exit_code == 0
        shown = _invoke(db, "generations", "show", g2)
        assert "[final]" in shown.output

        refinalize = _invoke(db, "generations", "finalize", g2)
        assert refinalize.exit_code == 1
        assert "already marked as final" in refinalize.stderr

    def test_create_for_unknown_period(self, db, tmp_path: Path):
        result = _invoke(db, "generations", "create", "fy1999", _snapshot_file(tmp_path, "a.yaml", "1"))
        assert result.exit_code == 1
        assert "NOT_FOUND" in result.stderr


# --- access ---


class TestAccess:
    def test_request_approve(self, db):
        created = _invoke(db, "access", "request", "section", "sec-e1", "--reason", "Review", actor="auditor-1")
        assert created.exit_code == 0
        req_id = _created_id(created.output, "acr-")

        listed = _invoke(db, "access", "list", "--status", "pending")
        assert req_id in listed.output

        approved = _invoke(db, "access", "approve", req_id, "--comment", "ok")
        assert approved.exit_code == 0
        assert "APPROVED" in approved.output

        denied = _invoke(db, "access", "deny", req_id)
        assert denied.exit_code == 1


# --- audit ---


class TestAudit:
    def test_verify_and_show(self, db):
        _add_point(db)
        _invoke(db, "status", "set", "dp-1", "incomplete")

        verified = runner().invoke(cli, ["audit", "verify", "--store", db])
        assert verified.exit_code == 0
        assert "VALID" in verified.output

        shown = _invoke(db, "audit", "show", "--entity-id", "dp-1")
        assert shown.exit_code == 0
        assert "status-changed" in shown.output
        assert "2 entries shown." in shown.output

    def test_show_json(self, db):
        _add_point(db)
        result = _invoke(db, "audit", "show", "--json-output")
        data = json.loads(result.stdout)
        assert data[0]["action"] == "created"
        assert data[0]["prev_hash"] == "0" * 64


class TestPermissionsFromConfig:
    def test_denied_actor(self, tmp_path: Path, monkeypatch):
        (tmp_path / CONFIG_FILENAME).write_text(
            "store: ./governance.db\npermissions:\n  u-alice: ['*']\n", encoding="utf-8",
        )
        monkeypatch.chdir(tmp_path)
        allowed = runner().invoke(cli, ["plans", "add", "sec-e1", "--title", "Fix", "--actor", "u-alice"])
        assert allowed.exit_code == 0
        denied = runner().invoke(cli, ["plans", "add", "sec-e1", "--title", "Fix", "--actor", "u-mallory"])
        assert denied.exit_code == 1
        assert "PERMISSION_DENIED" in denied.stderr

    def test_audit_verify_checks_actor(self, tmp_path: Path, monkeypatch):
        (tmp_path / CONFIG_FILENAME).write_text(
            "store: ./governance.db\npermissions:\n  u-alice: ['*']\n  auditor-1: ['audit.read']\n",
            encoding="utf-8",
        )
        monkeypatch.chdir(tmp_path)
        allowed = runner().invoke(cli, ["audit", "verify", "--actor", "u-alice"])
        assert allowed.exit_code == 0
        assert "VALID" in allowed.output

        denied = runner().invoke(cli, ["audit", "verify", "--actor", "auditor-1"])
        assert denied.exit_code == 1
        assert "PERMISSION_DENIED" in denied.stderr
        assert denied.stdout == ""
