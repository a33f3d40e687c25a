"""Tests for tls_reconciler.cli.main — CLI commands via Click test runner."""
from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from tls_reconciler.cli.main import cli
from tls_reconciler.models import CERTIFICATE_KEY, RecordId
from tls_reconciler.store import FilesystemClusterStore


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "state"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for var in ("NAMESPACE", "HOSTNAME", "TLS_RECONCILER_NAMESPACE", "TLS_RECONCILER_HOSTNAME"):
        monkeypatch.delenv(var, raising=False)


def _invoke(runner: CliRunner, state_dir: Path, *args: str):  # type: ignore[no-untyped-def]
    return runner.invoke(
        cli,
        ["--state-dir", str(state_dir), "--namespace", "system", "--hostname", "server-0", *args],
    )


# ---------------------------------------------------------------------------
# Root CLI
# ---------------------------------------------------------------------------


class TestRootCLI:
    def test_help_exits_zero(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0

    def test_version_command(self, runner: CliRunner, state_dir: Path) -> None:
        result = _invoke(runner, state_dir, "version")
        assert result.exit_code == 0
        assert "tls-reconciler" in result.output.lower()


# ---------------------------------------------------------------------------
# ca init
# ---------------------------------------------------------------------------


class TestCAInit:
    def test_creates_ca_record(self, runner: CliRunner, state_dir: Path) -> None:
        result = _invoke(runner, state_dir, "ca", "init")
        assert result.exit_code == 0, result.output
        assert "created" in result.output
        record = FilesystemClusterStore(state_dir).get_record(RecordId("system", "ca"))
        assert record.data["ca.crt"].startswith(b"-----BEGIN CERTIFICATE-----")

    def test_refuses_to_overwrite(self, runner: CliRunner, state_dir: Path) -> None:
        _invoke(runner, state_dir, "ca", "init")
        result = _invoke(runner, state_dir, "ca", "init")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_force_replaces(self, runner: CliRunner, state_dir: Path) -> None:
        _invoke(runner, state_dir, "ca", "init")
        result = _invoke(runner, state_dir, "ca", "init", "--force")
        assert result.exit_code == 0
        assert "updated" in result.output


# ---------------------------------------------------------------------------
# instance add / list
# ---------------------------------------------------------------------------


class TestInstanceCommands:
    def test_add_and_list(self, runner: CliRunner, state_dir: Path) -> None:
        result = _invoke(runner, state_dir, "instance", "add", "server-0", "-l", "app=server")
        assert result.exit_code == 0
        result = _invoke(runner, state_dir, "instance", "list")
        assert result.exit_code == 0
        assert "server-0" in result.output
        assert "app=server" in result.output

    def test_bad_label_rejected(self, runner: CliRunner, state_dir: Path) -> None:
        result = _invoke(runner, state_dir, "instance", "add", "server-0", "-l", "noequals")
        assert result.exit_code == 1

    def test_empty_list(self, runner: CliRunner, state_dir: Path) -> None:
        result = _invoke(runner, state_dir, "instance", "list")
        assert result.exit_code == 0
        assert "No instances" in result.output


# ---------------------------------------------------------------------------
# inspect / reconcile
# ---------------------------------------------------------------------------


class TestReconcileCommand:
    def test_reconcile_without_ca_fails(self, runner: CliRunner, state_dir: Path) -> None:
        result = _invoke(runner, state_dir, "reconcile")
        assert result.exit_code == 1
        assert "Reconciliation failed" in result.output

    def test_bootstrap_then_keep(self, runner: CliRunner, state_dir: Path) -> None:
        _invoke(runner, state_dir, "ca", "init")

        first = _invoke(runner, state_dir, "reconcile")
        assert first.exit_code == 0, first.output
        assert "Issue" in first.output
        assert "created" in first.output

        second = _invoke(runner, state_dir, "reconcile")
        assert second.exit_code == 0
        assert "Keep" in second.output
        assert "unchanged" in second.output

        record = FilesystemClusterStore(state_dir).get_record(RecordId("system", "tls"))
        assert CERTIFICATE_KEY in record.data

    def test_rotation_restarts_instances(self, runner: CliRunner, state_dir: Path) -> None:
        _invoke(runner, state_dir, "ca", "init")
        _invoke(runner, state_dir, "instance", "add", "server-0", "-l", "app=server")
        _invoke(runner, state_dir, "instance", "add", "server-1", "-l", "app=server")
        store = FilesystemClusterStore(state_dir)
        store.create_or_update(RecordId("system", "tls"), lambda d: d.update({CERTIFICATE_KEY: b"x"}))

        result = _invoke(runner, state_dir, "reconcile")
        assert result.exit_code == 0, result.output
        assert "updated" in result.output
        assert "server-1, server-0" in result.output
        assert store.list_instances("system", {}) == []

    def test_inspect_does_not_write(self, runner: CliRunner, state_dir: Path) -> None:
        _invoke(runner, state_dir, "ca", "init")
        result = _invoke(runner, state_dir, "inspect")
        assert result.exit_code == 0, result.output
        assert "Absent" in result.output
        assert "Issue" in result.output
        with pytest.raises(KeyError):
            FilesystemClusterStore(state_dir).get_record(RecordId("system", "tls"))

    def test_inspect_valid_record(self, runner: CliRunner, state_dir: Path) -> None:
        _invoke(runner, state_dir, "ca", "init")
        _invoke(runner, state_dir, "reconcile")
        result = _invoke(runner, state_dir, "inspect")
        assert result.exit_code == 0
        assert "Valid" in result.output
        assert "Keep" in result.output
