"""Unit tests for the CLI: Typer command registration and basic behavior."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from buildrelay.cli.app import app
from buildrelay.core.run_ledger import RunLedger

runner = CliRunner()


@pytest.fixture
def workspace(monkeypatch, tmp_path: Path) -> Path:
    """Point every BUILDRELAY_* path into a temp directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("BUILDRELAY_LEDGER_PATH", str(tmp_path / "state" / "ledger.db"))
    monkeypatch.setenv("BUILDRELAY_STAGING_PATH", str(tmp_path / "state" / "staging"))
    monkeypatch.setenv("BUILDRELAY_ARTIFACT_STORE_PATH", str(tmp_path / "repository"))
    for name in ("STORE_URL", "JENKINS_URL", "CONFLICT_POLICY"):
        monkeypatch.delenv(f"BUILDRELAY_{name}", raising=False)
    return tmp_path


class TestCliApp:
    """The CLI must register all expected commands and show help."""

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        # Typer's no_args_is_help may exit with 0 or 2 depending on version
        assert result.exit_code in (0, 2)
        assert "usage" in result.output.lower()

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("version", "publish", "containerize", "status", "runs"):
            assert name in result.output

    @pytest.mark.parametrize("name", ["version", "publish", "containerize", "status", "runs"])
    def test_command_help(self, name: str):
        result = runner.invoke(app, [name, "--help"])
        assert result.exit_code == 0


class TestVersionCommand:
    def test_prints_full_version(self):
        result = runner.invoke(app, ["version", "1.0.0", "--date", "2026-01-29"])
        assert result.exit_code == 0
        assert result.output.strip() == "1.0.0-20260129"

    def test_rejects_bad_base_version(self):
        result = runner.invoke(app, ["version", "1.0", "--date", "2026-01-29"])
        assert result.exit_code == 1
        assert "Invalid build request" in result.output

    def test_rejects_bad_date(self):
        result = runner.invoke(app, ["version", "1.0.0", "--date", "29/01/2026"])
        assert result.exit_code == 1
        assert "Invalid date" in result.output


class TestPublishCommand:
    def test_invalid_version_is_rejected_without_a_run(self, workspace: Path):
        result = runner.invoke(app, ["publish", "banana"])
        assert result.exit_code == 1
        assert "Rejected" in result.output

    def test_missing_checkout_fails_run(self, workspace: Path):
        result = runner.invoke(
            app, ["publish", "1.0.0", "--source-dir", str(workspace / "missing")]
        )
        assert result.exit_code == 1
        assert "ValidationError" in result.output
        runs = runner.invoke(app, ["runs"])
        assert runs.exit_code == 0
        assert "failed" in runs.output


class TestContainerizeCommand:
    def test_missing_fields(self, workspace: Path):
        result = runner.invoke(app, ["containerize", "--full", "1.0.0-20260129"])
        assert result.exit_code == 1
        assert "--build-label" in result.output

    def test_inconsistent_payload_rejected(self, workspace: Path):
        result = runner.invoke(
            app,
            [
                "containerize",
                "--full", "1.0.0-20260129",
                "--build-label", "20260130",
                "--artifact-id", "app",
                "--group-id", "com.chat",
            ],
        )
        assert result.exit_code == 1
        assert "Rejected" in result.output

    def test_unpublished_version_fails_download(self, workspace: Path):
        handoff = workspace / "handoff.json"
        handoff.write_text(
            json.dumps(
                {
                    "full": "1.0.0-20260129",
                    "build_label": "20260129",
                    "artifact_id": "app",
                    "group_id": "com.chat",
                }
            )
        )
        result = runner.invoke(app, ["containerize", "--handoff", str(handoff)])
        assert result.exit_code == 1
        assert "TransferError" in result.output

    def test_unreadable_handoff_file(self, workspace: Path):
        result = runner.invoke(app, ["containerize", "--handoff", str(workspace / "nope.json")])
        assert result.exit_code == 1
        assert "Cannot read handoff file" in result.output


class TestStatusCommands:
    def test_status_without_ledger(self, workspace: Path):
        result = runner.invoke(app, ["status", "br-unknown"])
        assert result.exit_code == 1
        assert "Ledger not found" in result.output

    def test_status_shows_failed_run(self, workspace: Path):
        runner.invoke(app, ["publish", "1.0.0", "--source-dir", str(workspace / "missing")])
        (run_id,) = RunLedger(workspace / "state" / "ledger.db").get_all_run_ids()
        result = runner.invoke(app, ["status", run_id, "--verify-chain"])
        assert result.exit_code == 0
        assert "valid" in result.output
        assert "FAILED" in result.output

    def test_status_unknown_run(self, workspace: Path):
        runner.invoke(app, ["publish", "1.0.0", "--source-dir", str(workspace / "missing")])
        result = runner.invoke(app, ["status", "br-unknown"])
        assert result.exit_code == 1
        assert "Run not found" in result.output
