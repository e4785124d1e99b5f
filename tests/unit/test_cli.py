"""Tests for CLI entry points."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from hipaascan.cli.hscan import hscan_cli
from hipaascan.core.errors import InvalidRepositoryURL, ScanCancelledError, StoreError
from hipaascan.core.store import LocalScanStore
from hipaascan.models.finding import Severity
from hipaascan.models.scan import ScanResult, ScanSource
from tests.fakes import make_finding

REPO = "https://github.com/acme/billing"


def _result(scan_id: str = "scan-1") -> ScanResult:
    return ScanResult(
        id=scan_id,
        timestamp=datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc),
        source=ScanSource.GITHUB,
        source_name=REPO,
        findings=[make_finding("f1", Severity.CRITICAL, file="a.py", line=4)],
        last_commit_hash="sha-1",
        files_scanned=1,
    )


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    """Project whose scan history lives under tmp_path."""
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    config_dir = tmp_path / ".hipaascan"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text(
        f"storage:\n  local_path: {(tmp_path / 'scans.json').as_posix()}\n",
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def service() -> MagicMock:
    mock = MagicMock()
    mock.scan_repository = AsyncMock(return_value=_result())
    mock.scan_uploaded_files = AsyncMock(return_value=_result())
    return mock


class TestRepoCommand:
    def test_requires_url(self):
        result = CliRunner().invoke(hscan_cli, ["repo"])
        assert result.exit_code == 2

    def test_runs_scan(self, project: Path, service: MagicMock):
        with patch("hipaascan.core.orchestrator.build_scan_service", return_value=service):
            result = CliRunner().invoke(hscan_cli, ["repo", REPO, "-p", str(project)])
        assert result.exit_code == 0, result.output
        assert service.scan_repository.call_args.kwargs["incremental"] is True
        assert "scan-1" in result.output

    def test_full_and_overrides(self, project: Path, service: MagicMock):
        with patch(
            "hipaascan.core.orchestrator.build_scan_service", return_value=service
        ) as build:
            result = CliRunner().invoke(
                hscan_cli,
                ["repo", REPO, "-p", str(project), "--full", "--max-files", "5",
                 "--dry-run", "--ai-provider", "ollama"],
            )
        assert result.exit_code == 0, result.output
        config = build.call_args.args[0]
        assert config["github"]["max_files"] == 5
        assert config["ai"]["dry_run"] is True
        assert build.call_args.kwargs["ai_provider"] == "ollama"
        assert service.scan_repository.call_args.kwargs["incremental"] is False

    def test_scan_error_exit_code(self, project: Path, service: MagicMock):
        service.scan_repository.side_effect = InvalidRepositoryURL("nope")
        with patch("hipaascan.core.orchestrator.build_scan_service", return_value=service):
            result = CliRunner().invoke(hscan_cli, ["repo", "nope", "-p", str(project)])
        assert result.exit_code == 1
        assert "Invalid GitHub URL" in result.output

    def test_cancel_exit_code(self, project: Path, service: MagicMock):
        service.scan_repository.side_effect = ScanCancelledError()
        with patch("hipaascan.core.orchestrator.build_scan_service", return_value=service):
            result = CliRunner().invoke(hscan_cli, ["repo", REPO, "-p", str(project)])
        assert result.exit_code == 130


class TestFilesCommand:
    def test_scans_directory(self, project: Path, service: MagicMock):
        src = project / "src"
        src.mkdir()
        (src / "app.py").write_text("x = 1\n")
        with patch("hipaascan.core.orchestrator.build_scan_service", return_value=service):
            result = CliRunner().invoke(hscan_cli, ["files", str(src), "-p", str(project)])
        assert result.exit_code == 0, result.output
        uploads = service.scan_uploaded_files.call_args.args[0]
        assert [u.name for u in uploads] == ["app.py"]

    def test_no_source_files(self, project: Path, service: MagicMock):
        empty = project / "docs"
        empty.mkdir()
        (empty / "notes.md").write_text("# notes")
        with patch("hipaascan.core.orchestrator.build_scan_service", return_value=service):
            result = CliRunner().invoke(hscan_cli, ["files", str(empty), "-p", str(project)])
        assert result.exit_code == 1
        service.scan_uploaded_files.assert_not_called()


class TestHistoryCommands:
    def test_empty_history(self, project: Path):
        result = CliRunner().invoke(hscan_cli, ["history", "-p", str(project)])
        assert result.exit_code == 0
        assert "No scans stored" in result.output

    def test_history_and_show(self, project: Path):
        asyncio.run(LocalScanStore(project / "scans.json").save(_result("s1")))

        history = CliRunner().invoke(hscan_cli, ["history", "-p", str(project)])
        assert history.exit_code == 0
        assert "s1" in history.output

        shown = CliRunner().invoke(hscan_cli, ["show", "s1", "-p", str(project)])
        assert shown.exit_code == 0
        assert "CRITICAL" in shown.output
        assert "a.py:4" in shown.output

    def test_show_missing(self, project: Path):
        result = CliRunner().invoke(hscan_cli, ["show", "missing", "-p", str(project)])
        assert result.exit_code == 1

    def test_clear(self, project: Path):
        store = LocalScanStore(project / "scans.json")
        asyncio.run(store.save(_result("s1")))
        result = CliRunner().invoke(hscan_cli, ["clear", "--yes", "-p", str(project)])
        assert result.exit_code == 0
        assert asyncio.run(store.list_all()) == []

    def test_clear_aborts_without_confirmation(self, project: Path):
        store = LocalScanStore(project / "scans.json")
        asyncio.run(store.save(_result("s1")))
        result = CliRunner().invoke(hscan_cli, ["clear", "-p", str(project)], input="n\n")
        assert result.exit_code == 1
        assert len(asyncio.run(store.list_all())) == 1


class TestCorruptHistory:
    @pytest.fixture
    def corrupt(self, project: Path) -> Path:
        (project / "scans.json").write_text("{not json", encoding="utf-8")
        return project

    def test_history_reports_store_error(self, corrupt: Path):
        result = CliRunner().invoke(hscan_cli, ["history", "-p", str(corrupt)])
        assert result.exit_code == 1
        assert "Cannot read scan history" in result.output

    def test_show_reports_store_error(self, corrupt: Path):
        result = CliRunner().invoke(hscan_cli, ["show", "s1", "-p", str(corrupt)])
        assert result.exit_code == 1
        assert "Cannot read scan history" in result.output

    def test_store_error_during_scan_exit_code(self, project: Path, service: MagicMock):
        service.scan_repository.side_effect = StoreError("Supabase POST failed")
        with patch("hipaascan.core.orchestrator.build_scan_service", return_value=service):
            result = CliRunner().invoke(hscan_cli, ["repo", REPO, "-p", str(project)])
        assert result.exit_code == 1
        assert "Supabase POST failed" in result.output
