"""Scan orchestrator.

Drives one scan run: change detection, file discovery, sequential per-file
analysis with progress and cooperative cancellation, then aggregation and a
single write to the scan store.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from rich.console import Console
from rich.markup import escape

from .analyzer import FindingOracle, HipaaAnalyzer
from .changes import ChangeDetector
from .config import get_github_token
from .errors import InvalidRepositoryURL, ScanCancelledError
from .findings import summarize_findings
from .github import GitHubClient, parse_github_url
from .scanner import DEFAULT_MAX_FILES, UploadedFile, discover_repository_files
from .store import ScanStore, get_scan_store
from ..models.finding import Finding
from ..models.scan import ScanProgress, ScanResult, ScanSource, ScanStatus
from ..providers.base import get_ai_provider

console = Console()

ProgressCallback = Callable[[ScanProgress], None]


class RunState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    ANALYZING = "analyzing"
    AGGREGATING = "aggregating"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


def progress_percentage(current: int, total: int) -> int:
    """100 * current / total rounded half up."""
    return (200 * current + total) // (2 * total)


class ScanRun:
    """State owned by exactly one scan run.

    Holding on to the run lets a caller cancel it; cancel() only stops the
    next file from starting, a request already in flight completes.
    """

    def __init__(self, on_progress: Optional[ProgressCallback] = None):
        self.id = uuid.uuid4().hex
        self.started_at: Optional[datetime] = None
        self.state = RunState.IDLE
        self.progress: Optional[ScanProgress] = None
        self.on_progress = on_progress
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def start(self) -> None:
        if self.state is not RunState.IDLE:
            raise RuntimeError(f"Scan run {self.id} already {self.state.value}")
        self.started_at = datetime.now(timezone.utc)
        self.state = RunState.DISCOVERING

    def checkpoint(self) -> None:
        if self._cancelled:
            self.state = RunState.CANCELLED
            raise ScanCancelledError()

    def report(self, file_name: str, current: int, total: int) -> None:
        self.progress = ScanProgress(
            file_name=file_name,
            current=current,
            total=total,
            percentage=progress_percentage(current, total),
        )
        if self.on_progress:
            self.on_progress(self.progress)


class ScanService:
    """Entry points for repository and upload scans."""

    def __init__(
        self,
        github: GitHubClient,
        oracle: FindingOracle,
        store: ScanStore,
        max_files: int = DEFAULT_MAX_FILES,
    ):
        self.github = github
        self.oracle = oracle
        self.store = store
        self.max_files = max_files
        self.changes = ChangeDetector(github, store)

    def _prepare_run(
        self, run: Optional[ScanRun], on_progress: Optional[ProgressCallback]
    ) -> ScanRun:
        run = run or ScanRun()
        if on_progress is not None:
            run.on_progress = on_progress
        run.start()
        return run

    async def _analyze_files(
        self,
        run: ScanRun,
        names: Sequence[str],
        load: Callable[[int], Awaitable[str]],
    ) -> list[Finding]:
        run.state = RunState.ANALYZING
        findings: list[Finding] = []
        total = len(names)
        for index, name in enumerate(names):
            run.checkpoint()
            run.report(name, index + 1, total)
            code = await load(index)
            file_findings = await self.oracle.analyze(code, name)
            console.print(
                f"  [dim][{index + 1}/{total}][/dim] {escape(name)}: "
                f"{len(file_findings)} findings"
            )
            findings.extend(file_findings)
        return findings

    async def _complete(
        self,
        run: ScanRun,
        source: ScanSource,
        source_name: str,
        findings: list[Finding],
        files_scanned: int,
        last_commit_hash: Optional[str] = None,
    ) -> ScanResult:
        run.state = RunState.AGGREGATING
        result = ScanResult(
            id=run.id,
            timestamp=run.started_at,
            source=source,
            source_name=source_name,
            status=ScanStatus.COMPLETED,
            findings=findings,
            summary=summarize_findings(findings),
            last_commit_hash=last_commit_hash,
            files_scanned=files_scanned,
        )
        await self.store.save(result)
        run.state = RunState.COMPLETED
        s = result.summary
        console.print(
            f"  [green]OK[/green] {len(findings)} findings "
            f"({s.critical}C/{s.high}H/{s.medium}M/{s.low}L) "
            f"across {files_scanned} files"
        )
        return result

    async def scan_repository(
        self,
        repo_url: str,
        incremental: bool = True,
        on_progress: Optional[ProgressCallback] = None,
        run: Optional[ScanRun] = None,
    ) -> ScanResult:
        """Scan a GitHub repository, reusing the last result if unchanged."""
        run = self._prepare_run(run, on_progress)
        try:
            repo = parse_github_url(repo_url)
            if repo is None:
                raise InvalidRepositoryURL(repo_url)

            console.print(f"  [cyan]Scanning {repo.owner}/{repo.name}...[/cyan]")
            revision = await self.changes.latest_revision(repo.owner, repo.name)
            console.print(f"  [green]OK[/green] Latest commit: {revision[:12]}")

            if incremental:
                previous = await self.changes.should_skip(repo_url, revision)
                if previous is not None:
                    run.state = RunState.COMPLETED
                    console.print(
                        f"  [green]OK[/green] No changes since scan {previous.id}, "
                        f"reusing result"
                    )
                    return previous

            run.checkpoint()
            files = await discover_repository_files(
                self.github, repo.owner, repo.name, self.max_files
            )
            console.print(f"  [green]OK[/green] {len(files)} files to scan")

            async def load(index: int) -> str:
                return await self.github.fetch_file(files[index].download_url)

            findings = await self._analyze_files(run, [f.path for f in files], load)
            return await self._complete(
                run,
                ScanSource.GITHUB,
                repo_url,
                findings,
                files_scanned=len(files),
                last_commit_hash=revision,
            )
        except ScanCancelledError:
            run.state = RunState.CANCELLED
            raise
        except BaseException:
            run.state = RunState.FAILED
            raise

    async def scan_uploaded_files(
        self,
        files: Sequence[UploadedFile],
        on_progress: Optional[ProgressCallback] = None,
        run: Optional[ScanRun] = None,
    ) -> ScanResult:
        """Scan files supplied directly by the caller."""
        run = self._prepare_run(run, on_progress)
        try:
            async def load(index: int) -> str:
                return files[index].content

            findings = await self._analyze_files(run, [f.name for f in files], load)
            return await self._complete(
                run,
                ScanSource.UPLOAD,
                f"{len(files)} file(s)",
                findings,
                files_scanned=len(files),
            )
        except ScanCancelledError:
            run.state = RunState.CANCELLED
            raise
        except BaseException:
            run.state = RunState.FAILED
            raise


def build_scan_service(
    config: dict,
    project_path: Optional[Path] = None,
    ai_provider: Optional[str] = None,
    ai_model: Optional[str] = None,
    ai_endpoint: Optional[str] = None,
) -> ScanService:
    """Wire a ScanService from an effective configuration."""
    github_config = config.get("github", {})
    github = GitHubClient(
        token=get_github_token(config),
        api_url=github_config.get("api_url", "https://api.github.com"),
        timeout=github_config.get("timeout_seconds", 30),
    )

    if config.get("ai", {}).get("dry_run"):
        oracle = HipaaAnalyzer(dry_run=True)
    else:
        provider = get_ai_provider(
            config,
            provider_override=ai_provider,
            model_override=ai_model,
            endpoint_override=ai_endpoint,
        )
        oracle = HipaaAnalyzer(provider)

    return ScanService(
        github=github,
        oracle=oracle,
        store=get_scan_store(config, project_path),
        max_files=github_config.get("max_files", DEFAULT_MAX_FILES),
    )
