"""hipaascan (hscan) - HIPAA compliance scans of GitHub repositories and local files."""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, TypeVar

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..models.finding import Severity
from ..models.scan import ScanProgress, ScanResult

if TYPE_CHECKING:
    from ..core.orchestrator import ScanRun
    from ..core.store import ScanStore

console = Console()

T = TypeVar("T")

EXIT_SCAN_ERROR = 1
EXIT_CANCELLED = 130

SEVERITY_COLORS = {
    Severity.CRITICAL: "red",
    Severity.HIGH: "yellow",
    Severity.MEDIUM: "cyan",
    Severity.LOW: "dim",
}


def _load_config(project: str, overrides: Optional[dict] = None) -> dict:
    from ..core.config import get_effective_config

    return get_effective_config(Path(project), cli_overrides=overrides or None)


def _print_progress(progress: ScanProgress) -> None:
    console.print(
        f"  [cyan]{progress.percentage:>3}%[/cyan] "
        f"({progress.current}/{progress.total}) {escape(progress.file_name)}"
    )


def _print_summary(result: ScanResult) -> None:
    s = result.summary
    console.print()
    console.print(f"  Scan:     [white]{result.id}[/white]")
    console.print(f"  Source:   [white]{escape(result.source_name)}[/white]")
    if result.last_commit_hash:
        console.print(f"  Commit:   [white]{result.last_commit_hash}[/white]")
    console.print(f"  Files:    [white]{result.files_scanned}[/white]")
    console.print(
        f"  Findings: [red]{s.critical} critical[/red], [yellow]{s.high} high[/yellow], "
        f"[cyan]{s.medium} medium[/cyan], [dim]{s.low} low[/dim]"
    )
    console.print()


async def _run_cancellable(start: Callable[["ScanRun"], Awaitable[ScanResult]]) -> ScanResult:
    """Run a scan; the first Ctrl-C cancels it cooperatively."""
    from ..core.orchestrator import ScanRun

    run = ScanRun(on_progress=_print_progress)
    loop = asyncio.get_running_loop()

    def _request_cancel() -> None:
        console.print("\n  [yellow]Stopping after the current file...[/yellow]")
        run.cancel()

    try:
        loop.add_signal_handler(signal.SIGINT, _request_cancel)
        installed = True
    except (NotImplementedError, RuntimeError):
        installed = False
    try:
        return await start(run)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _execute(ctx: click.Context, start: Callable[["ScanRun"], Awaitable[ScanResult]]) -> None:
    from ..core.errors import ScanCancelledError, ScanError, StoreError

    try:
        result = asyncio.run(_run_cancellable(start))
    except ScanCancelledError as e:
        console.print(f"  [yellow]{escape(str(e))}[/yellow]")
        ctx.exit(EXIT_CANCELLED)
        return
    except (ScanError, StoreError) as e:
        console.print(f"  [red]ERROR[/red] {escape(str(e))}")
        ctx.exit(EXIT_SCAN_ERROR)
        return
    _print_summary(result)


def _run_store(
    ctx: click.Context, project: str, operation: Callable[["ScanStore"], Awaitable[T]]
) -> T:
    """Run one store operation, exiting with an error if the store fails."""
    from ..core.errors import StoreError
    from ..core.store import get_scan_store

    store = get_scan_store(_load_config(project), Path(project))
    try:
        return asyncio.run(operation(store))
    except StoreError as e:
        console.print(f"  [red]ERROR[/red] {escape(str(e))}")
        ctx.exit(EXIT_SCAN_ERROR)


@click.group()
def hscan_cli() -> None:
    """hipaascan - HIPAA compliance scanning with AI analysis."""


@hscan_cli.command()
@click.pass_context
@click.argument("repo_url")
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), default=".", help="Directory holding .hipaascan/config.yaml")
@click.option("--full", is_flag=True, help="Rescan even if the head commit is unchanged")
@click.option("--max-files", type=click.IntRange(min=1), help="Maximum files to scan")
@click.option("--github-token", type=str, help="GitHub token for private repositories")
@click.option("--ai-provider", type=click.Choice(["anthropic", "openai", "gemini", "ollama"]))
@click.option("--ai-model", type=str, help="Model override")
@click.option("--ai-endpoint", type=str, help="Endpoint override")
@click.option("--dry-run", is_flag=True, help="Use placeholder findings (no AI calls)")
def repo(
    ctx: click.Context,
    repo_url: str,
    project: str,
    full: bool,
    max_files: int | None,
    github_token: str | None,
    ai_provider: str | None,
    ai_model: str | None,
    ai_endpoint: str | None,
    dry_run: bool,
) -> None:
    """Scan a GitHub repository."""
    from ..core.orchestrator import build_scan_service

    overrides: dict = {}
    if max_files:
        overrides.setdefault("github", {})["max_files"] = max_files
    if github_token:
        overrides.setdefault("github", {})["token"] = github_token
    if dry_run:
        overrides.setdefault("ai", {})["dry_run"] = True

    config = _load_config(project, overrides)
    service = build_scan_service(
        config,
        project_path=Path(project),
        ai_provider=ai_provider,
        ai_model=ai_model,
        ai_endpoint=ai_endpoint,
    )
    incremental = bool(config.get("scan", {}).get("incremental", True)) and not full

    console.print()
    console.print("  [bold cyan]HIPAASCAN[/bold cyan]")
    console.print(f"  Repository: [white]{escape(repo_url)}[/white]")
    console.print(f"  Mode:       [white]{'incremental' if incremental else 'full'}[/white]")
    if dry_run:
        console.print("  AI:         [yellow]DRY RUN[/yellow]")
    console.print()

    _execute(
        ctx,
        lambda run: service.scan_repository(repo_url, incremental=incremental, run=run),
    )


@hscan_cli.command()
@click.pass_context
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), default=".")
@click.option("--max-files", type=click.IntRange(min=1), help="Maximum files to scan")
@click.option("--ai-provider", type=click.Choice(["anthropic", "openai", "gemini", "ollama"]))
@click.option("--ai-model", type=str, help="Model override")
@click.option("--dry-run", is_flag=True, help="Use placeholder findings (no AI calls)")
def files(
    ctx: click.Context,
    paths: tuple[Path, ...],
    project: str,
    max_files: int | None,
    ai_provider: str | None,
    ai_model: str | None,
    dry_run: bool,
) -> None:
    """Scan local files or directories."""
    from ..core.orchestrator import build_scan_service
    from ..core.scanner import collect_local_files

    overrides: dict = {}
    if dry_run:
        overrides.setdefault("ai", {})["dry_run"] = True
    config = _load_config(project, overrides)
    limit = max_files or config.get("github", {}).get("max_files", 50)

    uploads = collect_local_files(paths, max_files=limit)
    if not uploads:
        console.print("  [yellow]WARN[/yellow] No source files found")
        ctx.exit(EXIT_SCAN_ERROR)
        return

    service = build_scan_service(
        config, project_path=Path(project), ai_provider=ai_provider, ai_model=ai_model
    )
    console.print(f"\n  [bold cyan]HIPAASCAN[/bold cyan] {len(uploads)} file(s)\n")
    _execute(ctx, lambda run: service.scan_uploaded_files(uploads, run=run))


@hscan_cli.command()
@click.pass_context
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), default=".")
def history(ctx: click.Context, project: str) -> None:
    """List stored scans, newest first."""
    results = _run_store(ctx, project, lambda store: store.list_all())
    if not results:
        console.print("  [dim]No scans stored[/dim]")
        return

    table = Table(title="Scan history")
    for column in ("ID", "Date", "Source", "Files", "C", "H", "M", "L"):
        table.add_column(column)
    for r in results:
        table.add_row(
            r.id,
            r.timestamp.strftime("%Y-%m-%d %H:%M"),
            escape(r.source_name),
            str(r.files_scanned),
            str(r.summary.critical),
            str(r.summary.high),
            str(r.summary.medium),
            str(r.summary.low),
        )
    console.print(table)


@hscan_cli.command()
@click.pass_context
@click.argument("scan_id")
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), default=".")
def show(ctx: click.Context, scan_id: str, project: str) -> None:
    """Show the findings of one scan."""
    result = _run_store(ctx, project, lambda store: store.get_by_id(scan_id))
    if result is None:
        console.print(f"  [red]ERROR[/red] Scan not found: {escape(scan_id)}")
        ctx.exit(EXIT_SCAN_ERROR)
        return

    _print_summary(result)
    for f in result.findings:
        color = SEVERITY_COLORS[f.severity]
        location = f.file or ""
        if location and f.line:
            location += f":{f.line}"
        console.print(f"  [{color}]{f.severity.value:<8}[/{color}] {escape(f.title)}")
        if location:
            console.print(f"           [dim]{escape(location)}[/dim]")
        if f.regulation:
            console.print(f"           [dim]{escape(f.regulation)}[/dim]")
        if f.recommendation:
            console.print(f"           {escape(f.recommendation)}")


@hscan_cli.command()
@click.pass_context
@click.option("--project", "-p", type=click.Path(exists=True, file_okay=False), default=".")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def clear(ctx: click.Context, project: str, yes: bool) -> None:
    """Delete all stored scans."""
    if not yes:
        click.confirm("Delete all stored scans?", abort=True)
    _run_store(ctx, project, lambda store: store.clear_all())
    console.print("  [green]OK[/green] Scan history cleared")


def main() -> None:
    hscan_cli()


if __name__ == "__main__":
    main()
