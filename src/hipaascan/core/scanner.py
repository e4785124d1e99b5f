"""Source file discovery for repository and upload scans.

Walks a GitHub repository through the contents API, or local paths on disk,
and selects the files that will be sent for HIPAA analysis.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator, Protocol

from rich.console import Console
from rich.markup import escape

from .errors import GitHubAccessError, GitHubConnectionError, GitHubResponseError
from .github import DirectoryEntry
from ..utils.sanitize import sanitize_error

console = Console()

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SKIP_DIRS = frozenset({
    "node_modules", ".git", "dist", "build", "target", "bin", "obj",
    ".next", "coverage", "__pycache__", ".venv", "venv", ".pytest_cache",
    "vendor",
})

SOURCE_EXTENSIONS = frozenset({
    ".js", ".ts", ".tsx", ".jsx", ".py", ".go", ".java", ".php", ".rb",
    ".sql", ".c", ".cpp", ".cs", ".swift", ".kt", ".scala", ".rs",
})

DEFAULT_MAX_FILES = 50


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RepoFile:
    path: str
    name: str
    download_url: str


@dataclass(frozen=True)
class UploadedFile:
    name: str
    content: str


class DirectoryLister(Protocol):
    async def list_directory(
        self, owner: str, repo: str, path: str = ""
    ) -> list[DirectoryEntry]: ...


def is_source_file(name: str) -> bool:
    """Check a file name against the extension allow-list."""
    return PurePosixPath(name).suffix.lower() in SOURCE_EXTENSIONS


def _sorted_entries(entries: Iterable[DirectoryEntry]) -> Iterator[DirectoryEntry]:
    return iter(sorted(entries, key=lambda e: e.name))


def _has_candidates(pending: list[Iterator[DirectoryEntry]]) -> bool:
    """Whether an unvisited entry could still yield a file; consumes the iterators."""
    for entries in pending:
        for entry in entries:
            if entry.type == "file" and is_source_file(entry.name) and entry.download_url:
                return True
            if entry.type == "dir" and entry.name not in SKIP_DIRS:
                return True
    return False


# ---------------------------------------------------------------------------
# GitHub repository discovery
# ---------------------------------------------------------------------------

async def discover_repository_files(
    lister: DirectoryLister,
    owner: str,
    repo: str,
    max_files: int = DEFAULT_MAX_FILES,
) -> tuple[RepoFile, ...]:
    """Collect up to max_files source files from a repository, depth first.

    Each directory is fully explored before its later siblings, so when the
    budget runs out the result is the first max_files matches in that order.
    A failing root listing propagates; a failing subdirectory is skipped.
    """
    if max_files <= 0:
        return ()

    found: list[RepoFile] = []
    pending = [_sorted_entries(await lister.list_directory(owner, repo, ""))]

    while pending and len(found) < max_files:
        entry = next(pending[-1], None)
        if entry is None:
            pending.pop()
            continue

        if entry.type == "file":
            if is_source_file(entry.name) and entry.download_url:
                found.append(RepoFile(entry.path, entry.name, entry.download_url))
        elif entry.type == "dir":
            if entry.name in SKIP_DIRS:
                console.print(f"  [dim]Skipping directory: {escape(entry.path)}[/dim]")
                continue
            try:
                children = await lister.list_directory(owner, repo, entry.path)
            except (GitHubAccessError, GitHubConnectionError, GitHubResponseError) as e:
                console.print(
                    f"  [yellow]WARN[/yellow] Failed to scan subdirectory "
                    f"{escape(entry.path)}: {escape(sanitize_error(str(e)))}"
                )
                continue
            pending.append(_sorted_entries(children))

    if len(found) >= max_files and _has_candidates(pending):
        console.print(
            f"  [yellow]WARN[/yellow] Reached maximum file limit ({max_files}), "
            f"remaining files not scanned"
        )
    return tuple(found)


# ---------------------------------------------------------------------------
# Local (upload) discovery
# ---------------------------------------------------------------------------

def _walk_source_files(root: Path) -> Iterator[Path]:
    for dirpath, dirs, files in os.walk(root):
        # Prune excluded dirs, keep walk order stable
        dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS)
        for fname in sorted(files):
            if is_source_file(fname):
                yield Path(dirpath) / fname


def collect_local_files(
    paths: Iterable[Path],
    max_files: int = DEFAULT_MAX_FILES,
) -> list[UploadedFile]:
    """Read local files for an upload scan.

    Files named explicitly are always taken; directories are walked with the
    same extension and directory filters as a repository scan.
    """
    uploads: list[UploadedFile] = []

    for path in paths:
        path = Path(path)
        if path.is_dir():
            candidates = [
                (p, p.relative_to(path).as_posix()) for p in _walk_source_files(path)
            ]
        else:
            candidates = [(path, path.name)]

        for file_path, name in candidates:
            if len(uploads) >= max_files:
                return uploads
            content = file_path.read_text(encoding="utf-8", errors="replace")
            uploads.append(UploadedFile(name=name, content=content))

    return uploads
