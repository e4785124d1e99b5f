"""Commit-based change detection for incremental repository scans."""

from __future__ import annotations

from typing import Optional, Protocol

from rich.console import Console
from rich.markup import escape

from .errors import StoreError
from .store import ScanStore
from ..models.scan import ScanResult, ScanSource, ScanStatus

console = Console()


class RevisionSource(Protocol):
    async def latest_commit_sha(self, owner: str, repo: str) -> str: ...


class ChangeDetector:
    def __init__(self, revisions: RevisionSource, store: ScanStore):
        self.revisions = revisions
        self.store = store

    async def latest_revision(self, owner: str, repo: str) -> str:
        return await self.revisions.latest_commit_sha(owner, repo)

    async def should_skip(
        self, source_name: str, candidate_revision: str
    ) -> Optional[ScanResult]:
        """Return the previous result if the repository has not changed.

        The match is on the exact source name, so two spellings of the same
        repository URL are treated as different sources.
        """
        try:
            previous = await self.store.find_latest_by_source(source_name, ScanSource.GITHUB)
        except StoreError as e:
            console.print(
                f"  [yellow]WARN[/yellow] Previous scan unavailable, running a full scan: "
                f"{escape(str(e))}"
            )
            return None
        if previous is None or previous.last_commit_hash != candidate_revision:
            return None
        return previous.model_copy(
            update={
                "status": ScanStatus.COMPLETED,
                "last_commit_hash": candidate_revision,
            }
        )
