"""Test doubles for the GitHub client and the finding oracle."""

from __future__ import annotations

from typing import Optional

from hipaascan.core.errors import GitHubAccessError
from hipaascan.core.github import DirectoryEntry
from hipaascan.models.finding import Finding, Severity


class FakeGitHub:
    """In-memory stand-in for GitHubClient.

    ``tree`` maps a directory path ("" for the root) to its entries; file
    contents are keyed by download URL.
    """

    def __init__(
        self,
        tree: dict[str, list[DirectoryEntry]],
        contents: Optional[dict[str, str]] = None,
        sha: str = "abc123",
        failing_dirs: tuple[str, ...] = (),
    ):
        self.tree = tree
        self.contents = contents or {}
        self.sha = sha
        self.failing_dirs = set(failing_dirs)
        self.listed: list[str] = []
        self.fetched: list[str] = []

    async def latest_commit_sha(self, owner: str, repo: str) -> str:
        return self.sha

    async def list_directory(self, owner: str, repo: str, path: str = "") -> list[DirectoryEntry]:
        self.listed.append(path)
        if path in self.failing_dirs:
            raise GitHubAccessError(500, has_token=False)
        return list(self.tree.get(path, []))

    async def fetch_file(self, download_url: str) -> str:
        self.fetched.append(download_url)
        return self.contents.get(download_url, "")


class FakeOracle:
    """Returns canned findings per file name and records every call."""

    def __init__(self, by_file: Optional[dict[str, list[Severity]]] = None):
        self.by_file = by_file or {}
        self.calls: list[tuple[str, str]] = []

    async def analyze(self, code: str, file_name: str) -> list[Finding]:
        self.calls.append((file_name, code))
        return [
            make_finding(f"{file_name}-{i}", severity, file=file_name)
            for i, severity in enumerate(self.by_file.get(file_name, []))
        ]


def file_entry(path: str) -> DirectoryEntry:
    name = path.rsplit("/", 1)[-1]
    return DirectoryEntry(name=name, path=path, type="file", download_url=f"https://raw.test/{path}")


def dir_entry(path: str) -> DirectoryEntry:
    name = path.rsplit("/", 1)[-1]
    return DirectoryEntry(name=name, path=path, type="dir")


def make_finding(
    finding_id: str,
    severity: Severity = Severity.HIGH,
    file: Optional[str] = None,
    line: Optional[int] = None,
) -> Finding:
    return Finding(
        id=finding_id,
        title=f"Issue {finding_id}",
        severity=severity,
        category="Technical Safeguards",
        description="PHI written to logs.",
        recommendation="Remove PHI from log statements.",
        code_example="logger.info('done')",
        file=file,
        line=line,
    )
