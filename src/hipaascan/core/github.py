"""GitHub repository access: URL parsing and the content API client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import httpx

from .errors import GitHubAccessError, GitHubConnectionError, GitHubResponseError

CONNECTION_HINT = (
    'Please ensure you have a valid GitHub token with "repo" scope '
    "for private repositories."
)


@dataclass(frozen=True)
class RepoRef:
    owner: str
    name: str


@dataclass(frozen=True)
class DirectoryEntry:
    """One item of a GitHub contents listing."""

    name: str
    path: str
    type: str
    download_url: Optional[str] = None


def parse_github_url(url: str) -> Optional[RepoRef]:
    """Extract (owner, name) from a repository URL.

    Returns None when fewer than two path segments are present.
    """
    if not url:
        return None
    clean = url.strip()
    if clean.endswith("/"):
        clean = clean[:-1]
    segments = [s for s in clean.split("/") if s]
    if len(segments) < 2:
        return None
    return RepoRef(owner=segments[-2], name=segments[-1])


class GitHubClient:
    """Thin async wrapper over the three GitHub calls a scan needs."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: str = "https://api.github.com",
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token or None
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def has_token(self) -> bool:
        return self.token is not None

    def auth_headers(self) -> dict[str, str]:
        """Headers for a request; empty when no token is configured."""
        if not self.token:
            return {}
        return {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github.v3+json",
        }

    async def _get(self, url: str, what: str) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(url, headers=self.auth_headers())
        except httpx.TransportError as e:
            raise GitHubConnectionError(
                f"Unable to {what}. This may be due to network or CORS "
                f"restrictions. {CONNECTION_HINT}"
            ) from e

        if not response.is_success:
            raise GitHubAccessError(response.status_code, self.has_token)
        return response

    @staticmethod
    def _decode(response: httpx.Response, what: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise GitHubResponseError(f"GitHub returned invalid JSON for {what}") from e

    async def latest_commit_sha(self, owner: str, repo: str) -> str:
        url = f"{self.api_url}/repos/{owner}/{repo}/commits/HEAD"
        response = await self._get(url, "connect to GitHub API")
        data = self._decode(response, "the latest commit")
        sha = data.get("sha") if isinstance(data, dict) else None
        if not isinstance(sha, str) or not sha:
            raise GitHubResponseError(f"GitHub returned no commit sha for {owner}/{repo}")
        return sha

    async def list_directory(
        self, owner: str, repo: str, path: str = ""
    ) -> list[DirectoryEntry]:
        url = f"{self.api_url}/repos/{owner}/{repo}/contents"
        if path:
            url += f"/{quote(path)}"
        response = await self._get(url, "connect to GitHub API")
        data = self._decode(response, f"directory '{path or '/'}'")
        # A file path returns a single object instead of a listing
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise GitHubResponseError(f"GitHub returned no listing for '{path or '/'}'")
        try:
            return [
                DirectoryEntry(
                    name=item["name"],
                    path=item.get("path", item["name"]),
                    type=item.get("type", "file"),
                    download_url=item.get("download_url"),
                )
                for item in data
            ]
        except (KeyError, TypeError, AttributeError) as e:
            raise GitHubResponseError(
                f"GitHub returned a malformed entry in '{path or '/'}'"
            ) from e

    async def fetch_file(self, download_url: str) -> str:
        response = await self._get(download_url, "fetch file content from GitHub")
        return response.text
