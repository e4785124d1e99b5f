"""Exceptions raised by the scan pipeline.

Everything that aborts a run derives from ScanError so callers can catch one
type. ScanCancelledError is kept separate from the failure kinds so a user
cancellation is not reported as a failure.
"""

from __future__ import annotations


class ScanError(Exception):
    """Base class for errors that abort a scan run."""


class InvalidRepositoryURL(ScanError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Invalid GitHub URL: {url!r}")


class GitHubAccessError(ScanError):
    """Non-2xx response from the GitHub API."""

    def __init__(self, status_code: int, has_token: bool):
        self.status_code = status_code
        self.has_token = has_token
        super().__init__(describe_github_error(status_code, has_token))


class GitHubConnectionError(ScanError):
    """The GitHub API could not be reached at all."""


class GitHubResponseError(ScanError):
    """A successful GitHub response whose body is not what the API documents."""


class ScanCancelledError(ScanError):
    def __init__(self, message: str = "Scan cancelled by user"):
        super().__init__(message)


class StoreError(Exception):
    """A scan store backend failed to read or write."""


def describe_github_error(status_code: int, has_token: bool) -> str:
    """Map a GitHub API status code to a user-facing message.

    A 404 is ambiguous: GitHub hides private repositories from anonymous
    callers, so the message depends on whether a token was sent.
    """
    if status_code == 401:
        return (
            "GitHub authentication failed. Please verify your token is valid "
            'and has "repo" scope permissions.'
        )
    if status_code == 403:
        return (
            "Your GitHub token does not have required permissions. "
            'Please ensure it has "repo" scope.'
        )
    if status_code == 404:
        if not has_token:
            return (
                "Repository is private. Please provide a GitHub personal access "
                "token to scan private repositories."
            )
        return "Repository not found. Please verify the URL is correct."
    return "Failed to access GitHub repository. Please try again."
