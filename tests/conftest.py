"""Shared fixtures for hipaascan tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from hipaascan.core.store import LocalScanStore
from tests.fakes import FakeGitHub, dir_entry, file_entry


@pytest.fixture
def store(tmp_path: Path) -> LocalScanStore:
    return LocalScanStore(tmp_path / "scans.json")


@pytest.fixture
def billing_repo() -> FakeGitHub:
    """acme/billing: two source files, an image, and a skipped directory."""
    tree = {
        "": [
            file_entry("b.png"),
            dir_entry("node_modules"),
            file_entry("a.py"),
            dir_entry("src"),
        ],
        "node_modules": [file_entry("node_modules/x.js")],
        "src": [file_entry("src/api.ts")],
    }
    contents = {
        "https://raw.test/a.py": "print('patient', ssn)\n",
        "https://raw.test/src/api.ts": "fetch('http://ehr.local')\n",
    }
    return FakeGitHub(tree, contents, sha="sha-1")


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
