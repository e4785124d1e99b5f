"""Scan run data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .finding import Finding, ScanSummary


class ScanSource(str, Enum):
    GITHUB = "github"
    UPLOAD = "upload"


class ScanStatus(str, Enum):
    """Only completed runs are stored; failed or cancelled runs leave no record."""

    COMPLETED = "COMPLETED"


class ScanResult(BaseModel):
    id: str
    timestamp: datetime
    source: ScanSource
    source_name: str
    status: ScanStatus = ScanStatus.COMPLETED
    findings: list[Finding] = []
    summary: ScanSummary = ScanSummary()
    last_commit_hash: Optional[str] = None
    files_scanned: int = 0


@dataclass(frozen=True)
class ScanProgress:
    file_name: str
    current: int
    total: int
    percentage: int
