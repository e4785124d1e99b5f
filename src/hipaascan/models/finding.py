"""Finding data models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Finding(BaseModel):
    """One compliance issue reported for a scanned file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    title: str
    severity: Severity
    category: str = ""
    description: str = ""
    recommendation: str = ""
    code_example: str = Field("", alias="codeExample")
    file: Optional[str] = None
    line: Optional[int] = Field(None, ge=1)
    regulation: Optional[str] = None
    penalty_tier: Optional[str] = Field(None, alias="penaltyTier")


class ScanSummary(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    @property
    def total(self) -> int:
        return self.critical + self.high + self.medium + self.low
