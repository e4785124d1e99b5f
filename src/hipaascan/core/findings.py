"""Findings parser: converts AI JSON output to validated Finding models."""

from __future__ import annotations

import json
import re
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from pydantic import ValidationError

from ..models.finding import Finding, ScanSummary, Severity


class MalformedOutputError(ValueError):
    """The oracle reply held no parseable JSON array of findings."""


@dataclass
class ParsedFindings:
    findings: list[Finding] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)


def new_finding_id() -> str:
    return uuid.uuid4().hex[:12]


def _extract_json_array(content: str) -> list:
    """Pull the outermost JSON array out of a model reply.

    Models sometimes wrap the array in prose or a ```json fence.
    """
    match = re.search(r"\[[\s\S]*\]", content)
    text = match.group(0) if match else content
    try:
        data = json.loads(text.strip())
    except json.JSONDecodeError as e:
        raise MalformedOutputError(f"Response is not valid JSON: {e.msg}") from e
    if isinstance(data, dict) and isinstance(data.get("findings"), list):
        data = data["findings"]
    if not isinstance(data, list):
        raise MalformedOutputError("Response JSON is not an array of findings")
    return data


def _coerce_raw(raw: dict) -> dict:
    entry = {k: v for k, v in raw.items() if v is not None}
    entry.pop("id", None)
    if isinstance(entry.get("severity"), str):
        entry["severity"] = entry["severity"].strip().upper()
    line = entry.get("line")
    if isinstance(line, str) and line.strip().isdigit():
        entry["line"] = line = int(line.strip())
    if isinstance(line, int) and line < 1:
        entry.pop("line")
    if entry.get("file") == "":
        entry.pop("file")
    return entry


def parse_findings_json(content: str) -> ParsedFindings:
    """Validate an oracle reply into Finding models.

    Entries that do not fit the Finding schema are quarantined in
    ``rejected`` instead of being passed through. Every kept finding gets a
    fresh id; file and line stay absent when the oracle did not supply them.
    """
    parsed = ParsedFindings()
    for index, raw in enumerate(_extract_json_array(content)):
        if not isinstance(raw, dict):
            parsed.rejected.append(f"entry {index}: not an object")
            continue
        try:
            finding = Finding.model_validate({**_coerce_raw(raw), "id": new_finding_id()})
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
            parsed.rejected.append(f"entry {index}: invalid {fields or 'finding'}")
            continue
        parsed.findings.append(finding)
    return parsed


def summarize_findings(findings: Iterable[Finding]) -> ScanSummary:
    """Count findings per severity."""
    counts = Counter(f.severity for f in findings)
    return ScanSummary(
        critical=counts[Severity.CRITICAL],
        high=counts[Severity.HIGH],
        medium=counts[Severity.MEDIUM],
        low=counts[Severity.LOW],
    )
