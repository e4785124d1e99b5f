"""Tests for core/findings.py and utils/sanitize.py."""

from __future__ import annotations

import json

import pytest

from hipaascan.core.findings import MalformedOutputError, parse_findings_json, summarize_findings
from hipaascan.models.finding import Finding, Severity
from hipaascan.utils.sanitize import sanitize_error
from tests.fakes import make_finding

VALID_ENTRY = {
    "title": "SSN logged",
    "severity": "CRITICAL",
    "category": "Privacy Rule",
    "description": "Patient SSN is printed.",
    "recommendation": "Do not log identifiers.",
    "codeExample": "log.info('patient updated')",
    "file": "a.py",
    "line": 3,
    "regulation": "45 CFR 164.312(b)",
    "penaltyTier": "Tier 3",
}


class TestParseFindingsJSON:
    def test_plain_array(self):
        parsed = parse_findings_json(json.dumps([VALID_ENTRY]))
        assert parsed.rejected == []
        f = parsed.findings[0]
        assert f.severity == Severity.CRITICAL
        assert f.code_example == "log.info('patient updated')"
        assert f.penalty_tier == "Tier 3"
        assert (f.file, f.line) == ("a.py", 3)

    def test_empty_array(self):
        parsed = parse_findings_json("[]")
        assert parsed.findings == []

    def test_array_inside_prose_and_fence(self):
        content = "Here you go:\n```json\n" + json.dumps([VALID_ENTRY]) + "\n```\nDone."
        assert len(parse_findings_json(content).findings) == 1

    def test_findings_object(self):
        content = json.dumps({"findings": [VALID_ENTRY]})
        # the array regex finds the inner list first
        assert len(parse_findings_json(content).findings) == 1

    def test_not_json_raises(self):
        with pytest.raises(MalformedOutputError):
            parse_findings_json("I could not analyze this file.")

    def test_object_without_findings_raises(self):
        with pytest.raises(MalformedOutputError):
            parse_findings_json('{"result": "ok"}')

    def test_ids_are_fresh_and_unique(self):
        entries = [{**VALID_ENTRY, "id": "model-id"}, {**VALID_ENTRY, "id": "model-id"}]
        findings = parse_findings_json(json.dumps(entries)).findings
        ids = {f.id for f in findings}
        assert len(ids) == 2
        assert "model-id" not in ids

    def test_lowercase_severity_accepted(self):
        parsed = parse_findings_json(json.dumps([{**VALID_ENTRY, "severity": "high"}]))
        assert parsed.findings[0].severity == Severity.HIGH

    def test_unknown_severity_quarantined(self):
        entries = [{**VALID_ENTRY, "severity": "SEVERE"}, VALID_ENTRY]
        parsed = parse_findings_json(json.dumps(entries))
        assert len(parsed.findings) == 1
        assert parsed.rejected == ["entry 0: invalid severity"]

    def test_missing_title_quarantined(self):
        entry = {k: v for k, v in VALID_ENTRY.items() if k != "title"}
        parsed = parse_findings_json(json.dumps([entry]))
        assert parsed.findings == []
        assert "title" in parsed.rejected[0]

    def test_non_object_entry_quarantined(self):
        parsed = parse_findings_json(json.dumps(["oops", VALID_ENTRY]))
        assert parsed.rejected == ["entry 0: not an object"]
        assert len(parsed.findings) == 1

    def test_missing_location_stays_absent(self):
        entry = {k: v for k, v in VALID_ENTRY.items() if k not in ("file", "line")}
        f = parse_findings_json(json.dumps([entry])).findings[0]
        assert f.file is None
        assert f.line is None

    @pytest.mark.parametrize("line", [0, -4, None])
    def test_out_of_range_line_dropped(self, line):
        f = parse_findings_json(json.dumps([{**VALID_ENTRY, "line": line}])).findings[0]
        assert f.line is None

    def test_string_line_coerced(self):
        f = parse_findings_json(json.dumps([{**VALID_ENTRY, "line": "12"}])).findings[0]
        assert f.line == 12


class TestFindingModel:
    def test_line_must_be_positive(self):
        with pytest.raises(ValueError):
            Finding(id="x", title="t", severity=Severity.LOW, line=0)

    def test_serializes_with_aliases(self):
        data = make_finding("f1").model_dump(by_alias=True)
        assert "codeExample" in data
        assert "penaltyTier" in data


class TestSummarizeFindings:
    def test_counts(self):
        findings = [
            make_finding("1", Severity.CRITICAL),
            make_finding("2", Severity.HIGH),
            make_finding("3", Severity.HIGH),
            make_finding("4", Severity.LOW),
        ]
        summary = summarize_findings(findings)
        assert (summary.critical, summary.high, summary.medium, summary.low) == (1, 2, 0, 1)
        assert summary.total == len(findings)

    def test_empty(self):
        assert summarize_findings([]).total == 0


class TestSanitizeError:
    def test_anthropic_key(self):
        assert "sk-ant" not in sanitize_error("bad key sk-ant-api03-abcdef123")

    def test_github_token(self):
        msg = sanitize_error("token ghp_" + "a" * 36 + " rejected")
        assert "[REDACTED_TOKEN]" in msg

    def test_bearer(self):
        assert sanitize_error("Bearer abc.def") == "Bearer [REDACTED]"

    def test_query_key(self):
        msg = sanitize_error("GET https://x/models?key=secret123&alt=json")
        assert "secret123" not in msg
        assert "alt=json" in msg

    def test_empty(self):
        assert sanitize_error("") == ""
