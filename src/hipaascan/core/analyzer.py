"""HIPAA analysis of a single file through an AI provider.

The provider is an opaque oracle: this module only builds the audit prompt,
validates what comes back, and turns provider failures into findings so one
bad file never aborts a scan.
"""

from __future__ import annotations

import re
from typing import Optional, Protocol

from rich.console import Console
from rich.markup import escape

from .findings import MalformedOutputError, new_finding_id, parse_findings_json
from ..models.finding import Finding, Severity
from ..models.provider import CompletionResult
from ..providers.base import AIProvider, is_rate_limited
from ..utils.sanitize import sanitize_error

console = Console()

SYSTEM_PROMPT = (
    "You are a HIPAA compliance auditor reviewing source code for violations "
    "of the HIPAA Security Rule and Privacy Rule. You answer with a JSON array "
    "only, no prose."
)

AUDIT_CHECKLIST = """\
TECHNICAL SAFEGUARDS:
1. Hardcoded credentials, passwords, API keys, or secrets
2. Unencrypted data storage (databases, files, variables containing PHI)
3. Unencrypted data transmission (HTTP instead of HTTPS, plain connections)
4. Missing or inadequate authentication mechanisms
5. Missing or inadequate authorization/access controls
6. Insufficient audit logging for PHI access and modifications
7. Missing data integrity verification
8. Insecure session management
9. SQL injection (dynamic query construction)
10. Missing input validation and sanitization

PRIVACY RULE:
11. Exposure of Protected Health Information (names, SSNs, medical records)
12. Insecure logging that could expose PHI
13. Violations of the minimum necessary standard
14. Data retention and disposal policy violations"""

FINDING_FIELDS = """\
- title: string (concise violation title)
- severity: string (exactly one of: "CRITICAL", "HIGH", "MEDIUM", "LOW")
- category: string (e.g. "Technical Safeguards", "Privacy Rule", "Administrative Safeguards")
- description: string (explanation of the violation and its HIPAA implications)
- recommendation: string (specific actionable fix)
- codeExample: string (secure code snippet that resolves the issue)
- file: string (MUST be "{file_name}")
- line: number (line where the violation occurs, counting from 1)
- regulation: string (CFR citation such as "45 CFR 164.312(a)(1)", if applicable)
- penaltyTier: string (one of "Tier 1" to "Tier 4", if applicable)"""

RATE_LIMIT_PATTERN = re.compile(r"rate.?limit|\brate\b|quota|throttl", re.IGNORECASE)

PLACEHOLDER_FINDINGS = (
    {
        "title": "Hardcoded API Key Detected",
        "severity": Severity.CRITICAL,
        "category": "Security",
        "description": "Found potential hardcoded API key in {file_name}. This could expose sensitive credentials.",
        "recommendation": "Move API keys to environment variables and never commit them to version control.",
        "code_example": "api_key = os.environ['API_KEY']  # Use environment variables",
    },
    {
        "title": "Missing Encryption in Transit",
        "severity": Severity.HIGH,
        "category": "Technical Safeguards",
        "description": "HTTP connection detected in {file_name}. HIPAA requires encryption in transit for PHI.",
        "recommendation": "Use HTTPS for all API calls handling PHI data.",
        "code_example": 'url = "https://api.example.com"  # Always use HTTPS',
    },
    {
        "title": "Potential PHI Logging",
        "severity": Severity.MEDIUM,
        "category": "Privacy Rule",
        "description": "Logging detected in {file_name}. This could inadvertently log PHI data.",
        "recommendation": "Implement structured logging that filters out PHI data.",
        "code_example": 'logger.info("User action completed", extra={"user_id": user.id})',
    },
)


class FindingOracle(Protocol):
    async def analyze(self, code: str, file_name: str) -> list[Finding]: ...


def build_audit_prompt(code: str, file_name: str) -> str:
    """Build the user prompt: checklist, required fields, numbered source."""
    numbered = "\n".join(
        f"{index}: {line}" for index, line in enumerate(code.split("\n"), start=1)
    )
    return (
        f'Perform a comprehensive HIPAA compliance audit on the following code '
        f'from file "{file_name}".\n\n'
        f"Analyze for these HIPAA compliance violations:\n\n{AUDIT_CHECKLIST}\n\n"
        f"Return your findings as a JSON array. Each finding MUST have these fields:\n"
        f"{FINDING_FIELDS.format(file_name=file_name)}\n\n"
        f"Code to analyze (with line numbers):\n```\n{numbered}\n```\n\n"
        f"Return only the JSON array. Return [] if there are no violations."
    )


def placeholder_findings(file_name: str) -> list[Finding]:
    """Synthetic findings used for rate-limited calls and dry runs."""
    return [
        Finding(
            id=new_finding_id(),
            **{**entry, "description": entry["description"].format(file_name=file_name)},
        )
        for entry in PLACEHOLDER_FINDINGS
    ]


def configuration_error_finding(error: str) -> Finding:
    return Finding(
        id=new_finding_id(),
        title="Configuration Error",
        severity=Severity.CRITICAL,
        category="System",
        description=f"The AI analysis cannot proceed: {error}",
        recommendation="Configure the API key environment variable for the selected AI provider.",
        code_example="# API key required",
    )


def analysis_error_finding(file_name: str, error: str) -> Finding:
    return Finding(
        id=new_finding_id(),
        title="Analysis Error",
        severity=Severity.HIGH,
        category="API Error",
        description=f"Failed to analyze {file_name}: {error}",
        recommendation="Check the AI provider configuration and re-run the scan.",
        code_example="# Error occurred during analysis",
        file=file_name,
        line=1,
    )


def _is_rate_limit_failure(result: CompletionResult) -> bool:
    if is_rate_limited(result):
        return True
    return bool(RATE_LIMIT_PATTERN.search(result.error or ""))


class HipaaAnalyzer:
    """FindingOracle backed by an AI provider."""

    def __init__(self, provider: Optional[AIProvider] = None, dry_run: bool = False):
        if provider is None and not dry_run:
            raise ValueError("An AI provider is required unless dry_run is set")
        self.provider = provider
        self.dry_run = dry_run

    async def analyze(self, code: str, file_name: str) -> list[Finding]:
        if not code.strip():
            return []
        if self.dry_run:
            return placeholder_findings(file_name)

        try:
            result = await self.provider.complete_with_retry(
                system_prompt=SYSTEM_PROMPT,
                user_prompt=build_audit_prompt(code, file_name),
            )
        except Exception as e:
            # One file's oracle failure must not end the run
            error = sanitize_error(f"{type(e).__name__}: {e}")
            console.print(f"  [red]FAILED[/red] {escape(file_name)}: {escape(error)}")
            return [analysis_error_finding(file_name, error)]

        if not result.success:
            return self._failure_findings(result, file_name)

        try:
            parsed = parse_findings_json(result.content or "")
        except MalformedOutputError as e:
            console.print(f"  [yellow]WARN[/yellow] {escape(file_name)}: {escape(str(e))}")
            return [analysis_error_finding(file_name, str(e))]

        for reason in parsed.rejected:
            console.print(f"  [yellow]WARN[/yellow] {escape(file_name)}: dropped {escape(reason)}")
        return parsed.findings

    def _failure_findings(self, result: CompletionResult, file_name: str) -> list[Finding]:
        error = sanitize_error(result.error or "Unknown error")
        if "API key not found" in error:
            console.print(f"  [red]ERROR[/red] {escape(error)}")
            return [configuration_error_finding(error)]
        if _is_rate_limit_failure(result):
            console.print(
                f"  [yellow]WARN[/yellow] Rate limit reached for {escape(file_name)}, "
                f"using placeholder findings"
            )
            return placeholder_findings(file_name)
        console.print(f"  [red]FAILED[/red] {escape(file_name)}: {escape(error)}")
        return [analysis_error_finding(file_name, error)]
