"""Scan result persistence.

Two backends share the ScanStore protocol: a local JSON file and a Supabase
table reached over its PostgREST API. TieredScanStore combines them, with the
remote copy of a record taking precedence.
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

import httpx
from rich.console import Console
from rich.markup import escape

from .errors import StoreError
from ..models.finding import Finding, ScanSummary
from ..models.scan import ScanResult, ScanSource, ScanStatus
from ..utils.sanitize import sanitize_error

console = Console()


@runtime_checkable
class ScanStore(Protocol):
    async def save(self, result: ScanResult) -> None: ...

    async def list_all(self) -> list[ScanResult]: ...

    async def get_by_id(self, scan_id: str) -> Optional[ScanResult]: ...

    async def find_latest_by_source(
        self, source_name: str, source: ScanSource
    ) -> Optional[ScanResult]: ...

    async def clear_all(self) -> None: ...


def _newest_first(results: list[ScanResult]) -> list[ScanResult]:
    return sorted(results, key=lambda r: r.timestamp, reverse=True)


def _latest_matching(
    results: list[ScanResult], source_name: str, source: ScanSource
) -> Optional[ScanResult]:
    matches = [r for r in results if r.source_name == source_name and r.source == source]
    return _newest_first(matches)[0] if matches else None


# ---------------------------------------------------------------------------
# Local JSON file
# ---------------------------------------------------------------------------

class LocalScanStore:
    """All scans in one JSON array file, newest first."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def _read(self) -> list[ScanResult]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "[]")
            if not isinstance(data, list):
                raise ValueError("expected a JSON array of scans")
            return [ScanResult.model_validate(item) for item in data]
        except (OSError, ValueError) as e:
            raise StoreError(
                f"Cannot read scan history {self.path}: {sanitize_error(str(e))}"
            ) from e

    def _write(self, results: list[ScanResult]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [r.model_dump(mode="json", by_alias=True) for r in results]
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8"
        )
        tmp_path.replace(self.path)

    def _set_aside(self, error: StoreError) -> None:
        backup = self.path.with_suffix(self.path.suffix + ".corrupt")
        try:
            self.path.replace(backup)
        except OSError as e:
            raise StoreError(f"{error}; could not move it aside: {sanitize_error(str(e))}") from e
        console.print(
            f"  [yellow]WARN[/yellow] {escape(str(error))}; moved it to {escape(str(backup))}"
        )

    async def save(self, result: ScanResult) -> None:
        try:
            existing = self._read()
        except StoreError as e:
            # Keep the unreadable file for inspection and start a fresh history
            self._set_aside(e)
            existing = []
        others = [r for r in existing if r.id != result.id]
        self._write(_newest_first([result, *others]))

    async def list_all(self) -> list[ScanResult]:
        return _newest_first(self._read())

    async def get_by_id(self, scan_id: str) -> Optional[ScanResult]:
        return next((r for r in self._read() if r.id == scan_id), None)

    async def find_latest_by_source(
        self, source_name: str, source: ScanSource
    ) -> Optional[ScanResult]:
        return _latest_matching(self._read(), source_name, source)

    async def clear_all(self) -> None:
        self.path.unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Supabase (PostgREST)
# ---------------------------------------------------------------------------

def result_to_row(result: ScanResult) -> dict[str, Any]:
    return {
        "id": result.id,
        "timestamp": result.timestamp.isoformat(),
        "source": result.source.value,
        "source_name": result.source_name,
        "status": result.status.value,
        "summary": result.summary.model_dump(mode="json"),
        "findings": [f.model_dump(mode="json", by_alias=True) for f in result.findings],
        "last_commit_hash": result.last_commit_hash,
        "files_scanned": result.files_scanned,
    }


def row_to_result(row: dict[str, Any]) -> ScanResult:
    return ScanResult(
        id=str(row["id"]),
        timestamp=datetime.fromisoformat(str(row["timestamp"]).replace("Z", "+00:00")),
        source=ScanSource(row["source"]),
        source_name=row["source_name"],
        status=ScanStatus(row.get("status") or ScanStatus.COMPLETED),
        findings=[Finding.model_validate(f) for f in row.get("findings") or []],
        summary=ScanSummary.model_validate(row.get("summary") or {}),
        last_commit_hash=row.get("last_commit_hash") or None,
        files_scanned=row.get("files_scanned") or 0,
    )


class SupabaseScanStore:
    """Scans stored in a Supabase table via the REST API."""

    def __init__(
        self,
        url: str,
        api_key: str,
        table: str = "scans",
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self, **extra: str) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            **extra,
        }

    async def _request(
        self,
        method: str,
        params: Optional[dict] = None,
        json_body: Any = None,
        headers: Optional[dict] = None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    self.endpoint,
                    params=params,
                    json=json_body,
                    headers=headers or self._headers(),
                )
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"Supabase {method} failed: {e.response.status_code} | "
                f"{sanitize_error(e.response.text)}"
            ) from e
        except httpx.HTTPError as e:
            raise StoreError(f"Supabase {method} failed: {sanitize_error(str(e))}") from e

    async def _select(self, **params: str) -> list[ScanResult]:
        response = await self._request("GET", params={"select": "*", **params})
        try:
            return [row_to_result(row) for row in response.json()]
        except (ValueError, TypeError, KeyError) as e:
            raise StoreError(f"Unexpected Supabase response: {sanitize_error(str(e))}") from e

    async def save(self, result: ScanResult) -> None:
        await self._request(
            "POST",
            json_body=result_to_row(result),
            headers=self._headers(Prefer="resolution=merge-duplicates,return=minimal"),
        )

    async def list_all(self) -> list[ScanResult]:
        return await self._select(order="timestamp.desc")

    async def get_by_id(self, scan_id: str) -> Optional[ScanResult]:
        rows = await self._select(id=f"eq.{scan_id}", limit="1")
        return rows[0] if rows else None

    async def find_latest_by_source(
        self, source_name: str, source: ScanSource
    ) -> Optional[ScanResult]:
        rows = await self._select(
            source_name=f"eq.{source_name}",
            source=f"eq.{source.value}",
            order="timestamp.desc",
            limit="1",
        )
        return rows[0] if rows else None

    async def clear_all(self) -> None:
        # PostgREST refuses unfiltered deletes
        await self._request("DELETE", params={"id": "not.is.null"})


# ---------------------------------------------------------------------------
# Remote + local
# ---------------------------------------------------------------------------

class TieredScanStore:
    """Remote store backed by a local cache.

    Writes go to the local tier first so a remote outage never loses a scan.
    Reads merge both tiers, dedupe by id with the remote copy winning, and
    return newest first.
    """

    def __init__(self, remote: ScanStore, local: ScanStore):
        self.remote = remote
        self.local = local

    def _warn(self, action: str, error: StoreError) -> None:
        console.print(
            f"  [yellow]WARN[/yellow] Remote store {action} failed, "
            f"using local copy: {escape(str(error))}"
        )

    async def save(self, result: ScanResult) -> None:
        await self.local.save(result)
        try:
            await self.remote.save(result)
        except StoreError as e:
            self._warn("sync", e)

    async def list_all(self) -> list[ScanResult]:
        local = await self.local.list_all()
        try:
            remote = await self.remote.list_all()
        except StoreError as e:
            self._warn("fetch", e)
            return local
        merged = {r.id: r for r in local}
        merged.update((r.id, r) for r in remote)
        return _newest_first(list(merged.values()))

    async def get_by_id(self, scan_id: str) -> Optional[ScanResult]:
        try:
            found = await self.remote.get_by_id(scan_id)
        except StoreError as e:
            self._warn("lookup", e)
            found = None
        return found or await self.local.get_by_id(scan_id)

    async def find_latest_by_source(
        self, source_name: str, source: ScanSource
    ) -> Optional[ScanResult]:
        candidates: dict[str, ScanResult] = {}
        local = await self.local.find_latest_by_source(source_name, source)
        if local:
            candidates[local.id] = local
        try:
            remote = await self.remote.find_latest_by_source(source_name, source)
        except StoreError as e:
            self._warn("lookup", e)
            remote = None
        if remote:
            candidates[remote.id] = remote
        return _latest_matching(list(candidates.values()), source_name, source)

    async def clear_all(self) -> None:
        await self.local.clear_all()
        try:
            await self.remote.clear_all()
        except StoreError as e:
            self._warn("clear", e)


def get_scan_store(config: dict, project_path: Optional[Path] = None) -> ScanStore:
    """Build the configured store: local always, tiered when Supabase is set."""
    storage = config.get("storage", {})
    local_path = Path(storage.get("local_path", "~/.hipaascan/scans.json")).expanduser()
    if project_path is not None and not local_path.is_absolute():
        local_path = project_path / local_path
    local = LocalScanStore(local_path)

    supabase = storage.get("supabase", {})
    url = supabase.get("url") or os.environ.get(supabase.get("url_env", "SUPABASE_URL"), "")
    key = supabase.get("key") or os.environ.get(supabase.get("key_env", "SUPABASE_ANON_KEY"), "")
    if not url or not key:
        return local

    remote = SupabaseScanStore(url, key, table=supabase.get("table", "scans"))
    return TieredScanStore(remote=remote, local=local)
