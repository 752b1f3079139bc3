from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from momentum.app_config import DEFAULT_API_URL, RuntimeEnv
from momentum.memory.models import Snapshot
from momentum.memory.sync_ledger import PendingSnapshot
from momentum.memory.timestamps import parse_timestamp

MAX_BULK_BATCH = 100
MAX_ATTEMPTS = 3
_TIMEOUT_SECONDS = 30.0
_NOT_CONFIGURED = "Cloud sync not configured"
_BAD_BODY = "Unexpected response body"


@dataclass(frozen=True)
class CloudConfig:
    api_key: str | None
    api_url: str = DEFAULT_API_URL

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls, env: RuntimeEnv) -> CloudConfig:
        return cls(api_key=env.api_key, api_url=env.api_url)


@dataclass(frozen=True)
class SyncResult:
    success: bool
    snapshot_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class BulkSyncResult:
    success: bool
    synced: int
    total: int
    error: str | None = None


@dataclass(frozen=True)
class CloudHealth:
    ok: bool
    error: str | None = None


def _on_retry(retry_state):
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"Cloud sync: {reason}. Retrying in {wait:.1f}s (attempt {attempt}/{MAX_ATTEMPTS})...")


def snapshot_payload(snapshot: Snapshot, project_path: str | None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "projectPath": project_path or "",
        "summary": snapshot.summary,
        "context": snapshot.context,
        "importance": snapshot.importance.value,
    }
    decisions = snapshot.decision_list()
    if decisions is not None:
        payload["decisions"] = decisions
    files = snapshot.file_list()
    if files is not None:
        payload["filesTouched"] = files
    if snapshot.next_steps:
        payload["nextSteps"] = snapshot.next_steps
    created = parse_timestamp(snapshot.created_at)
    if created is not None:
        payload["createdAt"] = int(created.timestamp() * 1000)
    return payload


def _json_object(response: httpx.Response) -> dict[str, Any] | None:
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _error_text(response: httpx.Response) -> str:
    data = _json_object(response)
    if data and data.get("error"):
        return str(data["error"])
    return f"HTTP {response.status_code}"


class CloudSyncClient:
    """Pushes snapshots to the Substratia cloud API.

    Transport failures are retried a few times; anything still failing is
    reported through the result objects rather than raised.
    """

    def __init__(self, config: CloudConfig, *, http_client: httpx.AsyncClient | None = None):
        self._config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=config.api_url, timeout=_TIMEOUT_SECONDS)

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> CloudSyncClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.api_key}",
        }

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        stop=stop_after_attempt(MAX_ATTEMPTS),
        before_sleep=_on_retry,
        reraise=True,
    )
    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self._http.request(method, path, **kwargs)

    async def sync_snapshot(self, snapshot: Snapshot, project_path: str | None) -> SyncResult:
        if not self.enabled:
            return SyncResult(success=False, error=_NOT_CONFIGURED)
        try:
            response = await self._request(
                "POST",
                "/api/snapshots/sync",
                headers=self._auth_headers(),
                json=snapshot_payload(snapshot, project_path),
            )
        except httpx.HTTPError as ex:
            return SyncResult(success=False, error=str(ex) or type(ex).__name__)

        if response.status_code >= 400:
            return SyncResult(success=False, error=_error_text(response))
        data = _json_object(response)
        if data is None:
            return SyncResult(success=False, error=_BAD_BODY)
        cloud_id = data.get("snapshotId")
        return SyncResult(success=True, snapshot_id=str(cloud_id) if cloud_id is not None else None)

    async def bulk_sync(self, items: Sequence[PendingSnapshot]) -> BulkSyncResult:
        """Push up to ``MAX_BULK_BATCH`` snapshots in one request; extras are ignored."""
        if not self.enabled:
            return BulkSyncResult(success=False, synced=0, total=len(items), error=_NOT_CONFIGURED)
        if not items:
            return BulkSyncResult(success=True, synced=0, total=0)

        batch = list(items[:MAX_BULK_BATCH])
        body = {"snapshots": [snapshot_payload(p.snapshot, p.project_path) for p in batch]}
        try:
            response = await self._request(
                "POST",
                "/api/snapshots/bulk-sync",
                headers=self._auth_headers(),
                json=body,
            )
        except httpx.HTTPError as ex:
            return BulkSyncResult(success=False, synced=0, total=len(batch), error=str(ex) or type(ex).__name__)

        if response.status_code >= 400:
            return BulkSyncResult(success=False, synced=0, total=len(batch), error=_error_text(response))
        data = _json_object(response)
        if data is None:
            return BulkSyncResult(success=False, synced=0, total=len(batch), error=_BAD_BODY)
        try:
            synced = int(data.get("synced", len(batch)))
            total = int(data.get("total", len(batch)))
        except (TypeError, ValueError):
            return BulkSyncResult(success=False, synced=0, total=len(batch), error=_BAD_BODY)
        return BulkSyncResult(success=True, synced=synced, total=total)

    async def check_health(self) -> CloudHealth:
        try:
            response = await self._request("GET", "/api/health", headers={"Content-Type": "application/json"})
        except httpx.HTTPError as ex:
            return CloudHealth(ok=False, error=str(ex) or type(ex).__name__)
        if response.status_code >= 400:
            return CloudHealth(ok=False, error=f"HTTP {response.status_code}")
        data = _json_object(response)
        if data is None:
            return CloudHealth(ok=False, error=_BAD_BODY)
        return CloudHealth(ok=data.get("status") == "ok")
