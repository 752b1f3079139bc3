from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from momentum.cloud.client import MAX_BULK_BATCH, CloudSyncClient
from momentum.memory.sync_ledger import PendingSnapshot, SyncLedger


@dataclass(frozen=True)
class PushReport:
    attempted: int
    synced: int
    failed: int
    error: str | None = None


async def _push_singly(
    ledger: SyncLedger,
    client: CloudSyncClient,
    chunk: Sequence[PendingSnapshot],
    bulk_error: str,
) -> tuple[int, int, str | None]:
    """Retry a rejected batch one snapshot at a time.

    If the very first snapshot also fails the service is treated as down and
    the whole chunk is marked failed without further requests.
    """
    synced = failed = 0
    last_error: str | None = None
    for index, pending in enumerate(chunk):
        result = await client.sync_snapshot(pending.snapshot, pending.project_path)
        if result.success:
            ledger.mark_synced(pending.snapshot.id, result.snapshot_id)
            synced += 1
            continue

        last_error = result.error or bulk_error
        if index == 0:
            for rest in chunk:
                ledger.mark_failed(rest.snapshot.id, last_error)
            return 0, len(chunk), last_error
        ledger.mark_failed(pending.snapshot.id, last_error)
        failed += 1
    return synced, failed, last_error


async def push_pending(
    ledger: SyncLedger,
    client: CloudSyncClient,
    *,
    batch_size: int = MAX_BULK_BATCH,
    now: datetime | None = None,
) -> PushReport:
    """Push never-attempted and due-for-retry snapshots, recording each outcome.

    Batches go through the bulk endpoint; a rejected batch falls back to
    per-snapshot sync so one bad record does not hold back the rest.
    """
    if not client.enabled:
        return PushReport(attempted=0, synced=0, failed=0, error="Cloud sync not configured")

    batch_size = max(1, min(batch_size, MAX_BULK_BATCH))
    pending = ledger.unsynced(limit=batch_size) + ledger.retryable(limit=batch_size, now=now)
    if not pending:
        return PushReport(attempted=0, synced=0, failed=0)

    synced = failed = 0
    last_error: str | None = None
    for start in range(0, len(pending), batch_size):
        chunk = pending[start:start + batch_size]
        result = await client.bulk_sync(chunk)
        if result.success:
            ledger.mark_many_synced([p.snapshot.id for p in chunk])
            synced += len(chunk)
            continue

        logger.info(f"Cloud sync: bulk push of {len(chunk)} rejected ({result.error}), retrying one by one")
        chunk_synced, chunk_failed, chunk_error = await _push_singly(
            ledger, client, chunk, result.error or "unknown error"
        )
        synced += chunk_synced
        failed += chunk_failed
        last_error = chunk_error or last_error

    logger.info(f"Cloud sync: pushed {synced}/{len(pending)} snapshots ({failed} failed)")
    return PushReport(attempted=len(pending), synced=synced, failed=failed, error=last_error)
