from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from loguru import logger

from momentum.memory.models import Snapshot
from momentum.memory.store import MemoryStore
from momentum.memory.timestamps import parse_timestamp, utc_now

MAX_SYNC_RETRIES = 5
BASE_BACKOFF_MINUTES = 1


@dataclass(frozen=True)
class PendingSnapshot:
    snapshot: Snapshot
    project_path: str | None
    retries: int = 0


def backoff_delay(retries: int) -> timedelta:
    """1, 2, 4, 8, 16 minutes for retries 1..5."""
    return timedelta(minutes=BASE_BACKOFF_MINUTES * (2 ** max(0, retries - 1)))


class SyncLedger:
    """Tracks which snapshots have been pushed to the cloud service."""

    def __init__(self, store: MemoryStore):
        self._store = store

    def unsynced(self, *, limit: int = 100) -> list[PendingSnapshot]:
        rows = self._store.execute(
            """
            SELECT n.*, s.project_path AS project_path
            FROM snapshots n
            LEFT JOIN sessions s ON s.session_id = n.session_id
            WHERE n.synced_at IS NULL AND n.sync_retries = 0
            ORDER BY n.id ASC
            LIMIT ?
            """,
            (max(1, limit),),
        ).fetchall()
        return [PendingSnapshot(Snapshot.from_row(row), row["project_path"]) for row in rows]

    def retryable(self, *, limit: int = 100, now: datetime | None = None) -> list[PendingSnapshot]:
        current = now or datetime.now(UTC)
        rows = self._store.execute(
            """
            SELECT n.*, s.project_path AS project_path
            FROM snapshots n
            LEFT JOIN sessions s ON s.session_id = n.session_id
            WHERE n.synced_at IS NULL AND n.sync_retries > 0 AND n.sync_retries < ?
            ORDER BY n.id ASC
            """,
            (MAX_SYNC_RETRIES,),
        ).fetchall()
        ready: list[PendingSnapshot] = []
        for row in rows:
            retries = int(row["sync_retries"])
            last_attempt = parse_timestamp(row["last_sync_attempt"])
            if last_attempt is not None and last_attempt + backoff_delay(retries) > current:
                continue
            ready.append(PendingSnapshot(Snapshot.from_row(row), row["project_path"], retries))
            if len(ready) >= limit:
                break
        return ready

    def mark_synced(self, snapshot_id: int, cloud_id: str | None = None) -> None:
        self._store.execute(
            """
            UPDATE snapshots
            SET synced_at = ?, cloud_id = COALESCE(?, cloud_id), sync_error = NULL
            WHERE id = ?
            """,
            (utc_now(), cloud_id, snapshot_id),
        )
        self._store.commit()

    def mark_many_synced(self, snapshot_ids: list[int]) -> None:
        if not snapshot_ids:
            return
        now = utc_now()
        self._store.executemany(
            "UPDATE snapshots SET synced_at = ?, sync_error = NULL WHERE id = ?",
            [(now, snapshot_id) for snapshot_id in snapshot_ids],
        )
        self._store.commit()

    def mark_failed(self, snapshot_id: int, error: str) -> None:
        self._store.execute(
            """
            UPDATE snapshots
            SET sync_retries = sync_retries + 1, sync_error = ?, last_sync_attempt = ?
            WHERE id = ?
            """,
            (error, utc_now(), snapshot_id),
        )
        self._store.commit()
        logger.warning(f"Cloud sync failed for snapshot #{snapshot_id}: {error}")

    def unsynced_count(self) -> int:
        row = self._store.execute(
            "SELECT COUNT(*) AS c FROM snapshots WHERE synced_at IS NULL"
        ).fetchone()
        return int(row["c"])

    def failed_count(self) -> int:
        row = self._store.execute(
            "SELECT COUNT(*) AS c FROM snapshots WHERE synced_at IS NULL AND sync_retries >= ?",
            (MAX_SYNC_RETRIES,),
        ).fetchone()
        return int(row["c"])

    def reset_failed(self) -> int:
        cursor = self._store.execute(
            """
            UPDATE snapshots
            SET sync_retries = 0, sync_error = NULL, last_sync_attempt = NULL
            WHERE synced_at IS NULL AND sync_retries >= ?
            """,
            (MAX_SYNC_RETRIES,),
        )
        self._store.commit()
        return max(0, cursor.rowcount)
