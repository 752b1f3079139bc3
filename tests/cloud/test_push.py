import asyncio
from unittest.mock import AsyncMock, MagicMock

from momentum.cloud.client import BulkSyncResult, SyncResult
from momentum.cloud.push import push_pending
from momentum.memory import SnapshotDraft, SyncLedger
from tests.memory.base import MemoryStoreTestCase


def _client(
    result: BulkSyncResult | None = None,
    *,
    enabled: bool = True,
    single: list[SyncResult] | None = None,
) -> MagicMock:
    client = MagicMock()
    client.enabled = enabled
    client.bulk_sync = AsyncMock(return_value=result)
    client.sync_snapshot = AsyncMock(side_effect=single or [])
    return client


class PushPendingTests(MemoryStoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._ledger = SyncLedger(self._store)

    def _save(self, n: int) -> list[int]:
        return [
            self._snapshots.insert(SnapshotDraft.build(f"step {i}", "ctx"), session_id="s1", project_path="/p").id
            for i in range(n)
        ]

    def test_disabled_client_touches_nothing(self) -> None:
        self._save(2)
        client = _client(enabled=False)

        report = asyncio.run(push_pending(self._ledger, client))

        self.assertEqual(0, report.attempted)
        self.assertIsNotNone(report.error)
        client.bulk_sync.assert_not_called()
        self.assertEqual(2, self._ledger.unsynced_count())

    def test_nothing_pending(self) -> None:
        client = _client(BulkSyncResult(success=True, synced=0, total=0))

        report = asyncio.run(push_pending(self._ledger, client))

        self.assertEqual(0, report.attempted)
        client.bulk_sync.assert_not_called()

    def test_success_marks_synced(self) -> None:
        ids = self._save(3)
        client = _client(BulkSyncResult(success=True, synced=3, total=3))

        report = asyncio.run(push_pending(self._ledger, client))

        self.assertEqual(3, report.synced)
        self.assertEqual(0, self._ledger.unsynced_count())
        [sent] = client.bulk_sync.call_args.args
        self.assertEqual(ids, [p.snapshot.id for p in sent])
        self.assertEqual("/p", sent[0].project_path)

    def test_failure_marks_failed(self) -> None:
        self._save(2)
        client = _client(
            BulkSyncResult(success=False, synced=0, total=2, error="HTTP 500"),
            single=[SyncResult(success=False, error="HTTP 500")],
        )

        report = asyncio.run(push_pending(self._ledger, client))

        self.assertEqual(2, report.failed)
        self.assertEqual("HTTP 500", report.error)
        self.assertEqual([], self._ledger.unsynced())
        row = self._store.execute("SELECT sync_retries, sync_error FROM snapshots LIMIT 1").fetchone()
        self.assertEqual(1, row["sync_retries"])
        self.assertEqual("HTTP 500", row["sync_error"])

    def test_batches_respect_batch_size(self) -> None:
        self._save(5)
        client = _client(BulkSyncResult(success=True, synced=2, total=2))

        report = asyncio.run(push_pending(self._ledger, client, batch_size=2))

        self.assertEqual(1, client.bulk_sync.call_count)
        self.assertEqual(2, report.synced)
        self.assertEqual(3, self._ledger.unsynced_count())
        client.sync_snapshot.assert_not_called()

    def test_service_down_stops_after_first_single_attempt(self) -> None:
        self._save(3)
        client = _client(
            BulkSyncResult(success=False, synced=0, total=3, error="HTTP 503"),
            single=[SyncResult(success=False, error="HTTP 503")],
        )

        report = asyncio.run(push_pending(self._ledger, client))

        self.assertEqual(3, report.failed)
        self.assertEqual(1, client.sync_snapshot.await_count)
        self.assertEqual([], self._ledger.unsynced())
        retries = [r["sync_retries"] for r in self._store.execute("SELECT sync_retries FROM snapshots").fetchall()]
        self.assertEqual([1, 1, 1], retries)

    def test_rejected_batch_falls_back_to_single_sync(self) -> None:
        ids = self._save(3)
        client = _client(
            BulkSyncResult(success=False, synced=0, total=3, error="HTTP 400"),
            single=[
                SyncResult(success=True, snapshot_id="c1"),
                SyncResult(success=False, error="Invalid importance"),
                SyncResult(success=True, snapshot_id="c3"),
            ],
        )

        report = asyncio.run(push_pending(self._ledger, client))

        self.assertEqual(3, report.attempted)
        self.assertEqual(2, report.synced)
        self.assertEqual(1, report.failed)
        self.assertEqual("Invalid importance", report.error)
        rows = self._store.execute(
            "SELECT id, cloud_id, synced_at, sync_error FROM snapshots ORDER BY id"
        ).fetchall()
        self.assertEqual(["c1", None, "c3"], [r["cloud_id"] for r in rows])
        self.assertIsNone(rows[1]["synced_at"])
        self.assertEqual("Invalid importance", rows[1]["sync_error"])
        self.assertEqual(ids[0], client.sync_snapshot.call_args_list[0].args[0].id)
