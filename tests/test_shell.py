import asyncio
import io
from contextlib import redirect_stdout
from unittest.mock import AsyncMock, MagicMock

from momentum.cloud.client import BulkSyncResult, CloudHealth
from momentum.engine import MomentumEngine
from momentum.memory import SyncLedger
from momentum.shell import MomentumShell
from tests.memory.base import MemoryStoreTestCase


class MomentumShellTests(MemoryStoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.engine = MomentumEngine(self._store)
        self.shell = MomentumShell(self.engine, project_path="/work/app")

    def _run(self, line: str, shell: MomentumShell | None = None) -> str:
        buf = io.StringIO()
        with redirect_stdout(buf):
            handled = asyncio.run((shell or self.shell).run(line))
        self.assertTrue(handled)
        return buf.getvalue()

    def test_non_command_is_not_handled(self) -> None:
        self.assertFalse(asyncio.run(self.shell.run("just chatting")))

    def test_help_lists_commands(self) -> None:
        out = self._run("/help")
        for name in ("/save", "/context", "/search", "/restore", "/sync"):
            self.assertIn(name, out)

    def test_save_sets_current_session(self) -> None:
        out = self._run("/save !critical Wired auth | JWT flow | add refresh")

        self.assertIn("Snapshot #1 saved", out)
        self.assertIn("critical", out)
        sid = self.shell.session_id
        self.assertIsNotNone(sid)
        [snap] = self.engine.list_snapshots(sid)
        self.assertEqual("Wired auth", snap.summary)
        self.assertEqual("add refresh", snap.next_steps)
        self.assertEqual(sid, self.engine.find_session("/work/app"))

    def test_save_usage_and_validation(self) -> None:
        self.assertIn("Usage", self._run("/save only a summary"))
        self.assertIn("Error: summary is required", self._run("/save  | context"))
        self.assertIsNone(self.shell.session_id)

    def test_list_get_and_stats(self) -> None:
        self._run("/save First | one")
        self._run("/save Second | two")

        listing = self._run("/list")
        self.assertLess(listing.index("Second"), listing.index("First"))
        self.assertIn("Summary: First", self._run("/get 1"))
        self.assertIn("Snapshot not found: 99", self._run("/get 99"))
        self.assertIn("Snapshots: 2", self._run("/stats"))

    def test_context_and_inject(self) -> None:
        self.assertIn("No snapshots", self._run("/context"))
        self._run("/save Database schema | tables and indexes")

        self.assertIn("Database schema", self._run("/context"))
        self.assertIn("Database schema", self._run("/inject database"))
        self.assertIn("No relevant context", self._run("/inject frontend"))

    def test_search_and_filter(self) -> None:
        self._run("/save Auth implementation | login")
        self.assertIn("100% #1", self._run("/search authentication"))
        self.assertIn("No matching", self._run("/filter kubernetes"))
        self.assertIn("Error: query is required", self._run("/search"))

    def test_restore(self) -> None:
        self.assertIn("No active session", self._run("/restore"))
        self._run("/save !important Key step | ctx")
        self.assertIn("MOMENTUM CONTEXT RESTORATION", self._run("/restore"))
        self.assertIn("No snapshots at level 'critical'", self._run("/restore critical"))

    def test_cleanup_and_clear(self) -> None:
        for i in range(4):
            self._run(f"/save step {i} | ctx")

        self.assertIn("Deleted 2 snapshots", self._run("/cleanup 2"))
        sid = self.shell.session_id
        self.assertIn(f"Cleared session {sid} (2 snapshots deleted)", self._run("/clear"))
        self.assertIsNone(self.shell.session_id)

    def test_session_commands(self) -> None:
        self.assertIn("Current session: none", self._run("/session"))
        out = self._run("/session new")
        self.assertIn("Started new session: session-", out)
        first = self.shell.session_id

        self._run("/session new /other/project")
        self.assertNotEqual(first, self.shell.session_id)
        self.assertIn(f"Resumed session {first}", self._run("/session resume /work/app"))
        self.assertEqual(first, self.shell.session_id)
        self.assertIn("Session not found", self._run("/session resume nope"))

        sessions = self._run("/sessions")
        self.assertIn("Recent sessions:", sessions)
        self.assertIn(f"* [{first[:16]}]", sessions)

    def test_health(self) -> None:
        out = self._run("/health")
        self.assertIn("Store: healthy", out)
        self.assertIn("Integrity: ok", out)

    def test_sync_without_cloud(self) -> None:
        self.assertIn("not configured", self._run("/sync"))

    def test_sync_with_cloud(self) -> None:
        cloud = MagicMock()
        cloud.enabled = True
        cloud.bulk_sync = AsyncMock(return_value=BulkSyncResult(success=True, synced=1, total=1))
        cloud.check_health = AsyncMock(return_value=CloudHealth(ok=True))
        ledger = SyncLedger(self._store)
        shell = MomentumShell(self.engine, ledger=ledger, cloud=cloud)

        self._run("/save Ship it | ctx", shell)
        self.assertIn("Synced 1/1 snapshots", self._run("/sync", shell))
        self.assertIn("Nothing to sync", self._run("/sync", shell))
        health = self._run("/health", shell)
        self.assertIn("0 unsynced", health)
        self.assertIn("Cloud: reachable", health)
        self.assertIn("Reset 0 failed", self._run("/sync reset", shell))

    def test_unknown_command(self) -> None:
        self.assertIn("Unknown command: /bogus", self._run("/bogus"))
