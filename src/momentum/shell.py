from __future__ import annotations

from loguru import logger

from momentum.cloud.client import CloudSyncClient
from momentum.cloud.push import push_pending
from momentum.commands.router import CommandRouter
from momentum.engine import MomentumEngine
from momentum.memory.sync_ledger import SyncLedger
from momentum.memory.validation import ValidationError
from momentum.services.session_controller import SessionController


class MomentumShell:
    """Interactive front end over :class:`MomentumEngine`.

    The shell owns the "current session" pointer; every engine call receives
    it explicitly.
    """

    _LINE_PREFIX = "momentum> "
    _USER_PROMPT = "you> "

    def __init__(
        self,
        engine: MomentumEngine,
        *,
        ledger: SyncLedger | None = None,
        cloud: CloudSyncClient | None = None,
        session_id: str | None = None,
        project_path: str | None = None,
        cloud_batch_size: int = 100,
    ):
        self._engine = engine
        self._ledger = ledger
        self._cloud = cloud
        self._session_id = session_id
        self._project_path = project_path
        self._cloud_batch_size = cloud_batch_size
        self._controller = SessionController(line_prefix=self._LINE_PREFIX)
        self._router = CommandRouter(
            {
                "/help": self._on_help,
                "/save": self._handle_save,
                "/list": self._handle_list,
                "/get": self._handle_get,
                "/context": self._handle_context,
                "/inject": self._handle_inject,
                "/search": self._handle_search,
                "/filter": self._handle_filter,
                "/restore": self._handle_restore,
                "/stats": self._handle_stats,
                "/cleanup": self._handle_cleanup,
                "/clear": self._handle_clear,
                "/session": self._handle_session,
                "/sessions": self._handle_sessions,
                "/health": self._handle_health,
                "/sync": self._handle_sync,
            },
            on_unknown=self._on_unknown_command,
        )

    @property
    def session_id(self) -> str | None:
        return self._session_id

    async def run(self, line: str) -> bool:
        """Handle one input line. Returns False when the line is not a command."""
        try:
            return await self._router.try_handle(line)
        except ValidationError as ex:
            self._print(f"Error: {ex}")
            return True

    def _print(self, text: str) -> None:
        print(f"{self._LINE_PREFIX}{text}")

    def _on_unknown_command(self, trimmed: str) -> None:
        self._print(f"Unknown command: {trimmed} (try /help)")

    async def _on_help(self, _: str) -> None:
        self._print("Available commands:")
        for usage in (
            "/save [!critical|!important|!normal|!reference] <summary> | <context> [| <next steps>]",
            "/list [limit]",
            "/get <snapshot_id>",
            "/context [max_tokens]",
            "/inject [topic]",
            "/search <query>",
            "/filter <query>",
            "/restore [critical|important|all]",
            "/stats",
            "/cleanup [keep_recent] | /cleanup before <snapshot_id>",
            "/clear",
            "/session | /session new [project_path] | /session resume <id-or-project_path>",
            "/sessions [limit]",
            "/health",
            "/sync | /sync reset",
        ):
            self._print(f"- {usage}")

    @staticmethod
    def _argument(command: str) -> str:
        return command.partition(" ")[2].strip()

    @staticmethod
    def _int_argument(value: str) -> int | None:
        try:
            return int(value)
        except ValueError:
            return None

    async def _handle_save(self, command: str) -> None:
        rest = self._argument(command)
        importance = None
        first, _, remainder = rest.partition(" ")
        if first.startswith("!"):
            importance = first[1:]
            rest = remainder.strip()

        pieces = [p.strip() for p in rest.split("|")]
        if len(pieces) < 2:
            self._print("Usage: /save [!importance] <summary> | <context> [| <next steps>]")
            return
        next_steps = pieces[2] if len(pieces) > 2 and pieces[2] else None

        snapshot = self._engine.save(
            pieces[0],
            pieces[1],
            session_id=self._session_id,
            project_path=self._project_path,
            next_steps=next_steps,
            importance=importance,
        )
        self._session_id = snapshot.session_id
        self._print(
            f"Snapshot #{snapshot.id} saved (~{snapshot.token_estimate} tokens, "
            f"{snapshot.importance.value}, seq {snapshot.sequence}, session {snapshot.session_id})"
        )

    async def _handle_list(self, command: str) -> None:
        arg = self._argument(command)
        limit = self._int_argument(arg) if arg else None
        if arg and limit is None:
            self._print("Usage: /list [limit]")
            return
        snapshots = self._engine.list_snapshots(self._session_id, limit)
        if not snapshots:
            self._print("No snapshots found.")
            return
        for snapshot in snapshots:
            print(self._controller.format_snapshot_line(snapshot))

    async def _handle_get(self, command: str) -> None:
        snapshot_id = self._int_argument(self._argument(command))
        if snapshot_id is None:
            self._print("Usage: /get <snapshot_id>")
            return
        snapshot = self._engine.get(snapshot_id)
        if snapshot is None:
            self._print(f"Snapshot not found: {snapshot_id}")
            return
        for line in self._controller.format_snapshot_detail_lines(snapshot):
            print(line)

    async def _handle_context(self, command: str) -> None:
        arg = self._argument(command)
        max_tokens = self._int_argument(arg) if arg else None
        if arg and max_tokens is None:
            self._print("Usage: /context [max_tokens]")
            return
        result = self._engine.assemble_context(self._session_id, max_tokens)
        if result.records_used == 0:
            self._print("No snapshots to assemble.")
            return
        self._print(
            f"Context from {result.records_used} snapshots (~{result.total_tokens:,} tokens, "
            f"{result.oldest_ts} to {result.newest_ts}):"
        )
        print(result.text)

    async def _handle_inject(self, command: str) -> None:
        topic = self._argument(command) or None
        result = self._engine.assemble_for_injection(self._session_id, topic=topic)
        if result.records_used == 0:
            self._print(f"No relevant context found{f' for {topic!r}' if topic else ''}.")
            return
        self._print(f"Injected {result.records_used} snapshots (~{result.total_tokens:,} tokens):")
        print(result.text)

    async def _handle_search(self, command: str) -> None:
        results = self._engine.search_about(self._argument(command), session_id=self._session_id)
        if not results:
            self._print("No matching snapshots.")
            return
        for result in results:
            print(self._controller.format_search_result(result))

    async def _handle_filter(self, command: str) -> None:
        results = self._engine.filter_snapshots(self._argument(command), session_id=self._session_id)
        if not results:
            self._print("No matching snapshots.")
            return
        for result in results:
            print(self._controller.format_search_result(result))

    async def _handle_restore(self, command: str) -> None:
        if self._session_id is None:
            self._print("No active session. Use /session resume <id> first.")
            return
        level = self._argument(command) or "important"
        text = self._engine.restore_context(self._session_id, importance_level=level)
        if text is None:
            self._print(f"No snapshots at level {level!r} in this session.")
            return
        print(text)

    async def _handle_stats(self, _: str) -> None:
        if self._session_id is None:
            self._print("No active session.")
            return
        stats = self._engine.stats(self._session_id)
        if stats is None:
            self._print(f"No snapshots in session {self._session_id}.")
            return
        for line in self._controller.format_stats_lines(stats):
            print(line)

    async def _handle_cleanup(self, command: str) -> None:
        parts = command.split()
        if len(parts) == 3 and parts[1] == "before":
            before_id = self._int_argument(parts[2])
            if before_id is None:
                self._print("Usage: /cleanup before <snapshot_id>")
                return
            deleted = self._engine.cleanup(self._session_id, before_id=before_id, keep_recent=0)
        elif len(parts) <= 2:
            keep_recent = self._int_argument(parts[1]) if len(parts) == 2 else None
            if len(parts) == 2 and keep_recent is None:
                self._print("Usage: /cleanup [keep_recent]")
                return
            if self._session_id is None:
                self._print("No active session. Use /cleanup before <snapshot_id> to prune across sessions.")
                return
            deleted = self._engine.cleanup(self._session_id, keep_recent=keep_recent)
        else:
            self._print("Usage: /cleanup [keep_recent] | /cleanup before <snapshot_id>")
            return
        self._print(f"Deleted {deleted} snapshots.")

    async def _handle_clear(self, _: str) -> None:
        if self._session_id is None:
            self._print("No active session.")
            return
        cleared = self._session_id
        deleted = self._engine.clear(cleared)
        self._session_id = None
        self._print(f"Cleared session {cleared} ({deleted} snapshots deleted).")

    async def _handle_session(self, command: str) -> None:
        parts = command.split()
        if len(parts) == 1:
            self._print(f"Current session: {self._session_id or 'none'}")
            return

        if parts[1] == "new":
            project_path = command.partition("new")[2].strip() or self._project_path
            self._session_id = self._engine.start_session(project_path=project_path)
            self._print(f"Started new session: {self._session_id}")
            return

        if parts[1] == "resume" and len(parts) >= 3:
            target = command.partition("resume")[2].strip()
            if self._engine.sessions.get_session(target) is not None:
                resolved = target
            else:
                resolved = self._engine.find_session(target)
            if resolved is None:
                self._print(f"Session not found: {target}")
                return
            self._session_id = resolved
            stats = self._engine.stats(resolved)
            count = stats.snapshot_count if stats else 0
            self._print(f"Resumed session {resolved} ({count} snapshots)")
            return

        self._print("Usage: /session | /session new [project_path] | /session resume <id-or-project_path>")

    async def _handle_sessions(self, command: str) -> None:
        arg = self._argument(command)
        limit = self._int_argument(arg) if arg else 20
        if limit is None:
            self._print("Usage: /sessions [limit]")
            return
        sessions = self._engine.list_sessions(limit)
        if not sessions:
            self._print("No sessions found.")
            return
        self._print("Recent sessions:")
        for session in sessions:
            print(self._controller.format_session_list_entry(session, active_session_id=self._session_id))

    async def _handle_health(self, _: str) -> None:
        report = self._engine.health_check()
        for line in self._controller.format_health_lines(report):
            print(line)
        if self._ledger is not None:
            self._print(
                f"- Cloud backlog: {self._ledger.unsynced_count()} unsynced, "
                f"{self._ledger.failed_count()} failed"
            )
        if self._cloud is not None and self._cloud.enabled:
            cloud = await self._cloud.check_health()
            status = "reachable" if cloud.ok else f"unreachable ({cloud.error or 'bad status'})"
            self._print(f"- Cloud: {status}")

    async def _handle_sync(self, command: str) -> None:
        if self._ledger is None or self._cloud is None or not self._cloud.enabled:
            self._print("Cloud sync is not configured (set SUBSTRATIA_API_KEY and CloudSyncEnabled).")
            return
        if self._argument(command) == "reset":
            reset = self._ledger.reset_failed()
            self._print(f"Reset {reset} failed snapshots for retry.")
            return
        report = await push_pending(self._ledger, self._cloud, batch_size=self._cloud_batch_size)
        if report.attempted == 0:
            self._print("Nothing to sync.")
            return
        logger.debug(f"Sync report: {report}")
        message = f"Synced {report.synced}/{report.attempted} snapshots"
        if report.failed:
            message += f" ({report.failed} failed: {report.error})"
        self._print(message)
