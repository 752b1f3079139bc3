from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from momentum.memory.models import (
    ContextInput,
    Importance,
    SessionStats,
    Snapshot,
    dump_string_list,
    normalize_importance,
    render_context,
)
from momentum.memory.session_manager import SessionManager, generate_session_id
from momentum.memory.store import MemoryStore
from momentum.memory.timestamps import utc_now
from momentum.memory.validation import validate_snapshot_fields
from momentum.tokens import estimate_parts

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100


@dataclass(frozen=True)
class SnapshotDraft:
    """A validated snapshot ready to insert. Context is already rendered to text."""

    summary: str
    context: str
    files_touched: str | None
    decisions: str | None
    next_steps: str | None
    importance: Importance
    token_estimate: int

    @classmethod
    def build(
        cls,
        summary: str,
        context: ContextInput,
        *,
        files_touched: list[str] | None = None,
        decisions: list[str] | None = None,
        next_steps: str | None = None,
        importance: object = None,
        token_estimate: int | None = None,
    ) -> SnapshotDraft:
        rendered = render_context(context) if context is not None else ""
        next_steps = next_steps or None
        validate_snapshot_fields(summary, rendered, next_steps, token_estimate)
        if token_estimate is None:
            token_estimate = estimate_parts(summary, rendered, next_steps)
        return cls(
            summary=summary,
            context=rendered,
            files_touched=dump_string_list(files_touched),
            decisions=dump_string_list(decisions),
            next_steps=next_steps,
            importance=normalize_importance(importance),
            token_estimate=token_estimate,
        )


def _clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_LIST_LIMIT
    return max(1, min(MAX_LIST_LIMIT, limit))


class SnapshotManager:
    def __init__(self, store: MemoryStore, sessions: SessionManager):
        self._store = store
        self._sessions = sessions

    def insert(
        self,
        draft: SnapshotDraft,
        *,
        session_id: str | None = None,
        project_path: str | None = None,
    ) -> Snapshot:
        """Insert ``draft``, creating its session if needed.

        Session creation, sequence assignment, the row insert and the session's
        ``last_snapshot_at`` update commit together or not at all.
        """
        sid = session_id or generate_session_id()
        now = utc_now()
        with self._store.transaction():
            self._sessions.register(sid, project_path)
            self._store.execute(
                """
                UPDATE sessions
                SET last_sequence = last_sequence + 1, last_snapshot_at = ?
                WHERE session_id = ?
                """,
                (now, sid),
            )
            row = self._store.execute(
                "SELECT last_sequence FROM sessions WHERE session_id = ?",
                (sid,),
            ).fetchone()
            sequence = int(row["last_sequence"])
            cursor = self._store.execute(
                """
                INSERT INTO snapshots (
                    session_id, sequence, summary, context, files_touched, decisions,
                    next_steps, token_estimate, importance, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    sid,
                    sequence,
                    draft.summary,
                    draft.context,
                    draft.files_touched,
                    draft.decisions,
                    draft.next_steps,
                    draft.token_estimate,
                    draft.importance.value,
                    now,
                ),
            )
            snapshot_id = int(cursor.lastrowid)

        logger.debug(
            f"Saved snapshot #{snapshot_id} session={sid} seq={sequence} "
            f"tokens~{draft.token_estimate} importance={draft.importance.value}"
        )
        return Snapshot(
            id=snapshot_id,
            session_id=sid,
            sequence=sequence,
            summary=draft.summary,
            context=draft.context,
            files_touched=draft.files_touched,
            decisions=draft.decisions,
            next_steps=draft.next_steps,
            token_estimate=draft.token_estimate,
            importance=draft.importance,
            created_at=now,
        )

    def get(self, snapshot_id: int) -> Snapshot | None:
        row = self._store.execute(
            "SELECT * FROM snapshots WHERE id = ? LIMIT 1",
            (snapshot_id,),
        ).fetchone()
        if row is None:
            return None
        return Snapshot.from_row(row)

    def list_snapshots(self, session_id: str | None = None, *, limit: int | None = DEFAULT_LIST_LIMIT) -> list[Snapshot]:
        """Newest first: by sequence within a session, by creation time across sessions."""
        limit = _clamp_limit(limit)
        if session_id:
            rows = self._store.execute(
                """
                SELECT * FROM snapshots
                WHERE session_id = ?
                ORDER BY sequence DESC
                LIMIT ?
                """,
                (session_id, limit),
            ).fetchall()
        else:
            rows = self._store.execute(
                """
                SELECT * FROM snapshots
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [Snapshot.from_row(row) for row in rows]

    def candidates(
        self,
        session_id: str | None = None,
        *,
        topic: str | None = None,
        include_priority: bool = False,
    ) -> list[Snapshot]:
        """Unbounded newest-first scan used to feed assembly.

        With ``topic``, keeps snapshots whose summary or context contains it
        (case-insensitive), plus critical/important ones when ``include_priority``.
        """
        clauses: list[str] = []
        params: list[object] = []
        if session_id:
            clauses.append("session_id = ?")
            params.append(session_id)
        if topic:
            pattern = f"%{_escape_like(topic)}%"
            match = "(summary LIKE ? ESCAPE '\\' OR context LIKE ? ESCAPE '\\')"
            params.extend([pattern, pattern])
            if include_priority:
                match = f"({match} OR importance IN ('critical', 'important'))"
            clauses.append(match)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        order = "ORDER BY sequence DESC, id DESC" if session_id else "ORDER BY created_at DESC, id DESC"
        rows = self._store.execute(
            f"SELECT * FROM snapshots {where} {order}",
            tuple(params),
        ).fetchall()
        return [Snapshot.from_row(row) for row in rows]

    def delete_where(
        self,
        session_id: str | None = None,
        *,
        before_id: int | None = None,
        keep_recent: int | None = None,
    ) -> int:
        if keep_recent is not None and keep_recent > 0 and session_id:
            cursor = self._store.execute(
                """
                DELETE FROM snapshots
                WHERE session_id = ?
                  AND id NOT IN (
                      SELECT id FROM snapshots
                      WHERE session_id = ?
                      ORDER BY sequence DESC
                      LIMIT ?
                  )
                """,
                (session_id, session_id, keep_recent),
            )
        elif before_id is not None:
            cursor = self._store.execute("DELETE FROM snapshots WHERE id < ?", (before_id,))
        else:
            return 0
        self._store.commit()
        deleted = max(0, cursor.rowcount)
        logger.info(
            f"Deleted {deleted} snapshots (session={session_id or '*'}, "
            f"before_id={before_id}, keep_recent={keep_recent})"
        )
        return deleted

    def clear_session(self, session_id: str) -> int:
        with self._store.transaction():
            cursor = self._store.execute("DELETE FROM snapshots WHERE session_id = ?", (session_id,))
            deleted = max(0, cursor.rowcount)
            self._store.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
        logger.info(f"Cleared session {session_id} ({deleted} snapshots deleted)")
        return deleted

    def stats(self, session_id: str) -> SessionStats | None:
        row = self._store.execute(
            """
            SELECT COUNT(*) AS c,
                   COALESCE(SUM(token_estimate), 0) AS tokens,
                   MIN(created_at) AS first_ts,
                   MAX(created_at) AS last_ts
            FROM snapshots
            WHERE session_id = ?
            """,
            (session_id,),
        ).fetchone()
        if row is None or int(row["c"]) == 0:
            return None
        return SessionStats(
            session_id=session_id,
            snapshot_count=int(row["c"]),
            total_tokens=int(row["tokens"]),
            first_snapshot=str(row["first_ts"]),
            last_snapshot=str(row["last_ts"]),
        )

    def totals(self) -> tuple[int, int]:
        """Store-wide (snapshot count, token sum)."""
        row = self._store.execute(
            "SELECT COUNT(*) AS c, COALESCE(SUM(token_estimate), 0) AS tokens FROM snapshots"
        ).fetchone()
        return int(row["c"]), int(row["tokens"])


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
