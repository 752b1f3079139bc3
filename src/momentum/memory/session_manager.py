from __future__ import annotations

from uuid import uuid4

from loguru import logger

from momentum.memory.models import SessionRecord, SessionSummary
from momentum.memory.store import MemoryStore
from momentum.memory.timestamps import utc_now

MAX_SESSION_LIST_LIMIT = 100

# Most recently active first: sessions without snapshots go last, then newest start.
_RECENCY_ORDER = """
    ORDER BY (s.last_snapshot_at IS NULL) ASC,
             s.last_snapshot_at DESC,
             s.started_at DESC,
             s.rowid DESC
"""


def generate_session_id() -> str:
    return f"session-{uuid4()}"


class SessionManager:
    def __init__(self, store: MemoryStore):
        self._store = store

    def get_session(self, session_id: str) -> SessionRecord | None:
        row = self._store.execute(
            """
            SELECT session_id, project_path, started_at, last_snapshot_at
            FROM sessions
            WHERE session_id = ?
            LIMIT 1
            """,
            (session_id,),
        ).fetchone()
        if row is None:
            return None
        return SessionRecord(
            session_id=row["session_id"],
            project_path=row["project_path"],
            started_at=row["started_at"],
            last_snapshot_at=row["last_snapshot_at"],
        )

    def create_session(self, session_id: str | None = None, *, project_path: str | None = None) -> str:
        sid = session_id or generate_session_id()
        self.register(sid, project_path)
        self._store.commit()
        return sid

    def register(self, session_id: str, project_path: str | None = None) -> bool:
        """Insert the session row if it is missing. Does not commit; returns True if created."""
        cursor = self._store.execute(
            """
            INSERT OR IGNORE INTO sessions (session_id, project_path, started_at, last_snapshot_at)
            VALUES (?, ?, ?, NULL)
            """,
            (session_id, project_path, utc_now()),
        )
        created = cursor.rowcount > 0
        if created:
            logger.debug(f"Created session {session_id} (project={project_path or '-'})")
        return created

    def resolve_or_create(self, session_id: str | None = None, project_path: str | None = None) -> str:
        if session_id and self.get_session(session_id) is not None:
            return session_id
        return self.create_session(session_id, project_path=project_path)

    def find_by_project(self, project_path: str) -> str | None:
        row = self._store.execute(
            f"""
            SELECT s.session_id
            FROM sessions s
            WHERE s.project_path = ?
            {_RECENCY_ORDER}
            LIMIT 1
            """,
            (project_path,),
        ).fetchone()
        if row is None:
            return None
        return str(row["session_id"])

    def list_sessions(self, *, limit: int = 20) -> list[SessionSummary]:
        limit = max(1, min(MAX_SESSION_LIST_LIMIT, limit))
        rows = self._store.execute(
            f"""
            SELECT s.session_id, s.project_path, s.started_at, s.last_snapshot_at,
                   COUNT(n.id) AS snapshot_count,
                   COALESCE(SUM(n.token_estimate), 0) AS total_tokens
            FROM sessions s
            LEFT JOIN snapshots n ON n.session_id = s.session_id
            GROUP BY s.session_id
            {_RECENCY_ORDER}
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [
            SessionSummary(
                session_id=row["session_id"],
                project_path=row["project_path"],
                started_at=row["started_at"],
                last_snapshot_at=row["last_snapshot_at"],
                snapshot_count=int(row["snapshot_count"]),
                total_tokens=int(row["total_tokens"]),
            )
            for row in rows
        ]

    def count_sessions(self) -> int:
        row = self._store.execute("SELECT COUNT(*) AS c FROM sessions").fetchone()
        return int(row["c"])
