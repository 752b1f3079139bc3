from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from functools import partial

from loguru import logger

from momentum.assembly import AssemblyResult, assemble, priority_order, render_compact, render_injection
from momentum.memory.models import ContextInput, Importance, SessionStats, SessionSummary, Snapshot
from momentum.memory.session_manager import SessionManager
from momentum.memory.snapshots import MAX_LIST_LIMIT, SnapshotDraft, SnapshotManager
from momentum.memory.store import MemoryStore
from momentum.memory.validation import ValidationError, query_terms
from momentum.restoration import format_restoration, select_for_restore
from momentum.scoring import ScoredSnapshot, ScoreStatic, ScoreWithRecency, search

DEFAULT_MAX_TOKENS = 15_000
DEFAULT_INJECTION_MAX_TOKENS = 5_000
DEFAULT_SEARCH_RESULTS = 5
DEFAULT_FILTER_RESULTS = 20
DEFAULT_KEEP_RECENT = 5
DEFAULT_RESTORE_SNAPSHOTS = 10


@dataclass(frozen=True)
class HealthReport:
    ok: bool
    integrity: str
    session_count: int
    snapshot_count: int
    total_tokens: int
    db_path: str
    error: str | None = None


def _positive(field: str, value: int) -> int:
    if value <= 0:
        raise ValidationError(field, f"{field} must be positive")
    return value


def _floor_weight(importance_floor: Importance | str | None) -> int:
    if importance_floor is None:
        return 0
    if isinstance(importance_floor, Importance):
        return importance_floor.weight
    try:
        return Importance(importance_floor.strip().lower()).weight
    except ValueError:
        # "any" and unknown levels admit everything
        return 0


class MomentumEngine:
    """Stateless facade over the snapshot store.

    Every operation takes the session id explicitly; nothing is remembered
    between calls except what is in the store.
    """

    def __init__(
        self,
        store: MemoryStore,
        *,
        default_max_tokens: int = DEFAULT_MAX_TOKENS,
        injection_max_tokens: int = DEFAULT_INJECTION_MAX_TOKENS,
        search_max_results: int = DEFAULT_SEARCH_RESULTS,
        filter_max_results: int = DEFAULT_FILTER_RESULTS,
        cleanup_keep_recent: int = DEFAULT_KEEP_RECENT,
    ):
        self._store = store
        self._sessions = SessionManager(store)
        self._snapshots = SnapshotManager(store, self._sessions)
        self._default_max_tokens = default_max_tokens
        self._injection_max_tokens = injection_max_tokens
        self._search_max_results = search_max_results
        self._filter_max_results = filter_max_results
        self._cleanup_keep_recent = cleanup_keep_recent

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def snapshots(self) -> SnapshotManager:
        return self._snapshots

    # -- writes --

    def save(
        self,
        summary: str,
        context: ContextInput,
        *,
        session_id: str | None = None,
        project_path: str | None = None,
        files_touched: list[str] | None = None,
        decisions: list[str] | None = None,
        next_steps: str | None = None,
        importance: object = None,
        token_estimate: int | None = None,
    ) -> Snapshot:
        draft = SnapshotDraft.build(
            summary,
            context,
            files_touched=files_touched,
            decisions=decisions,
            next_steps=next_steps,
            importance=importance,
            token_estimate=token_estimate,
        )
        return self._snapshots.insert(draft, session_id=session_id, project_path=project_path)

    def cleanup(
        self,
        session_id: str | None = None,
        *,
        before_id: int | None = None,
        keep_recent: int | None = None,
    ) -> int:
        if keep_recent is None:
            keep_recent = self._cleanup_keep_recent
        return self._snapshots.delete_where(session_id, before_id=before_id, keep_recent=keep_recent)

    def clear(self, session_id: str) -> int:
        return self._snapshots.clear_session(session_id)

    # -- sessions --

    def start_session(self, session_id: str | None = None, project_path: str | None = None) -> str:
        return self._sessions.resolve_or_create(session_id, project_path)

    def find_session(self, project_path: str) -> str | None:
        return self._sessions.find_by_project(project_path)

    def list_sessions(self, limit: int = 20) -> list[SessionSummary]:
        return self._sessions.list_sessions(limit=limit)

    # -- reads --

    def get(self, snapshot_id: int) -> Snapshot | None:
        return self._snapshots.get(snapshot_id)

    def list_snapshots(self, session_id: str | None = None, limit: int | None = None) -> list[Snapshot]:
        return self._snapshots.list_snapshots(session_id, limit=limit)

    def stats(self, session_id: str) -> SessionStats | None:
        return self._snapshots.stats(session_id)

    def assemble_context(
        self,
        session_id: str | None = None,
        max_tokens: int | None = None,
        *,
        now: datetime | None = None,
    ) -> AssemblyResult:
        budget = _positive("max_tokens", max_tokens if max_tokens is not None else self._default_max_tokens)
        candidates = priority_order(self._snapshots.candidates(session_id))
        logger.debug(f"assemble_context: {len(candidates)} candidates (session={session_id or '*'})")
        return assemble(candidates, budget, partial(render_compact, now=now))

    def assemble_for_injection(
        self,
        session_id: str | None = None,
        topic: str | None = None,
        include_critical: bool = True,
        max_tokens: int | None = None,
    ) -> AssemblyResult:
        budget = _positive("max_tokens", max_tokens if max_tokens is not None else self._injection_max_tokens)
        topic = topic.strip() if topic else None
        candidates = priority_order(
            self._snapshots.candidates(session_id, topic=topic or None, include_priority=include_critical)
        )
        logger.debug(
            f"assemble_for_injection: {len(candidates)} candidates "
            f"(session={session_id or '*'}, topic={topic!r}, include_critical={include_critical})"
        )
        return assemble(candidates, budget, render_injection)

    def search_about(
        self,
        query: str,
        session_id: str | None = None,
        importance_floor: Importance | str | None = None,
        max_results: int | None = None,
        *,
        now: datetime | None = None,
    ) -> list[ScoredSnapshot]:
        query_terms(query)
        floor = _floor_weight(importance_floor)
        candidates = [
            s
            for s in self._snapshots.list_snapshots(session_id, limit=MAX_LIST_LIMIT)
            if s.importance.weight >= floor
        ]
        return search(
            candidates,
            query,
            strategy=ScoreWithRecency(now),
            max_results=max_results if max_results is not None else self._search_max_results,
        )

    def filter_snapshots(
        self,
        query: str,
        session_id: str | None = None,
        max_results: int | None = None,
    ) -> list[ScoredSnapshot]:
        query_terms(query)
        candidates = self._snapshots.list_snapshots(session_id, limit=MAX_LIST_LIMIT)
        return search(
            candidates,
            query,
            strategy=ScoreStatic(),
            max_results=max_results if max_results is not None else self._filter_max_results,
        )

    def restore_context(
        self,
        session_id: str,
        importance_level: str = "important",
        max_snapshots: int = DEFAULT_RESTORE_SNAPSHOTS,
        include_summary: bool = True,
        *,
        now: datetime | None = None,
    ) -> str | None:
        recent = self._snapshots.list_snapshots(session_id, limit=MAX_LIST_LIMIT)
        selected = select_for_restore(recent, level=importance_level, max_snapshots=max_snapshots)
        if not selected:
            return None
        return format_restoration(
            selected,
            session_id=session_id,
            level=importance_level,
            include_summary=include_summary,
            now=now,
        )

    def health_check(self) -> HealthReport:
        try:
            row = self._store.execute("PRAGMA integrity_check").fetchone()
            integrity = str(row[0]) if row is not None else "unknown"
            session_count = self._sessions.count_sessions()
            snapshot_count, total_tokens = self._snapshots.totals()
        except sqlite3.Error as ex:
            logger.warning(f"Health check failed: {ex}")
            return HealthReport(
                ok=False,
                integrity="error",
                session_count=0,
                snapshot_count=0,
                total_tokens=0,
                db_path=self._store.db_path,
                error=str(ex),
            )
        ok = integrity == "ok"
        if not ok:
            logger.warning(f"Integrity check reported: {integrity}")
        return HealthReport(
            ok=ok,
            integrity=integrity,
            session_count=session_count,
            snapshot_count=snapshot_count,
            total_tokens=total_tokens,
            db_path=self._store.db_path,
        )
