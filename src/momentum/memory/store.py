from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger

DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0


class MemoryStore:
    def __init__(self, db_path: str, *, lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        self._db_path = db_path
        in_memory = db_path == ":memory:"
        if not in_memory:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False, timeout=lock_timeout_seconds)
        self._conn.row_factory = sqlite3.Row
        if not in_memory:
            self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.execute(f"PRAGMA busy_timeout = {int(lock_timeout_seconds * 1000)}")
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._initialize_schema()
        logger.debug(f"Opened snapshot store: {db_path}")

    @property
    def db_path(self) -> str:
        return self._db_path

    def close(self) -> None:
        self._conn.close()

    def execute(self, query: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        return self._conn.execute(query, params)

    def executemany(self, query: str, seq_of_params: list[tuple[Any, ...]]) -> sqlite3.Cursor:
        return self._conn.executemany(query, seq_of_params)

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed statements as one write transaction.

        BEGIN IMMEDIATE takes the write lock up front, so concurrent writers
        queue on busy_timeout instead of racing on reads made inside the block.
        """
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self._conn.rollback()
            raise
        self._conn.commit()

    def _initialize_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS sessions (
                session_id TEXT PRIMARY KEY,
                project_path TEXT NULL,
                started_at TEXT NOT NULL,
                last_snapshot_at TEXT NULL,
                last_sequence INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS snapshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL REFERENCES sessions(session_id) ON DELETE CASCADE,
                sequence INTEGER NOT NULL,
                summary TEXT NOT NULL,
                context TEXT NOT NULL,
                files_touched TEXT NULL,
                decisions TEXT NULL,
                next_steps TEXT NULL,
                token_estimate INTEGER NOT NULL DEFAULT 0 CHECK (token_estimate >= 0),
                importance TEXT NOT NULL DEFAULT 'normal'
                    CHECK (importance IN ('critical', 'important', 'normal', 'reference')),
                created_at TEXT NOT NULL,
                synced_at TEXT NULL,
                cloud_id TEXT NULL,
                sync_retries INTEGER NOT NULL DEFAULT 0,
                sync_error TEXT NULL,
                last_sync_attempt TEXT NULL,
                UNIQUE(session_id, sequence)
            );

            CREATE INDEX IF NOT EXISTS idx_snapshots_session_sequence
                ON snapshots(session_id, sequence);
            CREATE INDEX IF NOT EXISTS idx_snapshots_created
                ON snapshots(created_at);
            CREATE INDEX IF NOT EXISTS idx_sessions_project
                ON sessions(project_path);
            """
        )
        self._conn.commit()
