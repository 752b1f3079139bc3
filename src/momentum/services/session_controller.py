from __future__ import annotations

from momentum.engine import HealthReport
from momentum.memory.models import SessionStats, SessionSummary, Snapshot
from momentum.memory.timestamps import time_ago
from momentum.scoring import ScoredSnapshot


class SessionController:
    """Formats engine results as shell output lines."""

    def __init__(self, *, line_prefix: str, short_id_len: int = 16, preview_chars: int = 80):
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len
        self._preview_chars = preview_chars

    def short_id(self, value: str) -> str:
        if len(value) <= self._short_id_len:
            return value
        return value[: self._short_id_len]

    def preview(self, text: str) -> str:
        flat = " ".join(text.split())
        if len(flat) <= self._preview_chars:
            return flat
        return flat[: self._preview_chars - 3] + "..."

    def format_session_list_entry(self, session: SessionSummary, *, active_session_id: str | None) -> str:
        marker = "*" if session.session_id == active_session_id else " "
        project = session.project_path or "-"
        last = time_ago(session.last_snapshot_at) if session.last_snapshot_at else "never"
        return (
            f"{self._line_prefix}{marker} [{self.short_id(session.session_id)}] (id={session.session_id}) "
            f"(project={project}, snapshots={session.snapshot_count}, "
            f"tokens~{session.total_tokens:,}, last={last})"
        )

    def format_snapshot_line(self, snapshot: Snapshot) -> str:
        return (
            f"{self._line_prefix}#{snapshot.id} [{snapshot.sequence}] {snapshot.importance.icon} "
            f"{self.preview(snapshot.summary)} ({time_ago(snapshot.created_at)}, ~{snapshot.token_estimate} tokens)"
        )

    def format_snapshot_detail_lines(self, snapshot: Snapshot) -> list[str]:
        lines = [
            f"{self._line_prefix}Snapshot #{snapshot.id} (session={snapshot.session_id}, seq={snapshot.sequence})",
            f"{self._line_prefix}- Importance: {snapshot.importance.value}",
            f"{self._line_prefix}- Created: {snapshot.created_at} ({time_ago(snapshot.created_at)})",
            f"{self._line_prefix}- Summary: {snapshot.summary}",
        ]
        files = snapshot.file_list()
        if files:
            lines.append(f"{self._line_prefix}- Files: {', '.join(files)}")
        decisions = snapshot.decision_list()
        if decisions:
            lines.append(f"{self._line_prefix}- Decisions:")
            lines.extend(f"{self._line_prefix}  • {d}" for d in decisions)
        if snapshot.next_steps:
            lines.append(f"{self._line_prefix}- Next: {snapshot.next_steps}")
        lines.append(f"{self._line_prefix}- Context:")
        lines.extend(f"{self._line_prefix}  {line}" for line in snapshot.context.splitlines())
        return lines

    def format_stats_lines(self, stats: SessionStats) -> list[str]:
        return [
            f"{self._line_prefix}Session {stats.session_id}:",
            f"{self._line_prefix}- Snapshots: {stats.snapshot_count}",
            f"{self._line_prefix}- Tokens: ~{stats.total_tokens:,}",
            f"{self._line_prefix}- First: {stats.first_snapshot} ({time_ago(stats.first_snapshot)})",
            f"{self._line_prefix}- Last: {stats.last_snapshot} ({time_ago(stats.last_snapshot)})",
        ]

    def format_search_result(self, result: ScoredSnapshot) -> str:
        snapshot = result.snapshot
        return (
            f"{self._line_prefix}{result.relevance_percent:>3}% #{snapshot.id} {snapshot.importance.icon} "
            f"{self.preview(snapshot.summary)} ({time_ago(snapshot.created_at)})"
        )

    def format_health_lines(self, report: HealthReport) -> list[str]:
        status = "healthy" if report.ok else "UNHEALTHY"
        lines = [
            f"{self._line_prefix}Store: {status} ({report.db_path})",
            f"{self._line_prefix}- Integrity: {report.integrity}",
            f"{self._line_prefix}- Sessions: {report.session_count}",
            f"{self._line_prefix}- Snapshots: {report.snapshot_count} (~{report.total_tokens:,} tokens)",
        ]
        if report.error:
            lines.append(f"{self._line_prefix}- Error: {report.error}")
        return lines
