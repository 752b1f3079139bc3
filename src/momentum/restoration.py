from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime

from momentum.memory.models import Importance, Snapshot
from momentum.memory.timestamps import time_ago

_RULE = "═" * 70
MAX_SUMMARY_DECISIONS = 5

# "all" admits every tier; anything unrecognized falls back to "important".
IMPORTANCE_LEVEL_FLOORS: dict[str, int] = {
    "critical": Importance.CRITICAL.weight,
    "important": Importance.IMPORTANT.weight,
    "all": 0,
}


def importance_floor(level: str | None) -> int:
    return IMPORTANCE_LEVEL_FLOORS.get((level or "important").strip().lower(), Importance.IMPORTANT.weight)


def select_for_restore(snapshots: Sequence[Snapshot], *, level: str | None, max_snapshots: int) -> list[Snapshot]:
    floor = importance_floor(level)
    return [s for s in snapshots if s.importance.weight >= floor][: max(1, max_snapshots)]


def format_restoration(
    snapshots: Sequence[Snapshot],
    *,
    session_id: str,
    level: str,
    include_summary: bool = True,
    now: datetime | None = None,
) -> str:
    """Render newest-first ``snapshots`` as a re-orientation document."""
    current = now or datetime.now(UTC)
    parts = [
        _RULE,
        "MOMENTUM CONTEXT RESTORATION",
        f"Generated: {current.isoformat(timespec='seconds')}",
        f"Session: {session_id}",
        f"Snapshots: {len(snapshots)} (filtered by {level})",
        _RULE,
        "",
    ]

    if include_summary and snapshots:
        latest = snapshots[0]
        parts.append("## Quick Summary")
        parts.append("")
        parts.append(f"**Most Recent:** {latest.summary}")
        parts.append(f"_{time_ago(latest.created_at, now=current)}_")
        parts.append("")

        decisions: list[str] = []
        for snapshot in snapshots:
            for decision in snapshot.decision_list() or []:
                if decision not in decisions:
                    decisions.append(decision)
        if decisions:
            parts.append("**Key Decisions Made:**")
            parts.extend(f"  • {d}" for d in decisions[:MAX_SUMMARY_DECISIONS])
            parts.append("")

        if latest.next_steps:
            parts.append(f"**Planned Next:** {latest.next_steps}")
            parts.append("")

    parts.append("## Restored Snapshots")
    parts.append("")
    for index, snapshot in enumerate(snapshots):
        marker = " [LATEST]" if index == 0 else ""
        parts.append(f"### {snapshot.importance.icon} {snapshot.summary}{marker}")
        parts.append(f"_{time_ago(snapshot.created_at, now=current)}_")
        parts.append("")
        parts.append(snapshot.context)
        if snapshot.next_steps:
            parts.append("")
            parts.append(f"**Next:** {snapshot.next_steps}")
        parts.extend(["", "---", ""])

    parts.append(_RULE)
    parts.append("END: MOMENTUM CONTEXT RESTORATION")
    parts.append(_RULE)
    return "\n".join(parts)
