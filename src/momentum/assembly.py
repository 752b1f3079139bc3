"""Budgeted assembly of snapshots into one context blob.

Candidates arrive in priority order (importance, then recency). A prefix is
accepted greedily until the next record would overflow the discounted budget;
the first candidate is always accepted so a non-empty candidate list never
yields an empty result. Accepted records are emitted oldest to newest.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from momentum.memory.models import Snapshot
from momentum.memory.timestamps import time_ago
from momentum.tokens import estimate_tokens

SAFETY_MARGIN = 0.85
RECORD_SEPARATOR = "\n\n---\n\n"

Renderer = Callable[[Snapshot, int], str]


@dataclass(frozen=True)
class AssemblyResult:
    text: str
    records_used: int
    # Sum of the accepted records' estimates; not the requested or discounted budget.
    total_tokens: int
    oldest_ts: str
    newest_ts: str


EMPTY_ASSEMBLY = AssemblyResult(text="", records_used=0, total_tokens=0, oldest_ts="", newest_ts="")


def effective_budget(max_tokens: int) -> int:
    return max(0, math.floor(max_tokens * SAFETY_MARGIN))


def priority_order(snapshots: Sequence[Snapshot]) -> list[Snapshot]:
    """Importance descending, then newest first.

    Recency is the per-session sequence when all snapshots share a session,
    otherwise creation time with the store id as tiebreak.
    """
    if len({s.session_id for s in snapshots}) <= 1:
        return sorted(snapshots, key=lambda s: (s.importance.weight, s.sequence), reverse=True)
    return sorted(snapshots, key=lambda s: (s.importance.weight, s.created_at, s.id), reverse=True)


def render_compact(snapshot: Snapshot, index: int, *, now: datetime | None = None) -> str:
    marker = " [LATEST]" if index == 0 else ""
    lines = [
        f"### {snapshot.importance.icon} {snapshot.summary}{marker}",
        f"_{time_ago(snapshot.created_at, now=now)}_",
        "",
        snapshot.context,
    ]
    if snapshot.next_steps:
        lines.append("")
        lines.append(f"**Next:** {snapshot.next_steps}")
    return "\n".join(lines)


def render_injection(snapshot: Snapshot, index: int) -> str:
    lines = [f"**{snapshot.summary}**", snapshot.context]
    if snapshot.next_steps:
        lines.append(f"→ Next: {snapshot.next_steps}")
    return "\n".join(lines)


def assemble(candidates: Sequence[Snapshot], max_tokens: int, render: Renderer = render_compact) -> AssemblyResult:
    if not candidates:
        return EMPTY_ASSEMBLY

    budget = effective_budget(max_tokens)
    accepted: list[tuple[Snapshot, str]] = []
    total = 0
    for index, snapshot in enumerate(candidates):
        text = render(snapshot, index)
        tokens = estimate_tokens(text)
        if accepted and total + tokens > budget:
            break
        accepted.append((snapshot, text))
        total += tokens

    if total > budget:
        logger.debug(f"Assembly: first record alone (~{total} tokens) exceeds budget {budget}; kept anyway")

    chronological = sorted(accepted, key=lambda pair: pair[0].id)
    logger.debug(
        f"Assembly: accepted {len(accepted)}/{len(candidates)} candidates, "
        f"~{total} tokens (budget {budget} of {max_tokens})"
    )
    return AssemblyResult(
        text=RECORD_SEPARATOR.join(text for _, text in chronological),
        records_used=len(accepted),
        total_tokens=total,
        oldest_ts=chronological[0][0].created_at,
        newest_ts=chronological[-1][0].created_at,
    )
