"""Query relevance ranking over snapshots.

Each query term is matched independently against several fields, with
per-field weights. A term hits a field on a case-insensitive substring match,
or when a field word of four or more characters is a clipped prefix of the
term at least four characters shorter than it. The raw score is then scaled
by the snapshot's importance tier, and by a recency boost in the deep-search
variant.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from momentum.memory.models import Importance, Snapshot
from momentum.memory.timestamps import age_hours
from momentum.memory.validation import query_terms

SUMMARY_WEIGHT = 3
CONTEXT_WEIGHT = 2
DECISIONS_WEIGHT = 2
NEXT_STEPS_WEIGHT = 1
FILES_WEIGHT = 1

IMPORTANCE_MULTIPLIERS: dict[Importance, float] = {
    Importance.CRITICAL: 2.0,
    Importance.IMPORTANT: 1.5,
    Importance.NORMAL: 1.0,
    Importance.REFERENCE: 0.5,
}

RECENCY_FLOOR = 0.5
RECENCY_CEILING = 2.0

MIN_STEM_CHARS = 4
# A stem must be a clipped form ("auth", "config"), not a near-complete word
# that differs only by an inflection ("test" for "testing").
MIN_CLIPPED_CHARS = 4
_WORD = re.compile(r"\w+")


@dataclass(frozen=True)
class ScoredSnapshot:
    snapshot: Snapshot
    score: float
    # Display only.
    relevance_percent: int


def term_matches(term: str, text: str) -> bool:
    """Substring hit, or a word in ``text`` that is a stem of ``term`` ("auth" for "authentication")."""
    if term in text:
        return True
    return any(
        len(word) >= MIN_STEM_CHARS
        and len(term) - len(word) >= MIN_CLIPPED_CHARS
        and term.startswith(word)
        for word in _WORD.findall(text)
    )


def raw_score(snapshot: Snapshot, terms: Sequence[str]) -> int:
    fields: list[tuple[str, int]] = [
        (snapshot.summary.lower(), SUMMARY_WEIGHT),
        (snapshot.context.lower(), CONTEXT_WEIGHT),
    ]
    decisions = snapshot.decision_list()
    if decisions is not None:
        fields.append((" ".join(decisions).lower(), DECISIONS_WEIGHT))
    if snapshot.next_steps:
        fields.append((snapshot.next_steps.lower(), NEXT_STEPS_WEIGHT))
    files = snapshot.file_list()
    if files is not None:
        fields.append((" ".join(files).lower(), FILES_WEIGHT))

    score = 0
    for term in terms:
        for text, weight in fields:
            if term_matches(term, text):
                score += weight
    return score


def recency_multiplier(hours: float | None) -> float:
    if hours is None:
        return 1.0
    return max(RECENCY_FLOOR, RECENCY_CEILING - hours / 24)


@runtime_checkable
class ScoringStrategy(Protocol):
    def score(self, snapshot: Snapshot, terms: Sequence[str]) -> float: ...


class ScoreStatic:
    """Field hits scaled by importance. Used by lightweight keyword filtering."""

    def score(self, snapshot: Snapshot, terms: Sequence[str]) -> float:
        return raw_score(snapshot, terms) * IMPORTANCE_MULTIPLIERS[snapshot.importance]


class ScoreWithRecency:
    """Field hits scaled by importance and a linear recency decay (2x fresh, 0.5x floor)."""

    def __init__(self, now: datetime | None = None):
        self._now = now

    def score(self, snapshot: Snapshot, terms: Sequence[str]) -> float:
        base = raw_score(snapshot, terms) * IMPORTANCE_MULTIPLIERS[snapshot.importance]
        if base == 0:
            return 0.0
        return base * recency_multiplier(age_hours(snapshot.created_at, now=self._now))


def search(
    candidates: Sequence[Snapshot],
    query: str,
    *,
    strategy: ScoringStrategy,
    max_results: int = 5,
) -> list[ScoredSnapshot]:
    terms = query_terms(query)
    scored = [(snapshot, strategy.score(snapshot, terms)) for snapshot in candidates]
    # sorted() is stable, so ties keep candidate order.
    ranked = sorted(((s, score) for s, score in scored if score > 0), key=lambda pair: pair[1], reverse=True)
    ranked = ranked[: max(0, max_results)]
    if not ranked:
        return []
    top = ranked[0][1]
    return [
        ScoredSnapshot(snapshot=s, score=score, relevance_percent=math.floor(100 * score / top + 0.5))
        for s, score in ranked
    ]
