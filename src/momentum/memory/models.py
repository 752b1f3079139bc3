from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Importance(StrEnum):
    CRITICAL = "critical"
    IMPORTANT = "important"
    NORMAL = "normal"
    REFERENCE = "reference"

    @property
    def weight(self) -> int:
        """Ordinal used for priority ordering (critical=4 ... reference=1)."""
        return _IMPORTANCE_WEIGHTS[self]

    @property
    def icon(self) -> str:
        return _IMPORTANCE_ICONS[self]


_IMPORTANCE_WEIGHTS: dict[Importance, int] = {
    Importance.CRITICAL: 4,
    Importance.IMPORTANT: 3,
    Importance.NORMAL: 2,
    Importance.REFERENCE: 1,
}

_IMPORTANCE_ICONS: dict[Importance, str] = {
    Importance.CRITICAL: "🔴",
    Importance.IMPORTANT: "🟡",
    Importance.NORMAL: "○",
    Importance.REFERENCE: "📎",
}


def normalize_importance(value: object) -> Importance:
    """Map any input to a tier. Unrecognized or missing values become NORMAL."""
    if isinstance(value, Importance):
        return value
    if isinstance(value, str):
        try:
            return Importance(value.strip().lower())
        except ValueError:
            pass
    return Importance.NORMAL


def _as_items(value: Any) -> list[str]:
    # A bare string is one item, not a sequence of characters.
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


@dataclass(frozen=True)
class StructuredContext:
    """Sectioned context payload, rendered to a single string at write time."""

    description: str | None = None
    files: list[str] = field(default_factory=list)
    decisions: list[str] = field(default_factory=list)
    blockers: list[str] = field(default_factory=list)
    errors_fixed: list[str] = field(default_factory=list)
    tests: dict[str, Any] | None = None
    code_state: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StructuredContext:
        known = {"description", "files", "decisions", "blockers", "errors_fixed"}
        description = data.get("description")
        tests = data.get("tests")
        code_state = data.get("code_state")
        extra = {k: v for k, v in data.items() if k not in known}
        if isinstance(tests, dict):
            extra.pop("tests")
        if isinstance(code_state, dict):
            extra.pop("code_state")
        return cls(
            description=str(description) if description is not None else None,
            files=_as_items(data.get("files")),
            decisions=_as_items(data.get("decisions")),
            blockers=_as_items(data.get("blockers")),
            errors_fixed=_as_items(data.get("errors_fixed")),
            tests=tests if isinstance(tests, dict) and tests else None,
            code_state=code_state if isinstance(code_state, dict) and code_state else None,
            extra=extra,
        )

    def render(self) -> str:
        parts: list[str] = []
        if self.description and self.description.strip():
            parts.append(self.description.strip())
            parts.append("")

        for title, items in (
            ("Files", self.files),
            ("Decisions", self.decisions),
            ("Blockers", self.blockers),
            ("Errors Fixed", self.errors_fixed),
        ):
            if items:
                parts.append(f"{title}:")
                parts.extend(f"- {item}" for item in items)
                parts.append("")

        if self.tests:
            passing = self.tests.get("passing")
            failing = self.tests.get("failing")
            if passing is not None or failing is not None:
                parts.append(f"Tests: {passing or 0} passing, {failing or 0} failing")
            else:
                parts.append("Tests:")
                parts.append(json.dumps(self.tests, indent=2, ensure_ascii=False))
            parts.append("")

        if self.code_state:
            parts.append("Code State:")
            parts.append(json.dumps(self.code_state, indent=2, ensure_ascii=False))
            parts.append("")

        for key, value in self.extra.items():
            if value is None:
                continue
            parts.append(f"{key}:")
            parts.append(value if isinstance(value, str) else json.dumps(value, indent=2, ensure_ascii=False))
            parts.append("")

        return "\n".join(parts).strip()


ContextInput = str | StructuredContext | dict[str, Any]


def render_context(context: ContextInput) -> str:
    if isinstance(context, StructuredContext):
        return context.render()
    if isinstance(context, dict):
        return StructuredContext.from_dict(context).render()
    return context


def parse_string_list(raw: str | None) -> list[str] | None:
    """Decode a stored JSON list of strings. Returns None for missing or malformed blobs."""
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(parsed, list):
        return None
    return [str(item) for item in parsed]


def dump_string_list(values: list[str] | None) -> str | None:
    if values is None:
        return None
    return json.dumps([str(v) for v in values], ensure_ascii=False)


@dataclass(frozen=True)
class Snapshot:
    id: int
    session_id: str
    sequence: int
    summary: str
    context: str
    files_touched: str | None
    decisions: str | None
    next_steps: str | None
    token_estimate: int
    importance: Importance
    created_at: str

    @classmethod
    def from_row(cls, row: Any) -> Snapshot:
        return cls(
            id=int(row["id"]),
            session_id=str(row["session_id"]),
            sequence=int(row["sequence"]),
            summary=str(row["summary"]),
            context=str(row["context"]),
            files_touched=row["files_touched"],
            decisions=row["decisions"],
            next_steps=row["next_steps"],
            token_estimate=int(row["token_estimate"]),
            importance=normalize_importance(row["importance"]),
            created_at=str(row["created_at"]),
        )

    def decision_list(self) -> list[str] | None:
        return parse_string_list(self.decisions)

    def file_list(self) -> list[str] | None:
        return parse_string_list(self.files_touched)


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    project_path: str | None
    started_at: str
    last_snapshot_at: str | None


@dataclass(frozen=True)
class SessionSummary:
    session_id: str
    project_path: str | None
    started_at: str
    last_snapshot_at: str | None
    snapshot_count: int
    total_tokens: int


@dataclass(frozen=True)
class SessionStats:
    session_id: str
    snapshot_count: int
    total_tokens: int
    first_snapshot: str
    last_snapshot: str
