from momentum.memory.models import (
    Importance,
    SessionRecord,
    SessionStats,
    SessionSummary,
    Snapshot,
    StructuredContext,
    normalize_importance,
    render_context,
)
from momentum.memory.session_manager import SessionManager
from momentum.memory.snapshots import SnapshotDraft, SnapshotManager
from momentum.memory.store import MemoryStore
from momentum.memory.sync_ledger import PendingSnapshot, SyncLedger
from momentum.memory.validation import ValidationError

__all__ = [
    "Importance",
    "MemoryStore",
    "PendingSnapshot",
    "SessionManager",
    "SessionRecord",
    "SessionStats",
    "SessionSummary",
    "Snapshot",
    "SnapshotDraft",
    "SnapshotManager",
    "StructuredContext",
    "SyncLedger",
    "ValidationError",
    "normalize_importance",
    "render_context",
]
