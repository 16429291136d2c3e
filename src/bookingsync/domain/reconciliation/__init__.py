"""Reconciliation of source events into the local event store."""

from __future__ import annotations

from .contracts import ProjectSyncResult, SyncFailure, SyncRunResult, SyncStats
from .engine import Reconciler
from .normalize import dedupe_events, normalize_status
from .policy import ChangeAction, decide_change, is_stale, new_record, updated_record

__all__ = [
    "ChangeAction",
    "ProjectSyncResult",
    "Reconciler",
    "SyncFailure",
    "SyncRunResult",
    "SyncStats",
    "decide_change",
    "dedupe_events",
    "is_stale",
    "new_record",
    "normalize_status",
    "updated_record",
]
