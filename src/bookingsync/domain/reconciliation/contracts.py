"""Result types produced by reconciliation runs.

Counters are returned per project and folded by the caller; nothing accumulates
in module state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from bookingsync.domain.time_windows import SyncWindow
    from bookingsync.domain.type_registry import RegistryRefresh


@dataclass(slots=True)
class SyncStats:
    pages_fetched: int = 0
    api_calls: int = 0
    fetched: int = 0
    filtered: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def written(self) -> int:
        return self.inserted + self.updated

    def __add__(self, other: SyncStats) -> SyncStats:
        return SyncStats(
            pages_fetched=self.pages_fetched + other.pages_fetched,
            api_calls=self.api_calls + other.api_calls,
            fetched=self.fetched + other.fetched,
            filtered=self.filtered + other.filtered,
            inserted=self.inserted + other.inserted,
            updated=self.updated + other.updated,
            skipped=self.skipped + other.skipped,
            failed=self.failed + other.failed,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "pagesFetched": self.pages_fetched,
            "apiCalls": self.api_calls,
            "fetched": self.fetched,
            "filtered": self.filtered,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
        }


@dataclass(frozen=True, slots=True)
class SyncFailure:
    """One non-fatal failure inside a run (a project, a status walk or a record)."""

    project_id: str
    stage: str
    message: str
    status: str | None = None
    external_id: str | None = None

    def to_dict(self) -> dict[str, str]:
        payload = {"projectId": self.project_id, "stage": self.stage, "message": self.message}
        if self.status is not None:
            payload["status"] = self.status
        if self.external_id is not None:
            payload["externalId"] = self.external_id
        return payload


@dataclass(slots=True)
class ProjectSyncResult:
    project_id: str
    window: SyncWindow | None = None
    stats: SyncStats = field(default_factory=SyncStats)
    failures: list[SyncFailure] = field(default_factory=list[SyncFailure])
    registry: RegistryRefresh | None = None


@dataclass(slots=True)
class SyncRunResult:
    """Aggregate outcome returned to the sync trigger."""

    finished_at: datetime
    projects: list[ProjectSyncResult] = field(default_factory=list[ProjectSyncResult])
    failures: list[SyncFailure] = field(default_factory=list[SyncFailure])
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def stats(self) -> SyncStats:
        total = SyncStats()
        for project in self.projects:
            total = total + project.stats
        return total

    @property
    def all_failures(self) -> list[SyncFailure]:
        collected = list(self.failures)
        for project in self.projects:
            collected.extend(project.failures)
        return collected

    def to_response(self) -> dict[str, object]:
        timestamp = self.finished_at.isoformat()
        if self.error is not None:
            return {"success": False, "error": self.error, "timestamp": timestamp}
        return {
            "success": True,
            "events": self.stats.written,
            "projects": len(self.projects),
            "timestamp": timestamp,
            "stats": self.stats.to_dict(),
            "failures": [failure.to_dict() for failure in self.all_failures],
        }
