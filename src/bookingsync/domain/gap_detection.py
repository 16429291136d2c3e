"""Report signs that a project's local data has fallen behind the source."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from bookingsync.domain.model import EventStatus

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from bookingsync.domain.model import LocalEventRecord, ProjectIntegration
    from bookingsync.domain.ports.unit_of_work import SyncUnitOfWork
    from bookingsync.domain.time_windows import Clock


def _utcnow() -> datetime:
    return datetime.now(UTC)


class GapKind(StrEnum):
    TIMELINE = "timeline"
    STALE_SYNC = "stale_sync"
    STATUS_OUTDATED = "status_outdated"


class Recommendation(StrEnum):
    INCREMENTAL_SYNC = "incremental_sync"
    GAP_FILL = "gap_fill"
    STATUS_REFRESH = "status_refresh"


@dataclass(frozen=True, slots=True)
class GapThresholds:
    timeline_lookback: timedelta = timedelta(days=14)
    timeline_gap: timedelta = timedelta(hours=6)
    timeline_high: timedelta = timedelta(hours=24)
    stale_sync: timedelta = timedelta(hours=24)
    outdated_after: timedelta = timedelta(days=1)


@dataclass(frozen=True, slots=True)
class TimelineGap:
    start: datetime
    end: datetime

    @property
    def hours(self) -> float:
        return round((self.end - self.start).total_seconds() / 3600, 1)


@dataclass(frozen=True, slots=True)
class DetectedGap:
    kind: GapKind
    recommendation: Recommendation
    severity: str = "medium"
    timeline: TimelineGap | None = None
    count: int | None = None
    last_sync_age_hours: int | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "gapType": self.kind.value,
            "recommendation": self.recommendation.value,
            "severity": self.severity,
        }
        if self.timeline is not None:
            payload["startTime"] = self.timeline.start.isoformat()
            payload["endTime"] = self.timeline.end.isoformat()
            payload["gapDurationHours"] = self.timeline.hours
        if self.count is not None:
            payload["count"] = self.count
        if self.kind is GapKind.STALE_SYNC:
            payload["lastSyncAgeHours"] = self.last_sync_age_hours
        return payload


@dataclass(slots=True)
class ProjectGapReport:
    project_id: str
    recent_events: int = 0
    gaps: list[DetectedGap] = field(default_factory=list[DetectedGap])

    def to_dict(self) -> dict[str, object]:
        return {
            "projectId": self.project_id,
            "recentEvents": self.recent_events,
            "gaps": [gap.to_dict() for gap in self.gaps],
        }


def find_timeline_gaps(
    records: Sequence[LocalEventRecord], *, threshold: timedelta
) -> list[TimelineGap]:
    """Intervals between consecutive record creations longer than ``threshold``."""

    ordered = sorted(record.created_at for record in records)
    return [
        TimelineGap(start=previous, end=current)
        for previous, current in zip(ordered, ordered[1:], strict=False)
        if current - previous > threshold
    ]


def detect_gaps(
    *,
    unit_of_work_factory: Callable[[], SyncUnitOfWork],
    project_id: str | None = None,
    thresholds: GapThresholds | None = None,
    clock: Clock = _utcnow,
) -> list[ProjectGapReport]:
    active_thresholds = thresholds or GapThresholds()
    now = clock()
    reports: list[ProjectGapReport] = []
    with unit_of_work_factory() as uow:
        repositories = uow.repositories
        for integration in repositories.integrations.list_connected(project_id):
            recent = repositories.events.list_created_since(
                integration.project_id, now - active_thresholds.timeline_lookback
            )
            outdated = repositories.events.list_by_status(
                integration.project_id,
                EventStatus.ACTIVE,
                scheduled_before=now - active_thresholds.outdated_after,
            )
            reports.append(
                _project_report(integration, recent, outdated, active_thresholds, now)
            )
    return reports


def _project_report(
    integration: ProjectIntegration,
    recent: Sequence[LocalEventRecord],
    outdated: Sequence[LocalEventRecord],
    thresholds: GapThresholds,
    now: datetime,
) -> ProjectGapReport:
    report = ProjectGapReport(project_id=integration.project_id, recent_events=len(recent))

    for gap in find_timeline_gaps(recent, threshold=thresholds.timeline_gap):
        severity = "high" if gap.end - gap.start > thresholds.timeline_high else "medium"
        report.gaps.append(
            DetectedGap(
                kind=GapKind.TIMELINE,
                recommendation=Recommendation.INCREMENTAL_SYNC,
                severity=severity,
                timeline=gap,
            )
        )

    last_sync = integration.last_sync
    if last_sync is None or now - last_sync > thresholds.stale_sync:
        age = None if last_sync is None else int((now - last_sync).total_seconds() // 3600)
        report.gaps.append(
            DetectedGap(
                kind=GapKind.STALE_SYNC,
                recommendation=Recommendation.GAP_FILL,
                severity="high",
                last_sync_age_hours=age,
            )
        )

    if outdated:
        report.gaps.append(
            DetectedGap(
                kind=GapKind.STATUS_OUTDATED,
                recommendation=Recommendation.STATUS_REFRESH,
                count=len(outdated),
            )
        )
    return report
