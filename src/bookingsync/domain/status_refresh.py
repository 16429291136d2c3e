"""Re-check past bookings that are still marked active.

A scheduled-events listing only sees events inside its window, so a booking that
was cancelled or deleted after it left the window keeps its old status. This pass
asks the source about each such record individually.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from logging import getLogger
from typing import TYPE_CHECKING

from bookingsync.domain.credentials import resolve_credentials
from bookingsync.domain.errors import PersistenceError, SourceError
from bookingsync.domain.model import EventStatus
from bookingsync.domain.reconciliation import SyncFailure, is_stale, updated_record

if TYPE_CHECKING:
    from collections.abc import Callable

    from bookingsync.domain.ports.fetching import EventSource
    from bookingsync.domain.ports.unit_of_work import SyncUnitOfWork
    from bookingsync.domain.time_windows import Clock

log = getLogger(__name__)

DEFAULT_LOOKBACK = timedelta(days=3)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class StatusRefreshResult:
    project_id: str
    checked: int = 0
    updated: int = 0
    failures: list[SyncFailure] = field(default_factory=list[SyncFailure])

    def to_response(self) -> dict[str, object]:
        return {
            "success": True,
            "projectId": self.project_id,
            "stats": {
                "eventsChecked": self.checked,
                "eventsUpdated": self.updated,
                "errors": len(self.failures),
            },
            "failures": [failure.to_dict() for failure in self.failures],
        }


def refresh_statuses(
    project_id: str,
    *,
    source: EventSource,
    unit_of_work_factory: Callable[[], SyncUnitOfWork],
    lookback: timedelta = DEFAULT_LOOKBACK,
    clock: Clock = _utcnow,
) -> StatusRefreshResult:
    """Refresh active records scheduled in ``[now - lookback, now)``.

    Records the source no longer knows are marked cancelled.
    """

    now = clock()
    result = StatusRefreshResult(project_id=project_id)

    with unit_of_work_factory() as uow:
        repositories = uow.repositories
        credentials = resolve_credentials(
            repositories.integrations, source, project_id, now=now
        )
        stale = repositories.events.list_by_status(
            project_id,
            EventStatus.ACTIVE,
            scheduled_from=now - lookback,
            scheduled_before=now,
        )
        log.info("project=%s stage=status_refresh candidates=%s", project_id, len(stale))

        for record in stale:
            result.checked += 1
            try:
                current = source.fetch_event(credentials, record.external_id)
            except SourceError as exc:
                result.failures.append(
                    SyncFailure(
                        project_id=project_id,
                        stage="status_refresh",
                        external_id=record.external_id,
                        message=str(exc),
                    )
                )
                continue

            if current is None:
                status = EventStatus.CANCELLED
                source_updated_at = cancelled_at = None
            else:
                status = current.status
                source_updated_at = current.source_updated_at
                cancelled_at = current.cancelled_at
            if status == record.status or is_stale(record, source_updated_at):
                continue

            replacement = updated_record(
                record,
                status=status,
                now=now,
                source_updated_at=source_updated_at,
                cancelled_at=cancelled_at,
            )
            try:
                with uow.savepoint():
                    repositories.events.upsert(replacement)
            except PersistenceError as exc:
                result.failures.append(
                    SyncFailure(
                        project_id=project_id,
                        stage="persist",
                        external_id=record.external_id,
                        message=str(exc),
                    )
                )
                continue
            log.info(
                "project=%s stage=status_refresh external_id=%s %s -> %s",
                project_id,
                record.external_id,
                record.status,
                status,
            )
            result.updated += 1

        uow.commit()

    return result
