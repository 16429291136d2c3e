"""Apply pushed booking notifications across the connected projects."""

from __future__ import annotations

from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from bookingsync.domain.errors import AuthenticationError, SourceError
from bookingsync.domain.reconciliation import (
    ProjectSyncResult,
    Reconciler,
    SyncFailure,
    SyncRunResult,
)
from bookingsync.domain.type_registry import TypeMappingRegistry

if TYPE_CHECKING:
    from collections.abc import Callable

    from bookingsync.domain.model import BookingNotice
    from bookingsync.domain.ports.fetching import EventSource
    from bookingsync.domain.ports.unit_of_work import SyncUnitOfWork
    from bookingsync.domain.time_windows import Clock

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def apply_booking_notice(
    notice: BookingNotice,
    *,
    source: EventSource,
    unit_of_work_factory: Callable[[], SyncUnitOfWork],
    project_id: str | None = None,
    clock: Clock = _utcnow,
) -> SyncRunResult:
    """Write the event a notice names into every project that tracks it.

    When the notice carries its category, only projects with an active mapping for
    that category are visited. A failure in one project is recorded and the next
    project still runs.
    """

    reconciler = Reconciler(source=source, unit_of_work_factory=unit_of_work_factory, clock=clock)

    with unit_of_work_factory() as uow:
        repositories = uow.repositories
        registry = TypeMappingRegistry(repositories.type_mappings)
        candidates = [
            integration.project_id
            for integration in repositories.integrations.list_connected(project_id)
            if notice.category_id is None
            or any(
                mapping.category_id == notice.category_id
                for mapping in registry.list_active(integration.project_id)
            )
        ]

    log.info(
        "Applying booking notice: external_id=%s cancelled=%s projects=%s",
        notice.external_id,
        notice.cancelled,
        len(candidates),
    )

    projects: list[ProjectSyncResult] = []
    failures: list[SyncFailure] = []
    for candidate in candidates:
        try:
            projects.append(reconciler.reconcile_event(candidate, notice))
        except AuthenticationError as exc:
            log.warning("project=%s stage=auth skipped: %s", candidate, exc)
            failures.append(SyncFailure(project_id=candidate, stage="auth", message=str(exc)))
        except SourceError as exc:
            log.warning("project=%s stage=notice failed: %s", candidate, exc)
            failures.append(
                SyncFailure(
                    project_id=candidate,
                    stage="notice",
                    external_id=notice.external_id,
                    message=str(exc),
                )
            )

    return SyncRunResult(finished_at=clock(), projects=projects, failures=failures)
