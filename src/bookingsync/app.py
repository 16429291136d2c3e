"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from logging import getLogger
from typing import TYPE_CHECKING

from bookingsync.adapters.calendly import CalendlyEventSource, read_webhook
from bookingsync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemySyncUnitOfWork,
    is_started,
    startup,
)
from bookingsync.config import get_sync_config
from bookingsync.domain.booking_notices import apply_booking_notice
from bookingsync.domain.data_integration import SyncRequest, SyncSettings, sync_projects
from bookingsync.domain.gap_detection import ProjectGapReport, detect_gaps
from bookingsync.domain.ports.unit_of_work import SyncUnitOfWork
from bookingsync.domain.status_refresh import StatusRefreshResult, refresh_statuses
from bookingsync.domain.time_windows import project_zone

if TYPE_CHECKING:
    from collections.abc import Mapping

    from bookingsync.config import SyncConfig
    from bookingsync.domain.model import ProjectIntegration
    from bookingsync.domain.ports.fetching import EventSource
    from bookingsync.domain.reconciliation import SyncRunResult
    from bookingsync.domain.time_windows import Clock

UnitOfWorkFactory = Callable[[], SyncUnitOfWork]

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _ensure_started() -> None:
    if not is_started():
        startup()


def build_calendly_source(config: SyncConfig | None = None) -> CalendlyEventSource:
    sync_config = config or get_sync_config()
    return CalendlyEventSource(
        pagination=sync_config.pagination,
        participant_concurrency=sync_config.participant_concurrency,
    )


def sync_calendly_events(
    request: SyncRequest,
    *,
    source: EventSource | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    config: SyncConfig | None = None,
    clock: Clock = _utcnow,
) -> SyncRunResult:
    """Reconcile Calendly bookings for the requested projects using the configured adapters."""

    sync_config = config or get_sync_config()
    if unit_of_work_factory is None:
        _ensure_started()
    settings = SyncSettings(
        statuses=sync_config.statuses,
        windows=sync_config.windows,
        run_deadline_seconds=sync_config.run_deadline_seconds,
    )
    return sync_projects(
        request,
        source=source or build_calendly_source(sync_config),
        unit_of_work_factory=unit_of_work_factory or SqlAlchemySyncUnitOfWork,
        settings=settings,
        clock=clock,
    )


def refresh_calendly_statuses(
    project_id: str,
    *,
    source: EventSource | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    config: SyncConfig | None = None,
    clock: Clock = _utcnow,
) -> StatusRefreshResult:
    sync_config = config or get_sync_config()
    if unit_of_work_factory is None:
        _ensure_started()
    result = refresh_statuses(
        project_id,
        source=source or build_calendly_source(sync_config),
        unit_of_work_factory=unit_of_work_factory or SqlAlchemySyncUnitOfWork,
        lookback=timedelta(days=sync_config.status_refresh_lookback_days),
        clock=clock,
    )
    log.info(
        "Finished status refresh: project=%s checked=%s updated=%s errors=%s",
        project_id,
        result.checked,
        result.updated,
        len(result.failures),
    )
    return result


def detect_calendly_gaps(
    project_id: str | None = None,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    clock: Clock = _utcnow,
) -> list[ProjectGapReport]:
    if unit_of_work_factory is None:
        _ensure_started()
    reports = detect_gaps(
        unit_of_work_factory=unit_of_work_factory or SqlAlchemySyncUnitOfWork,
        project_id=project_id,
        clock=clock,
    )
    log.info(
        "Finished gap detection: projects=%s gaps=%s",
        len(reports),
        sum(len(report.gaps) for report in reports),
    )
    return reports


def connect_calendly_project(
    project_id: str,
    *,
    access_token: str,
    timezone: str = "UTC",
    expires_at: datetime | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> ProjectIntegration:
    """Store (or replace) a project's Calendly token so sync runs pick it up."""

    project_zone(timezone)
    if unit_of_work_factory is None:
        _ensure_started()
    effective_uow = unit_of_work_factory or SqlAlchemySyncUnitOfWork
    with effective_uow() as uow:
        integration = uow.repositories.integrations.connect(
            project_id,
            access_token=access_token,
            timezone=timezone,
            expires_at=expires_at,
        )
        uow.commit()
    log.info("Connected project=%s timezone=%s", project_id, timezone)
    return integration


def apply_calendly_webhook(
    body: Mapping[str, object],
    *,
    project_id: str | None = None,
    source: EventSource | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    config: SyncConfig | None = None,
    clock: Clock = _utcnow,
) -> SyncRunResult | None:
    """Apply a Calendly invitee notification. Other notification kinds return ``None``.

    Raises ``ValueError`` for a body that is not an invitee notification payload.
    """

    notice = read_webhook(body)
    if notice is None:
        log.info("Ignoring Calendly notification: %s", body.get("event"))
        return None
    if unit_of_work_factory is None:
        _ensure_started()
    return apply_booking_notice(
        notice,
        source=source or build_calendly_source(config),
        unit_of_work_factory=unit_of_work_factory or SqlAlchemySyncUnitOfWork,
        project_id=project_id,
        clock=clock,
    )
