"""Application services for reconciling booked calls across projects."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from bookingsync.domain.deadline import Deadline
from bookingsync.domain.errors import AuthenticationError, DeadlineExceededError, SourceError
from bookingsync.domain.model import TriggerReason
from bookingsync.domain.reconciliation import (
    ProjectSyncResult,
    Reconciler,
    SyncFailure,
    SyncRunResult,
)
from bookingsync.domain.time_windows import WindowPolicy, resolve_sync_window

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from bookingsync.domain.model import ProjectIntegration
    from bookingsync.domain.ports.fetching import EventSource
    from bookingsync.domain.ports.unit_of_work import SyncUnitOfWork
    from bookingsync.domain.time_windows import Clock

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class SyncRequest:
    """A parsed sync trigger. Absent dates select the reason's default window."""

    project_id: str | None = None
    reason: TriggerReason = TriggerReason.INCREMENTAL
    start: str | datetime | None = None
    end: str | datetime | None = None


@dataclass(frozen=True, slots=True)
class SyncSettings:
    statuses: Sequence[str] = ("active", "canceled")
    windows: WindowPolicy = field(default_factory=WindowPolicy)
    run_deadline_seconds: float | None = None


def sync_projects(
    request: SyncRequest,
    *,
    source: EventSource,
    unit_of_work_factory: Callable[[], SyncUnitOfWork],
    settings: SyncSettings | None = None,
    clock: Clock = _utcnow,
) -> SyncRunResult:
    """Reconcile every connected project (or the requested one).

    Projects are independent: an unusable window (bad timezone or dates), an
    authentication failure or a deadline on one project is recorded and the next
    project still runs. Anything unexpected propagates to the caller, which reports
    a failed run.
    """

    active_settings = settings or SyncSettings()
    deadline = Deadline.after(active_settings.run_deadline_seconds, clock=clock)
    reconciler = Reconciler(
        source=source,
        unit_of_work_factory=unit_of_work_factory,
        statuses=active_settings.statuses,
        clock=clock,
    )

    with unit_of_work_factory() as uow:
        integrations = list(uow.repositories.integrations.list_connected(request.project_id))

    log.info(
        "Starting sync: reason=%s project=%s connected=%s",
        request.reason,
        request.project_id or "*",
        len(integrations),
    )

    projects: list[ProjectSyncResult] = []
    failures: list[SyncFailure] = []
    for integration in integrations:
        project_result = _sync_one(
            integration, request, reconciler, active_settings, deadline, clock, failures
        )
        if project_result is not None:
            projects.append(project_result)

    result = SyncRunResult(finished_at=clock(), projects=projects, failures=failures)
    log.info(
        "Finished sync: projects=%s events=%s failures=%s",
        len(projects),
        result.stats.written,
        len(result.all_failures),
    )
    return result


def _sync_one(
    integration: ProjectIntegration,
    request: SyncRequest,
    reconciler: Reconciler,
    settings: SyncSettings,
    deadline: Deadline,
    clock: Clock,
    failures: list[SyncFailure],
) -> ProjectSyncResult | None:
    project_id = integration.project_id
    try:
        window = resolve_sync_window(
            request.reason,
            timezone=integration.timezone,
            start=request.start,
            end=request.end,
            last_sync=integration.last_sync,
            clock=clock,
            policy=settings.windows,
        )
    except ValueError as exc:
        log.warning("project=%s stage=window skipped: %s", project_id, exc)
        failures.append(SyncFailure(project_id=project_id, stage="window", message=str(exc)))
        return None

    try:
        deadline.check()
        return reconciler.reconcile_project(project_id, window, deadline=deadline)
    except AuthenticationError as exc:
        log.warning("project=%s stage=auth skipped: %s", project_id, exc)
        failures.append(SyncFailure(project_id=project_id, stage="auth", message=str(exc)))
    except DeadlineExceededError as exc:
        log.warning("project=%s stage=deadline skipped: %s", project_id, exc)
        failures.append(SyncFailure(project_id=project_id, stage="deadline", message=str(exc)))
    except SourceError as exc:
        log.warning("project=%s stage=credentials skipped: %s", project_id, exc)
        failures.append(
            SyncFailure(project_id=project_id, stage="credentials", message=str(exc))
        )
    return None
