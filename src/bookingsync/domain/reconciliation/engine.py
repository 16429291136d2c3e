"""Reconcile one project's source events into the local event store.

Stages, in order:
1. refresh the type-mapping registry from the source's category listing
2. walk the source once per configured status filter
3. collapse the walks by external ID
4. drop events whose category is not actively mapped
5. decide insert/update/skip per event and upsert
6. advance the project's last-sync marker, whether or not anything changed
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from bookingsync.domain.credentials import resolve_credentials
from bookingsync.domain.deadline import NO_DEADLINE
from bookingsync.domain.errors import PersistenceError, SourceError
from bookingsync.domain.model import EventStatus, ExternalEvent
from bookingsync.domain.type_registry import TypeMappingRegistry

from .contracts import ProjectSyncResult, SyncFailure
from .normalize import dedupe_events
from .policy import ChangeAction, decide_change, new_record, updated_record

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from bookingsync.domain.deadline import Deadline
    from bookingsync.domain.model import (
        BookingNotice,
        IntegrationCredentials,
        LocalEventRecord,
        TypeMapping,
    )
    from bookingsync.domain.ports.fetching import EventSource
    from bookingsync.domain.ports.unit_of_work import SyncUnitOfWork
    from bookingsync.domain.time_windows import Clock, SyncWindow


log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class Reconciler:
    """Idempotent merge of source events into ``LocalEventRecord`` rows."""

    source: EventSource
    unit_of_work_factory: Callable[[], SyncUnitOfWork]
    statuses: Sequence[str] = ("active", "canceled")
    clock: Clock = field(default=_utcnow)

    def reconcile_project(
        self,
        project_id: str,
        window: SyncWindow,
        *,
        statuses: Sequence[str] | None = None,
        deadline: Deadline = NO_DEADLINE,
    ) -> ProjectSyncResult:
        """Reconcile ``project_id`` over ``window``.

        Raises ``AuthenticationError`` when the project has no usable token; every
        other source failure is recorded on the result and the run continues.
        """

        result = ProjectSyncResult(project_id=project_id, window=window)
        active_statuses = tuple(statuses or self.statuses)
        now = self.clock()

        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            credentials = resolve_credentials(
                repositories.integrations, self.source, project_id, now=now
            )
            uow.commit()

            mappings = self._refresh_registry(uow, credentials, result, now=now)
            tracked = {mapping.category_id: mapping for mapping in mappings}
            if not tracked:
                log.warning("project=%s stage=type_mapping no active mappings", project_id)

            fetched = self._fetch_all(credentials, window, active_statuses, deadline, result)
            events = dedupe_events(fetched)
            result.stats.fetched = len(events)

            relevant = [event for event in events.values() if event.category_id in tracked]
            result.stats.filtered = len(events) - len(relevant)

            existing = repositories.events.get_many(
                project_id, [event.external_id for event in relevant]
            )
            relevant = self._attach_participants(credentials, relevant, existing, result)

            for event in relevant:
                self._apply(uow, event, existing.get(event.external_id), tracked, result, now=now)

            repositories.integrations.mark_synced(project_id, at=now)
            uow.commit()

        log.info(
            "project=%s stage=done window=[%s, %s) pages=%s fetched=%s filtered=%s "
            "inserted=%s updated=%s skipped=%s failed=%s",
            project_id,
            window.start.isoformat(),
            window.end.isoformat(),
            result.stats.pages_fetched,
            result.stats.fetched,
            result.stats.filtered,
            result.stats.inserted,
            result.stats.updated,
            result.stats.skipped,
            result.stats.failed,
        )
        return result

    def reconcile_event(self, project_id: str, notice: BookingNotice) -> ProjectSyncResult:
        """Apply one pushed booking change to ``project_id``.

        The event is read back from the source, so the stored status follows the
        source rather than the notice. When the source no longer knows the event, a
        cancellation notice cancels the stored record and anything else is skipped.
        Only actively mapped categories are written, and ``last_sync`` is left alone.

        Raises ``AuthenticationError`` without a usable token and ``SourceError`` when
        the event cannot be read.
        """

        result = ProjectSyncResult(project_id=project_id)
        now = self.clock()

        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            credentials = resolve_credentials(
                repositories.integrations, self.source, project_id, now=now
            )
            uow.commit()

            registry = TypeMappingRegistry(repositories.type_mappings)
            tracked = {mapping.category_id: mapping for mapping in registry.list_active(project_id)}
            existing = repositories.events.get(project_id, notice.external_id)

            current = self.source.fetch_event(credentials, notice.external_id)
            result.stats.api_calls += 1
            event = _notice_event(notice, current, existing)
            if event is None:
                log.info(
                    "project=%s stage=notice external_id=%s unknown to source, skipped",
                    project_id,
                    notice.external_id,
                )
                result.stats.skipped += 1
            elif event.category_id not in tracked:
                result.stats.fetched = 1
                result.stats.filtered = 1
            else:
                result.stats.fetched = 1
                if existing is None and event.participant is None:
                    event = event.with_participant(notice.participant)
                self._apply(uow, event, existing, tracked, result, now=now)
            uow.commit()

        log.info(
            "project=%s stage=notice external_id=%s cancelled=%s inserted=%s updated=%s "
            "skipped=%s filtered=%s failed=%s",
            project_id,
            notice.external_id,
            notice.cancelled,
            result.stats.inserted,
            result.stats.updated,
            result.stats.skipped,
            result.stats.filtered,
            result.stats.failed,
        )
        return result

    def _refresh_registry(
        self,
        uow: SyncUnitOfWork,
        credentials: IntegrationCredentials,
        result: ProjectSyncResult,
        *,
        now: datetime,
    ) -> set[TypeMapping]:
        registry = TypeMappingRegistry(uow.repositories.type_mappings)
        project_id = result.project_id
        try:
            categories = self.source.list_categories(credentials)
        except SourceError as exc:
            # Keep going with the mappings already on record.
            log.warning("project=%s stage=type_mapping discovery failed: %s", project_id, exc)
            result.failures.append(
                SyncFailure(project_id=project_id, stage="type_mapping", message=str(exc))
            )
        else:
            result.stats.api_calls += 1
            result.registry = registry.refresh(project_id, categories, now=now)
            uow.commit()
        return registry.list_active(project_id)

    def _fetch_all(
        self,
        credentials: IntegrationCredentials,
        window: SyncWindow,
        statuses: Sequence[str],
        deadline: Deadline,
        result: ProjectSyncResult,
    ) -> list[ExternalEvent]:
        collected: list[ExternalEvent] = []
        for status in statuses:
            fetch = self.source.fetch_events(
                credentials, window=window, status=status, deadline=deadline
            )
            result.stats.pages_fetched += fetch.pages
            result.stats.api_calls += fetch.api_calls
            collected.extend(fetch.events)
            log.info(
                "project=%s stage=fetch status=%s pages=%s events=%s truncated=%s",
                result.project_id,
                status,
                fetch.pages,
                len(fetch.events),
                fetch.truncated,
            )
            if fetch.truncated:
                result.failures.append(
                    SyncFailure(
                        project_id=result.project_id,
                        stage="fetch",
                        status=status,
                        message="walk stopped at the page ceiling or deadline; "
                        "results are partial",
                    )
                )
            if fetch.error is not None:
                result.failures.append(
                    SyncFailure(
                        project_id=result.project_id,
                        stage="fetch",
                        status=status,
                        message=str(fetch.error),
                    )
                )
        return collected

    def _attach_participants(
        self,
        credentials: IntegrationCredentials,
        events: list[ExternalEvent],
        existing: dict[str, LocalEventRecord],
        result: ProjectSyncResult,
    ) -> list[ExternalEvent]:
        missing = [e.external_id for e in events if e.external_id not in existing]
        if not missing:
            return events
        participants = self.source.fetch_participants(credentials, missing)
        result.stats.api_calls += len(missing)
        return [
            event.with_participant(participants[event.external_id])
            if event.external_id in participants
            else event
            for event in events
        ]

    def _apply(
        self,
        uow: SyncUnitOfWork,
        event: ExternalEvent,
        existing: LocalEventRecord | None,
        tracked: dict[str, TypeMapping],
        result: ProjectSyncResult,
        *,
        now: datetime,
    ) -> None:
        action = decide_change(existing, event)
        if action is ChangeAction.SKIP:
            result.stats.skipped += 1
            return

        if existing is None:
            record = new_record(
                result.project_id,
                event,
                category_name=tracked[event.category_id].name,
                now=now,
            )
        else:
            record = updated_record(
                existing,
                status=event.status,
                now=now,
                scheduled_at=event.scheduled_at,
                source_updated_at=event.source_updated_at,
                cancelled_at=event.cancelled_at,
            )

        try:
            with uow.savepoint():
                uow.repositories.events.upsert(record)
        except PersistenceError as exc:
            log.warning(
                "project=%s stage=persist external_id=%s failed: %s",
                result.project_id,
                event.external_id,
                exc,
            )
            result.stats.failed += 1
            result.failures.append(
                SyncFailure(
                    project_id=result.project_id,
                    stage="persist",
                    external_id=event.external_id,
                    message=str(exc),
                )
            )
            return

        if action is ChangeAction.INSERT:
            result.stats.inserted += 1
        else:
            result.stats.updated += 1


def _notice_event(
    notice: BookingNotice,
    current: ExternalEvent | None,
    existing: LocalEventRecord | None,
) -> ExternalEvent | None:
    if current is not None:
        return current
    if not notice.cancelled or existing is None:
        return None
    return ExternalEvent(
        external_id=existing.external_id,
        category_id=existing.category_id,
        scheduled_at=existing.scheduled_at,
        status=EventStatus.CANCELLED,
    )
