"""Decide whether an incoming source event changes the local record.

The decision is deterministic given the stored record and the incoming event:
- no stored record: insert
- the source reports an older modification time than the stored one: nothing to do
- both statuses terminal and equal: nothing to do
- status differs: update
- the source reports a newer modification time: update
- otherwise: nothing to do
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from bookingsync.domain.model import EventStatus, LocalEventRecord

if TYPE_CHECKING:
    from datetime import datetime

    from bookingsync.domain.model import ExternalEvent


class ChangeAction(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    SKIP = "skip"


def is_stale(existing: LocalEventRecord, source_updated_at: datetime | None) -> bool:
    """True when the source reports an older modification than the stored one.

    The store refuses such writes, so they must not be counted as updates.
    """

    return (
        source_updated_at is not None
        and existing.source_updated_at is not None
        and source_updated_at < existing.source_updated_at
    )


def decide_change(existing: LocalEventRecord | None, incoming: ExternalEvent) -> ChangeAction:
    if existing is None:
        return ChangeAction.INSERT
    if is_stale(existing, incoming.source_updated_at):
        return ChangeAction.SKIP
    if existing.status == incoming.status and existing.status.is_terminal:
        return ChangeAction.SKIP
    if existing.status != incoming.status:
        return ChangeAction.UPDATE
    if incoming.source_updated_at is not None and (
        existing.source_updated_at is None or incoming.source_updated_at > existing.source_updated_at
    ):
        return ChangeAction.UPDATE
    return ChangeAction.SKIP


def new_record(
    project_id: str,
    event: ExternalEvent,
    *,
    category_name: str,
    now: datetime,
) -> LocalEventRecord:
    participant = event.participant
    return LocalEventRecord(
        project_id=project_id,
        external_id=event.external_id,
        category_id=event.category_id,
        category_name=category_name,
        scheduled_at=event.scheduled_at,
        status=event.status,
        created_at=event.source_created_at or now,
        updated_at=now,
        source_updated_at=event.source_updated_at,
        cancelled_at=(event.cancelled_at or event.source_updated_at or now)
        if event.status is EventStatus.CANCELLED
        else None,
        participant_name=participant.name if participant else None,
        participant_email=participant.email if participant else None,
    )


def updated_record(
    existing: LocalEventRecord,
    *,
    status: EventStatus,
    now: datetime,
    scheduled_at: datetime | None = None,
    source_updated_at: datetime | None = None,
    cancelled_at: datetime | None = None,
) -> LocalEventRecord:
    """Copy of ``existing`` carrying the new mutable state.

    Write-once columns are copied through unchanged; the repository ignores them on
    conflict anyway.
    """

    first_cancelled_at = existing.cancelled_at
    if status is EventStatus.CANCELLED and first_cancelled_at is None:
        first_cancelled_at = cancelled_at or now
    return LocalEventRecord(
        project_id=existing.project_id,
        external_id=existing.external_id,
        category_id=existing.category_id,
        category_name=existing.category_name,
        scheduled_at=scheduled_at or existing.scheduled_at,
        status=status,
        created_at=existing.created_at,
        updated_at=now,
        source_updated_at=source_updated_at or existing.source_updated_at,
        cancelled_at=first_cancelled_at,
        participant_name=existing.participant_name,
        participant_email=existing.participant_email,
    )
