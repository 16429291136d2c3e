"""Scheduled events as seen by the source and as stored locally."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from bookingsync.domain.model.enums import EventStatus

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True, slots=True)
class Participant:
    name: str | None = None
    email: str | None = None


@dataclass(frozen=True, slots=True)
class Category:
    """An event type offered by the source (a bookable call type)."""

    category_id: str
    name: str
    active: bool = True


@dataclass(frozen=True, slots=True, kw_only=True)
class ExternalEvent:
    """A scheduled event as returned by the source. Never persisted directly."""

    external_id: str
    category_id: str
    scheduled_at: datetime
    status: EventStatus
    raw_status: str | None = None
    source_created_at: datetime | None = None
    source_updated_at: datetime | None = None
    cancelled_at: datetime | None = None
    participant: Participant | None = None

    def with_participant(self, participant: Participant | None) -> ExternalEvent:
        return replace(self, participant=participant)


@dataclass(eq=False, kw_only=True)
class LocalEventRecord:
    """The locally owned copy of an external event.

    One record per ``(project_id, external_id)``. ``created_at``, ``category_name``
    and the participant columns are written once, on insert.
    """

    project_id: str
    external_id: str
    category_id: str
    category_name: str
    scheduled_at: datetime
    status: EventStatus
    created_at: datetime
    updated_at: datetime
    source_updated_at: datetime | None = None
    cancelled_at: datetime | None = None
    participant_name: str | None = None
    participant_email: str | None = None
    id: int | None = field(default=None, repr=False)


@dataclass(frozen=True, slots=True, kw_only=True)
class BookingNotice:
    """A pushed notification that one scheduled event was booked or cancelled.

    ``category_id`` is known when the notification carries it and narrows the
    projects the notice is applied to.
    """

    external_id: str
    cancelled: bool = False
    category_id: str | None = None
    participant: Participant | None = None
