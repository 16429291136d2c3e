"""Normalization of source records before they are compared with local state."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from bookingsync.domain.model import EventStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bookingsync.domain.model import ExternalEvent

log = getLogger(__name__)

_STATUS_ALIASES: dict[str, EventStatus] = {
    "active": EventStatus.ACTIVE,
    "scheduled": EventStatus.ACTIVE,
    "confirmed": EventStatus.ACTIVE,
    "canceled": EventStatus.CANCELLED,
    "cancelled": EventStatus.CANCELLED,
    "completed": EventStatus.COMPLETED,
    "complete": EventStatus.COMPLETED,
    "no_show": EventStatus.NO_SHOW,
    "no-show": EventStatus.NO_SHOW,
    "noshow": EventStatus.NO_SHOW,
}


def normalize_status(raw: str | None) -> EventStatus:
    """Map a source status spelling onto the canonical enum.

    Missing statuses are treated as active; unknown spellings are logged and also
    treated as active so that a new source value never drops a booking.
    """

    if raw is None or not raw.strip():
        return EventStatus.ACTIVE
    key = raw.strip().lower().replace(" ", "_")
    status = _STATUS_ALIASES.get(key)
    if status is None:
        log.warning("Unknown source status %r; treating as active", raw)
        return EventStatus.ACTIVE
    return status


def dedupe_events(events: Iterable[ExternalEvent]) -> dict[str, ExternalEvent]:
    """Collapse events by external ID.

    Status-filtered queries may return the same event twice. The copy with the newer
    ``source_updated_at`` wins; on a tie or when timestamps are missing the copy seen
    last wins.
    """

    deduped: dict[str, ExternalEvent] = {}
    for event in events:
        current = deduped.get(event.external_id)
        if current is None or _is_not_older(event, current):
            deduped[event.external_id] = event
    return deduped


def _is_not_older(candidate: ExternalEvent, current: ExternalEvent) -> bool:
    if candidate.source_updated_at is None or current.source_updated_at is None:
        return True
    return candidate.source_updated_at >= current.source_updated_at
