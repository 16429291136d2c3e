"""Translate Calendly payloads into domain entities."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from bookingsync.domain.model import BookingNotice, Category, ExternalEvent, Participant
from bookingsync.domain.reconciliation.normalize import normalize_status

from .schema import InviteePayload, WebhookEnvelope

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .schema import EventTypePayload, ScheduledEventPayload


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _optional_utc(value: datetime | None) -> datetime | None:
    return _as_utc(value) if value is not None else None


def parse_scheduled_event(payload: ScheduledEventPayload) -> ExternalEvent:
    return ExternalEvent(
        external_id=payload.uri,
        category_id=payload.event_type,
        scheduled_at=_as_utc(payload.start_time),
        status=normalize_status(payload.status),
        raw_status=payload.status,
        source_created_at=_optional_utc(payload.created_at),
        source_updated_at=_optional_utc(payload.updated_at),
        cancelled_at=_optional_utc(payload.cancellation.created_at)
        if payload.cancellation is not None
        else None,
    )


def parse_event_type(payload: EventTypePayload) -> Category:
    return Category(category_id=payload.uri, name=payload.name, active=payload.active)


def parse_participant(invitees: list[InviteePayload]) -> Participant | None:
    """The first invitee with any contact detail stands for the booking."""

    for invitee in invitees:
        if invitee.name or invitee.email:
            return Participant(name=invitee.name, email=invitee.email)
    return None


# Notification kinds that change a booking, mapped to whether they cancel it.
WEBHOOK_EVENTS = {"invitee.created": False, "invitee.canceled": True}


def parse_webhook(envelope: WebhookEnvelope) -> BookingNotice | None:
    """Translate an invitee notification; other notification kinds yield ``None``.

    Raises ``ValueError`` when the notification does not name a scheduled event.
    """

    cancelled = WEBHOOK_EVENTS.get(envelope.event)
    if cancelled is None:
        return None
    payload = envelope.payload
    scheduled = payload.scheduled_event
    external_id = scheduled.uri if scheduled is not None else payload.event
    if not external_id:
        raise ValueError(f"{envelope.event} notification does not name a scheduled event")

    invitee = payload.invitee or InviteePayload(name=payload.name, email=payload.email)
    return BookingNotice(
        external_id=external_id,
        cancelled=cancelled,
        category_id=scheduled.event_type if scheduled is not None else None,
        participant=parse_participant([invitee]),
    )


def read_webhook(body: Mapping[str, object]) -> BookingNotice | None:
    """Validate a raw notification body and translate it."""

    return parse_webhook(WebhookEnvelope.model_validate(body))
