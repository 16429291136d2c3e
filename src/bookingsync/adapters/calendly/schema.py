"""Pydantic models describing the Calendly API payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class CalendlyBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PaginationPayload(CalendlyBaseModel):
    count: int | None = None
    next_page_token: str | None = None

    _normalize_token = field_validator("next_page_token", mode="before")(_blank_to_none)


class UserPayload(CalendlyBaseModel):
    uri: str
    name: str | None = None
    timezone: str | None = None
    current_organization: str | None = None


class UserResponse(CalendlyBaseModel):
    resource: UserPayload


class EventTypePayload(CalendlyBaseModel):
    uri: str
    name: str
    active: bool = True


class EventTypesResponse(CalendlyBaseModel):
    collection: list[EventTypePayload] = Field(default_factory=list[EventTypePayload])
    pagination: PaginationPayload = Field(default_factory=PaginationPayload)


class CancellationPayload(CalendlyBaseModel):
    canceled_by: str | None = None
    reason: str | None = None
    created_at: datetime | None = None


class ScheduledEventPayload(CalendlyBaseModel):
    uri: str
    name: str | None = None
    status: str
    start_time: datetime
    end_time: datetime | None = None
    event_type: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    cancellation: CancellationPayload | None = None


class ScheduledEventsResponse(CalendlyBaseModel):
    collection: list[ScheduledEventPayload] = Field(
        default_factory=list[ScheduledEventPayload]
    )
    pagination: PaginationPayload = Field(default_factory=PaginationPayload)


class ScheduledEventResponse(CalendlyBaseModel):
    resource: ScheduledEventPayload


class InviteePayload(CalendlyBaseModel):
    name: str | None = None
    email: str | None = None
    status: str | None = None

    _normalize_name = field_validator("name", "email", mode="before")(_blank_to_none)


class InviteesResponse(CalendlyBaseModel):
    collection: list[InviteePayload] = Field(default_factory=list[InviteePayload])
    pagination: PaginationPayload = Field(default_factory=PaginationPayload)


class ErrorResponse(CalendlyBaseModel):
    title: str | None = None
    message: str | None = None


class WebhookEventRef(CalendlyBaseModel):
    uri: str
    event_type: str | None = None


class WebhookInviteePayload(CalendlyBaseModel):
    """The ``payload`` of an invitee notification.

    Current payloads are the invitee resource itself (``name``, ``email`` and the
    event URI in ``event``); older ones nest the invitee under ``invitee``.
    """

    name: str | None = None
    email: str | None = None
    event: str | None = None
    scheduled_event: WebhookEventRef | None = None
    invitee: InviteePayload | None = None

    _normalize_name = field_validator("name", "email", "event", mode="before")(_blank_to_none)


class WebhookEnvelope(CalendlyBaseModel):
    event: str
    created_at: datetime | None = None
    payload: WebhookInviteePayload
