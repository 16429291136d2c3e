"""Domain model for booked-call reconciliation."""

from __future__ import annotations

from .enums import EventStatus, Platform, TriggerReason
from .events import BookingNotice, Category, ExternalEvent, LocalEventRecord, Participant
from .integration import IntegrationCredentials, ProjectIntegration, TypeMapping

__all__ = [
    "BookingNotice",
    "Category",
    "EventStatus",
    "ExternalEvent",
    "IntegrationCredentials",
    "LocalEventRecord",
    "Participant",
    "Platform",
    "ProjectIntegration",
    "TriggerReason",
    "TypeMapping",
]
