"""Public interface for the Calendly adapter."""

from __future__ import annotations

from .client import CalendlyClient
from .fetcher import CalendlyEventSource
from .translator import (
    parse_event_type,
    parse_participant,
    parse_scheduled_event,
    parse_webhook,
    read_webhook,
)

__all__ = [
    "CalendlyClient",
    "CalendlyEventSource",
    "parse_event_type",
    "parse_participant",
    "parse_scheduled_event",
    "parse_webhook",
    "read_webhook",
]
