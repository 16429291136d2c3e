"""Ports for fetching data from the external event source."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bookingsync.domain.deadline import Deadline
    from bookingsync.domain.errors import SourceError
    from bookingsync.domain.model import (
        Category,
        ExternalEvent,
        IntegrationCredentials,
        Participant,
    )
    from bookingsync.domain.time_windows import SyncWindow


@dataclass(frozen=True, slots=True)
class SourceUser:
    user_uri: str
    organization_uri: str | None = None
    timezone: str | None = None


@dataclass(slots=True)
class StatusFetchResult:
    """Everything one pagination walk produced for a single status filter.

    ``error`` is set when the walk stopped early; ``events`` still holds every page
    received before that.
    """

    status: str
    events: list[ExternalEvent] = field(default_factory=list["ExternalEvent"])
    pages: int = 0
    api_calls: int = 0
    error: SourceError | None = None
    truncated: bool = False


@runtime_checkable
class EventSource(Protocol):
    """Read-only view of the scheduling provider."""

    def current_user(self, credentials: IntegrationCredentials) -> SourceUser: ...

    def list_categories(self, credentials: IntegrationCredentials) -> list[Category]: ...

    def fetch_events(
        self,
        credentials: IntegrationCredentials,
        *,
        window: SyncWindow,
        status: str,
        deadline: Deadline | None = None,
    ) -> StatusFetchResult: ...

    def fetch_participants(
        self,
        credentials: IntegrationCredentials,
        external_ids: Iterable[str],
    ) -> dict[str, Participant]: ...

    def fetch_event(
        self,
        credentials: IntegrationCredentials,
        external_id: str,
    ) -> ExternalEvent | None: ...


__all__ = ["EventSource", "SourceUser", "StatusFetchResult"]
