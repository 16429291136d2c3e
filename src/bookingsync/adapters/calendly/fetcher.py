"""Calendly implementation of the ``EventSource`` port."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from functools import partial
from logging import getLogger
from typing import TYPE_CHECKING

from bookingsync.adapters.pagination import WalkProgress, collect_pages, iter_pages
from bookingsync.config.calendly import get_calendly_config
from bookingsync.config.sync import PaginationPolicy
from bookingsync.domain.deadline import NO_DEADLINE
from bookingsync.domain.errors import AuthenticationError, SourceError
from bookingsync.domain.ports.fetching import EventSource, SourceUser, StatusFetchResult

from .client import CalendlyClient, scope_params
from .translator import parse_event_type, parse_participant, parse_scheduled_event

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bookingsync.adapters.http_resilience import ResilientClient
    from bookingsync.adapters.pagination import Sleep
    from bookingsync.domain.deadline import Deadline
    from bookingsync.domain.model import (
        Category,
        ExternalEvent,
        IntegrationCredentials,
        Participant,
    )
    from bookingsync.domain.time_windows import SyncWindow

log = getLogger(__name__)

INVITEE_PAGE_SIZE = 10


def _default_client() -> CalendlyClient:
    return CalendlyClient(config=get_calendly_config())


def _access_token(credentials: IntegrationCredentials) -> str:
    if not credentials.access_token:
        raise AuthenticationError("Access token missing", project_id=credentials.project_id)
    return credentials.access_token


@dataclass(slots=True)
class CalendlyEventSource:
    """Reads event types, scheduled events and invitees from Calendly.

    Public methods are synchronous; each one opens its own HTTP session, so the
    rate limiter is scoped to a single project's token.
    """

    client: CalendlyClient = field(default_factory=_default_client)
    pagination: PaginationPolicy = field(default_factory=PaginationPolicy)
    participant_concurrency: int = 4
    sleep: Sleep = asyncio.sleep

    def current_user(self, credentials: IntegrationCredentials) -> SourceUser:
        return asyncio.run(self._current_user_async(credentials))

    def list_categories(self, credentials: IntegrationCredentials) -> list[Category]:
        return asyncio.run(self._list_categories_async(credentials))

    def fetch_events(
        self,
        credentials: IntegrationCredentials,
        *,
        window: SyncWindow,
        status: str,
        deadline: Deadline | None = None,
    ) -> StatusFetchResult:
        return asyncio.run(
            self._fetch_events_async(
                credentials, window=window, status=status, deadline=deadline or NO_DEADLINE
            )
        )

    def fetch_participants(
        self,
        credentials: IntegrationCredentials,
        external_ids: Iterable[str],
    ) -> dict[str, Participant]:
        ids = list(dict.fromkeys(external_ids))
        if not ids:
            return {}
        return asyncio.run(self._fetch_participants_async(credentials, ids))

    def fetch_event(
        self,
        credentials: IntegrationCredentials,
        external_id: str,
    ) -> ExternalEvent | None:
        return asyncio.run(self._fetch_event_async(credentials, external_id))

    async def _current_user_async(self, credentials: IntegrationCredentials) -> SourceUser:
        async with self.client.session() as http:
            user = await self.client.current_user(http, access_token=_access_token(credentials))
        return SourceUser(
            user_uri=user.uri,
            organization_uri=user.current_organization,
            timezone=user.timezone,
        )

    async def _list_categories_async(
        self, credentials: IntegrationCredentials
    ) -> list[Category]:
        scope = scope_params(
            user_uri=credentials.user_uri, organization_uri=credentials.organization_uri
        )
        async with self.client.session() as http:
            fetch_page = partial(
                self.client.event_types_page,
                http,
                access_token=_access_token(credentials),
                scope=scope,
                count=self.pagination.page_size,
            )
            payloads = await collect_pages(
                fetch_page,
                policy=self.pagination,
                sleep=self.sleep,
                label=f"project={credentials.project_id} stage=type_mapping",
            )
        return [parse_event_type(payload) for payload in payloads]

    async def _fetch_events_async(
        self,
        credentials: IntegrationCredentials,
        *,
        window: SyncWindow,
        status: str,
        deadline: Deadline,
    ) -> StatusFetchResult:
        result = StatusFetchResult(status=status)
        progress = WalkProgress()
        scope = scope_params(
            user_uri=credentials.user_uri, organization_uri=credentials.organization_uri
        )
        async with self.client.session() as http:
            fetch_page = partial(
                self.client.scheduled_events_page,
                http,
                access_token=_access_token(credentials),
                scope=scope,
                min_start=window.start,
                max_start=window.end,
                status=status,
                count=self.pagination.page_size,
            )
            try:
                async for page in iter_pages(
                    fetch_page,
                    policy=self.pagination,
                    sleep=self.sleep,
                    deadline=deadline,
                    progress=progress,
                    label=f"project={credentials.project_id} stage=fetch status={status}",
                ):
                    result.events.extend(parse_scheduled_event(item) for item in page.items)
            except SourceError as exc:
                result.error = exc

        result.pages = progress.pages
        result.api_calls = progress.api_calls
        result.truncated = progress.truncated
        return result

    async def _fetch_participants_async(
        self,
        credentials: IntegrationCredentials,
        external_ids: list[str],
    ) -> dict[str, Participant]:
        semaphore = asyncio.Semaphore(max(1, self.participant_concurrency))
        # One page of invitees is enough to name the booking.
        policy = replace(
            self.pagination, max_pages=1, page_size=INVITEE_PAGE_SIZE, min_page_delay=0.0
        )
        access_token = _access_token(credentials)

        async def lookup(http: ResilientClient, external_id: str) -> Participant | None:
            fetch_page = partial(
                self.client.invitees_page,
                http,
                access_token=access_token,
                external_id=external_id,
                count=policy.page_size,
            )
            async with semaphore:
                try:
                    invitees = await collect_pages(
                        fetch_page,
                        policy=policy,
                        sleep=self.sleep,
                        label=f"project={credentials.project_id} stage=participants",
                    )
                except SourceError as exc:
                    log.warning(
                        "project=%s stage=participants external_id=%s lookup failed: %s",
                        credentials.project_id,
                        external_id,
                        exc,
                    )
                    return None
            return parse_participant(invitees)

        async with self.client.session() as http:
            found = await asyncio.gather(*(lookup(http, external_id) for external_id in external_ids))

        return {
            external_id: participant
            for external_id, participant in zip(external_ids, found, strict=True)
            if participant is not None
        }

    async def _fetch_event_async(
        self,
        credentials: IntegrationCredentials,
        external_id: str,
    ) -> ExternalEvent | None:
        async with self.client.session() as http:
            payload = await self.client.scheduled_event(
                http, access_token=_access_token(credentials), external_id=external_id
            )
        if payload is None:
            return None
        return parse_scheduled_event(payload)


if TYPE_CHECKING:
    _source_check: EventSource = CalendlyEventSource()
