"""Low-level HTTP client for the Calendly API.

Every request is authenticated with the project's bearer token and every failure is
translated into the domain's source error taxonomy before it leaves this module.
"""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel, ValidationError

from bookingsync.adapters.http_resilience import ResilientClient
from bookingsync.adapters.pagination import Page
from bookingsync.domain.errors import (
    AuthenticationError,
    RateLimitedError,
    SourceResponseError,
    TransientSourceError,
)

from .schema import (
    ErrorResponse,
    EventTypePayload,
    EventTypesResponse,
    InviteePayload,
    InviteesResponse,
    ScheduledEventPayload,
    ScheduledEventResponse,
    ScheduledEventsResponse,
    UserPayload,
    UserResponse,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from bookingsync.config.calendly import CalendlyConfig
    from bookingsync.config.http_resilience import ResilienceConfig

log = getLogger(__name__)

type QueryParams = dict[str, str | int]


def format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_retry_after(value: str | None) -> float | None:
    """Seconds to wait from a ``Retry-After`` header (delta-seconds or HTTP date)."""

    if value is None or not value.strip():
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        moment = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return max(0.0, (moment - datetime.now(UTC)).total_seconds())


def event_url(external_id: str) -> str:
    """External IDs are event URIs; bare UUIDs are resolved against the API root."""

    if external_id.startswith(("http://", "https://")):
        return external_id
    return f"/scheduled_events/{external_id}"


def scope_params(*, user_uri: str | None, organization_uri: str | None) -> QueryParams:
    if user_uri:
        return {"user": user_uri}
    if organization_uri:
        return {"organization": organization_uri}
    msg = "Calendly requests need a user or organization scope"
    raise SourceResponseError(msg)


class CalendlyClient:
    """Page-level access to the endpoints the event source needs."""

    def __init__(
        self,
        *,
        config: CalendlyConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        self._resilience = config.resilience
        self._client_factory = client_factory or ResilientClient

    def session(self) -> ResilientClient:
        return self._client_factory(self._resilience)

    async def current_user(self, http: ResilientClient, *, access_token: str) -> UserPayload:
        payload = await self._get(http, "/users/me", access_token=access_token)
        return _validate(UserResponse, payload).resource

    async def event_types_page(
        self,
        http: ResilientClient,
        token: str | None,
        *,
        access_token: str,
        scope: QueryParams,
        count: int,
    ) -> Page[EventTypePayload]:
        params: QueryParams = {**scope, "count": count}
        if token:
            params["page_token"] = token
        payload = await self._get(http, "/event_types", access_token=access_token, params=params)
        response = _validate(EventTypesResponse, payload)
        return Page(items=response.collection, next_token=response.pagination.next_page_token)

    async def scheduled_events_page(
        self,
        http: ResilientClient,
        token: str | None,
        *,
        access_token: str,
        scope: QueryParams,
        min_start: datetime,
        max_start: datetime,
        status: str,
        count: int,
    ) -> Page[ScheduledEventPayload]:
        params: QueryParams = {
            **scope,
            "min_start_time": format_timestamp(min_start),
            "max_start_time": format_timestamp(max_start),
            "status": status,
            "count": count,
            "sort": "start_time:asc",
        }
        if token:
            params["page_token"] = token
        payload = await self._get(
            http, "/scheduled_events", access_token=access_token, params=params
        )
        response = _validate(ScheduledEventsResponse, payload)
        return Page(items=response.collection, next_token=response.pagination.next_page_token)

    async def invitees_page(
        self,
        http: ResilientClient,
        token: str | None,
        *,
        access_token: str,
        external_id: str,
        count: int,
    ) -> Page[InviteePayload]:
        params: QueryParams = {"count": count}
        if token:
            params["page_token"] = token
        payload = await self._get(
            http, f"{event_url(external_id)}/invitees", access_token=access_token, params=params
        )
        response = _validate(InviteesResponse, payload)
        return Page(items=response.collection, next_token=response.pagination.next_page_token)

    async def scheduled_event(
        self,
        http: ResilientClient,
        *,
        access_token: str,
        external_id: str,
    ) -> ScheduledEventPayload | None:
        payload = await self._get(
            http, event_url(external_id), access_token=access_token, allow_missing=True
        )
        if payload is None:
            return None
        return _validate(ScheduledEventResponse, payload).resource

    async def _get(
        self,
        http: ResilientClient,
        url: str,
        *,
        access_token: str,
        params: QueryParams | None = None,
        allow_missing: bool = False,
    ) -> object:
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            response = await http.get(url, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise TransientSourceError(f"Calendly request timed out: {url}") from exc
        except httpx.TransportError as exc:
            raise TransientSourceError(f"Calendly request failed: {exc}") from exc

        status_code = response.status_code
        if status_code == 404 and allow_missing:
            return None
        if status_code == 401:
            raise AuthenticationError("Calendly rejected the access token")
        if status_code == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            raise RateLimitedError(
                f"Calendly rate limit hit for {url}", retry_after=retry_after
            )
        if status_code >= 500:
            raise TransientSourceError(
                f"Calendly server error {status_code} for {url}", status_code=status_code
            )
        if status_code >= 400:
            detail = _error_detail(response)
            log.error("Calendly API error %s for %s: %s", status_code, url, detail)
            raise SourceResponseError(
                f"Calendly API error {status_code} for {url}: {detail}", status_code=status_code
            )

        try:
            return response.json()
        except ValueError as exc:
            raise SourceResponseError(f"Calendly returned invalid JSON for {url}") from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = ErrorResponse.model_validate(response.json())
    except ValueError:
        return response.text[:200]
    return payload.message or payload.title or response.reason_phrase


def _validate[M: BaseModel](model: type[M], payload: object) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        msg = f"Unexpected Calendly payload for {model.__name__}: {exc.error_count()} errors"
        raise SourceResponseError(msg) from exc
