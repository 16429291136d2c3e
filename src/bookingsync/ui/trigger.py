"""Request body accepted by the sync trigger."""

from __future__ import annotations

from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bookingsync.app import apply_calendly_webhook, sync_calendly_events
from bookingsync.domain.data_integration import SyncRequest
from bookingsync.domain.model import TriggerReason
from bookingsync.domain.reconciliation import SyncRunResult
from bookingsync.domain.time_windows import parse_window_bound, project_zone

if TYPE_CHECKING:
    from collections.abc import Mapping

    from bookingsync.app import UnitOfWorkFactory
    from bookingsync.config import SyncConfig
    from bookingsync.domain.ports.fetching import EventSource
    from bookingsync.domain.time_windows import Clock

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class SyncTriggerPayload(BaseModel):
    """``{"projectId"?, "startDate"?, "endDate"?, "triggerReason"?}``.

    Every field is optional: no project means every connected project, and no dates
    means the trigger reason's default window.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    project_id: str | None = Field(default=None, alias="projectId")
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    trigger_reason: str | None = Field(default=None, alias="triggerReason")

    _normalize_blank = field_validator(
        "project_id", "start_date", "end_date", "trigger_reason", mode="before"
    )(_blank_to_none)

    @field_validator("start_date", "end_date")
    @classmethod
    def _check_bound(cls, value: str | None) -> str | None:
        # Syntax only; each project re-reads the bound in its own timezone.
        if value is not None:
            parse_window_bound(value, project_zone("UTC"))
        return value

    @property
    def reason(self) -> TriggerReason:
        return TriggerReason.parse(self.trigger_reason)

    def to_request(self) -> SyncRequest:
        return SyncRequest(
            project_id=self.project_id,
            reason=self.reason,
            start=self.start_date,
            end=self.end_date,
        )


def handle_sync_trigger(
    body: Mapping[str, object] | None,
    *,
    source: EventSource | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    config: SyncConfig | None = None,
    clock: Clock = _utcnow,
) -> dict[str, object]:
    """Run a sync for a trigger body and always answer with a response body.

    Anything that escapes the per-project isolation (bad dates, an unreachable
    database, an invalid body) becomes ``{"success": false, "error": ...}``.
    """

    try:
        payload = SyncTriggerPayload.model_validate(body or {})
        result = sync_calendly_events(
            payload.to_request(),
            source=source,
            unit_of_work_factory=unit_of_work_factory,
            config=config,
            clock=clock,
        )
    except Exception as exc:
        log.exception("Sync trigger failed")
        result = SyncRunResult(finished_at=clock(), error=str(exc))
    return result.to_response()


def handle_webhook(
    body: Mapping[str, object] | None,
    *,
    project_id: str | None = None,
    source: EventSource | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    config: SyncConfig | None = None,
    clock: Clock = _utcnow,
) -> dict[str, object]:
    """Apply a Calendly notification body and answer like the sync trigger.

    Notification kinds that do not change a booking are acknowledged with
    ``{"success": true, "ignored": <kind>}``.
    """

    try:
        result = apply_calendly_webhook(
            body or {},
            project_id=project_id,
            source=source,
            unit_of_work_factory=unit_of_work_factory,
            config=config,
            clock=clock,
        )
    except Exception as exc:
        log.exception("Webhook handling failed")
        result = SyncRunResult(finished_at=clock(), error=str(exc))
    if result is None:
        return {
            "success": True,
            "ignored": (body or {}).get("event"),
            "timestamp": clock().isoformat(),
        }
    return result.to_response()
