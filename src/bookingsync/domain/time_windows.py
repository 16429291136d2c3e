"""Utilities for constraining sync operations to specific time windows.

All day arithmetic happens in the project's local timezone and is converted to
UTC at the end: "the last 7 days" for a project in Sydney starts at Sydney
midnight, not at UTC midnight.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from bookingsync.domain.model.enums import TriggerReason


class Clock(Protocol):
    def __call__(self) -> datetime: ...


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _ensure_aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        raise ValueError("Time window values must include timezone information")
    return value.astimezone(UTC)


@dataclass(frozen=True)
class TimeWindow:
    """Describe the desired temporal bounds for a sync run."""

    start: datetime | None = None
    end: datetime | None = None
    lookback: timedelta | None = None

    def resolve(self, *, clock: Clock = _utcnow) -> tuple[datetime | None, datetime | None]:
        """Resolve the window into concrete UTC timestamps."""

        resolved_end = _ensure_aware(self.end)
        resolved_start = _ensure_aware(self.start)

        if self.lookback is not None:
            if self.lookback < timedelta(0):
                raise ValueError("Lookback duration must be non-negative")
            anchor = resolved_end or clock()
            if anchor.tzinfo is None:
                anchor = anchor.replace(tzinfo=UTC)
            anchor = anchor.astimezone(UTC)
            start_from_lookback = anchor - self.lookback
            if resolved_start is None:
                resolved_start = start_from_lookback
            else:
                resolved_start = max(resolved_start, start_from_lookback)
            if resolved_end is None:
                resolved_end = anchor

        if resolved_start and resolved_end and resolved_start > resolved_end:
            raise ValueError("Time window start must be before end")

        return resolved_start, resolved_end


@dataclass(frozen=True, slots=True)
class SyncWindow:
    """Concrete half-open UTC interval ``[start, end)``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("Time window values must include timezone information")
        if self.start >= self.end:
            raise ValueError("Time window start must be before end")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


def _default_lookback_days() -> dict[TriggerReason, int]:
    return {
        TriggerReason.INCREMENTAL: 2,
        TriggerReason.MANUAL: 7,
        TriggerReason.WEBHOOK: 7,
        TriggerReason.SCHEDULED: 7,
        TriggerReason.GAP_FILL: 30,
        TriggerReason.DEEP: 90,
    }


@dataclass(frozen=True, slots=True)
class WindowPolicy:
    """Default window sizes per trigger reason."""

    lookback_days: dict[TriggerReason, int] = field(default_factory=_default_lookback_days)
    incremental_overlap: timedelta = timedelta(hours=1)
    incremental_max_age: timedelta = timedelta(hours=48)
    fallback_days: int = 7

    def days_for(self, reason: TriggerReason) -> int:
        return self.lookback_days.get(reason, self.fallback_days)


def project_zone(name: str | None) -> ZoneInfo:
    """Return the IANA zone for a project, raising ``ValueError`` for unknown names."""

    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


def local_midnight(day: date, zone: ZoneInfo) -> datetime:
    """UTC instant of local midnight starting ``day`` in ``zone``."""

    return datetime.combine(day, time.min, tzinfo=zone).astimezone(UTC)


def parse_window_bound(value: str, zone: ZoneInfo, *, is_end: bool = False) -> datetime:
    """Parse an ISO-8601 bound supplied by a trigger.

    Naive timestamps are read in the project timezone. A bare date is the start of that
    local day, or for an end bound the start of the following day so that the whole
    day is included in the half-open window.
    """

    normalized = value.strip()
    if not normalized:
        raise ValueError("Empty timestamp")
    if "T" not in normalized and " " not in normalized and len(normalized) == 10:
        try:
            day = date.fromisoformat(normalized)
        except ValueError as exc:
            raise ValueError(f"Invalid ISO date: {value}") from exc
        return local_midnight(day + timedelta(days=1) if is_end else day, zone)
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return parsed.astimezone(UTC)


def resolve_sync_window(
    reason: TriggerReason,
    *,
    timezone: str | None = None,
    start: str | datetime | None = None,
    end: str | datetime | None = None,
    last_sync: datetime | None = None,
    clock: Clock = _utcnow,
    policy: WindowPolicy | None = None,
) -> SyncWindow:
    """Resolve the UTC window a project should be reconciled over."""

    active_policy = policy or WindowPolicy()
    zone = project_zone(timezone)
    now = clock().astimezone(UTC)

    resolved_end = _coerce_bound(end, zone, is_end=True) if end is not None else now
    if start is not None:
        return SyncWindow(start=_coerce_bound(start, zone), end=resolved_end)

    if reason is TriggerReason.INCREMENTAL and last_sync is not None:
        last = _ensure_aware(last_sync)
        if last is not None and resolved_end - last < active_policy.incremental_max_age:
            return SyncWindow(start=last - active_policy.incremental_overlap, end=resolved_end)

    days = active_policy.days_for(reason)
    local_today = resolved_end.astimezone(zone).date()
    window_start = local_midnight(local_today - timedelta(days=days), zone)
    return SyncWindow(start=window_start, end=resolved_end)


def _coerce_bound(value: str | datetime, zone: ZoneInfo, *, is_end: bool = False) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=zone).astimezone(UTC)
        return value.astimezone(UTC)
    return parse_window_bound(value, zone, is_end=is_end)


__all__ = [
    "Clock",
    "SyncWindow",
    "TimeWindow",
    "WindowPolicy",
    "local_midnight",
    "parse_window_bound",
    "project_zone",
    "resolve_sync_window",
]
