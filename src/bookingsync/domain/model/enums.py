"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class Platform(StrEnum):
    CALENDLY = "calendly"


class EventStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @property
    def is_terminal(self) -> bool:
        return self is not EventStatus.ACTIVE


class TriggerReason(StrEnum):
    """Why a sync run was started; selects the default window."""

    INCREMENTAL = "incremental"
    MANUAL = "manual"
    GAP_FILL = "gap_fill"
    DEEP = "deep"
    WEBHOOK = "webhook"
    SCHEDULED = "scheduled"

    @classmethod
    def parse(cls, value: str | None) -> TriggerReason:
        """Map free-form trigger strings (``incremental_sync_priority``, ``gap-fill``) to a reason."""

        if value is None or not value.strip():
            return cls.INCREMENTAL
        normalized = value.strip().lower().replace("-", "_")
        for reason in cls:
            if normalized == reason.value or normalized.startswith(f"{reason.value}_"):
                return reason
        return cls.MANUAL
