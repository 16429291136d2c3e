"""Cooperative run deadlines checked at page boundaries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from bookingsync.domain.errors import DeadlineExceededError

if TYPE_CHECKING:
    from bookingsync.domain.time_windows import Clock


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class Deadline:
    """A point in time after which no new page is requested.

    ``expires_at=None`` never expires.
    """

    expires_at: datetime | None = None
    clock: Clock = _utcnow

    @classmethod
    def after(cls, seconds: float | None, *, clock: Clock = _utcnow) -> Deadline:
        if seconds is None:
            return cls(clock=clock)
        return cls(expires_at=clock() + timedelta(seconds=seconds), clock=clock)

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and self.clock() >= self.expires_at

    def check(self) -> None:
        if self.expired:
            raise DeadlineExceededError(f"Sync deadline passed at {self.expires_at}")


NO_DEADLINE = Deadline()
