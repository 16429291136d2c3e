"""Synchronization defaults for reconciliation runs."""

from __future__ import annotations

from dataclasses import dataclass, field

from bookingsync.domain.time_windows import WindowPolicy

from .env import optional_env_float, optional_env_int

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 50
DEFAULT_STATUSES: tuple[str, ...] = ("active", "canceled")


@dataclass(frozen=True, slots=True)
class PaginationPolicy:
    """Bounds for one pagination walk over the source."""

    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int = DEFAULT_MAX_PAGES
    min_page_delay: float = 0.2
    rate_limit_backoff: float = 5.0
    max_rate_limit_retries: int = 5
    max_consecutive_errors: int = 3
    error_backoff: float = 1.0


@dataclass(frozen=True, slots=True)
class SyncConfig:
    pagination: PaginationPolicy = field(default_factory=PaginationPolicy)
    windows: WindowPolicy = field(default_factory=WindowPolicy)
    # Source spellings; the source cannot list every status in one call.
    statuses: tuple[str, ...] = DEFAULT_STATUSES
    participant_concurrency: int = 4
    run_deadline_seconds: float | None = None
    status_refresh_lookback_days: int = 3


def get_sync_config() -> SyncConfig:
    pagination = PaginationPolicy(
        page_size=optional_env_int("BOOKINGSYNC_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        max_pages=optional_env_int("BOOKINGSYNC_MAX_PAGES", DEFAULT_MAX_PAGES),
    )
    return SyncConfig(
        pagination=pagination,
        participant_concurrency=optional_env_int("BOOKINGSYNC_PARTICIPANT_CONCURRENCY", 4),
        run_deadline_seconds=optional_env_float("BOOKINGSYNC_RUN_DEADLINE_SECONDS", None),
    )
