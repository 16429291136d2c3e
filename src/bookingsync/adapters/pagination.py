"""Token-based pagination with rate-limit and error handling.

Every call to :func:`iter_pages` starts a fresh walk; nothing is shared between
walks, so concurrent projects never see each other's backoff state.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from bookingsync.domain.deadline import NO_DEADLINE
from bookingsync.domain.errors import RateLimitedError, SourceError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from bookingsync.config.sync import PaginationPolicy
    from bookingsync.domain.deadline import Deadline

log = getLogger(__name__)

type Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class Page[T]:
    items: list[T]
    next_token: str | None = None


@dataclass(slots=True)
class WalkProgress:
    """Counters for one walk, filled in while it runs.

    ``truncated`` is set when the walk stopped before the source ran out of pages,
    because of the page ceiling or the deadline.
    """

    pages: int = 0
    api_calls: int = 0
    truncated: bool = False
    rate_limited: int = 0
    errors: list[SourceError] = field(default_factory=list[SourceError])


async def iter_pages[T](
    fetch_page: Callable[[str | None], Awaitable[Page[T]]],
    *,
    policy: PaginationPolicy,
    sleep: Sleep = asyncio.sleep,
    deadline: Deadline = NO_DEADLINE,
    progress: WalkProgress | None = None,
    label: str = "walk",
) -> AsyncIterator[Page[T]]:
    """Yield pages until the source has no next token.

    A 429 is waited out and the same page is requested again. Any other
    ``SourceError`` counts towards ``policy.max_consecutive_errors``; when that many
    happen in a row the last one is raised. Pages yielded before a raise stay with
    the caller.
    """

    stats = progress if progress is not None else WalkProgress()
    token: str | None = None
    consecutive_errors = 0
    rate_limit_retries = 0

    while True:
        if stats.pages >= policy.max_pages:
            log.warning("%s stopped at page ceiling max_pages=%s", label, policy.max_pages)
            stats.truncated = True
            return
        if deadline.expired:
            log.warning("%s stopped at deadline after pages=%s", label, stats.pages)
            stats.truncated = True
            return

        stats.api_calls += 1
        try:
            page = await fetch_page(token)
        except RateLimitedError as exc:
            rate_limit_retries += 1
            stats.rate_limited += 1
            if rate_limit_retries > policy.max_rate_limit_retries:
                log.warning("%s gave up after %s rate-limited attempts", label, rate_limit_retries)
                stats.errors.append(exc)
                raise
            wait = exc.retry_after if exc.retry_after is not None else policy.rate_limit_backoff
            log.info("%s rate limited on page=%s, waiting %.1fs", label, stats.pages + 1, wait)
            await sleep(wait)
            continue
        except SourceError as exc:
            consecutive_errors += 1
            stats.errors.append(exc)
            if consecutive_errors >= policy.max_consecutive_errors:
                log.warning(
                    "%s stopped after %s consecutive errors: %s", label, consecutive_errors, exc
                )
                raise
            log.info("%s error on page=%s, retrying: %s", label, stats.pages + 1, exc)
            await sleep(policy.error_backoff * consecutive_errors)
            continue

        consecutive_errors = 0
        rate_limit_retries = 0
        stats.pages += 1
        yield page

        if not page.next_token:
            return
        token = page.next_token
        if policy.min_page_delay > 0:
            await sleep(policy.min_page_delay)


async def collect_pages[T](
    fetch_page: Callable[[str | None], Awaitable[Page[T]]],
    *,
    policy: PaginationPolicy,
    sleep: Sleep = asyncio.sleep,
    deadline: Deadline = NO_DEADLINE,
    progress: WalkProgress | None = None,
    label: str = "walk",
) -> list[T]:
    items: list[T] = []
    async for page in iter_pages(
        fetch_page,
        policy=policy,
        sleep=sleep,
        deadline=deadline,
        progress=progress,
        label=label,
    ):
        items.extend(page.items)
    return items
