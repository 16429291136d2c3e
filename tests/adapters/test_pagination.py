from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import pytest

from bookingsync.adapters.pagination import Page, WalkProgress, collect_pages, iter_pages
from bookingsync.config.sync import PaginationPolicy
from bookingsync.domain.deadline import Deadline
from bookingsync.domain.errors import RateLimitedError, SourceResponseError, TransientSourceError
from tests.helpers.bookings import NOW

POLICY = PaginationPolicy(page_size=2, max_pages=10, min_page_delay=0.2)


class FakeSleep:
    def __init__(self) -> None:
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


class ScriptedPages:
    """Serves numbered pages; ``script`` lists exceptions to raise before each success."""

    def __init__(self, total: int, script: list[Exception] | None = None) -> None:
        self.total = total
        self.script = list(script or [])
        self.tokens: list[str | None] = []

    async def __call__(self, token: str | None) -> Page[int]:
        self.tokens.append(token)
        if self.script:
            raise self.script.pop(0)
        number = int(token) if token else 1
        next_token = str(number + 1) if number < self.total else None
        return Page(items=[number * 10, number * 10 + 1], next_token=next_token)


def _walk(fetch: ScriptedPages, **kwargs: object) -> tuple[list[int], WalkProgress]:
    progress = WalkProgress()
    items = asyncio.run(collect_pages(fetch, progress=progress, **kwargs))  # type: ignore[arg-type]
    return items, progress


def test_follows_tokens_until_exhausted() -> None:
    sleep = FakeSleep()
    fetch = ScriptedPages(3)

    items, progress = _walk(fetch, policy=POLICY, sleep=sleep)

    assert items == [10, 11, 20, 21, 30, 31]
    assert fetch.tokens == [None, "2", "3"]
    assert (progress.pages, progress.api_calls, progress.truncated) == (3, 3, False)
    assert sleep.waits == [0.2, 0.2]


def test_rate_limit_waits_retry_after_and_retries_same_page() -> None:
    sleep = FakeSleep()
    fetch = ScriptedPages(2, script=[RateLimitedError("slow down", retry_after=5)])

    items, progress = _walk(fetch, policy=POLICY, sleep=sleep)

    assert fetch.tokens == [None, None, "2"]
    assert items[:2] == [10, 11]
    assert sleep.waits[0] >= 5
    assert progress.rate_limited == 1
    assert progress.errors == []


def test_rate_limit_without_hint_uses_backoff() -> None:
    sleep = FakeSleep()
    fetch = ScriptedPages(1, script=[RateLimitedError("slow down")])

    _walk(fetch, policy=POLICY, sleep=sleep)

    assert sleep.waits == [POLICY.rate_limit_backoff]


def test_rate_limit_gives_up_after_max_retries() -> None:
    policy = PaginationPolicy(max_rate_limit_retries=2, min_page_delay=0)
    fetch = ScriptedPages(1, script=[RateLimitedError("again") for _ in range(3)])

    with pytest.raises(RateLimitedError):
        _walk(fetch, policy=policy, sleep=FakeSleep())

    assert len(fetch.tokens) == 3


def test_consecutive_errors_stop_walk_but_keep_earlier_pages() -> None:
    sleep = FakeSleep()
    fetch = ScriptedPages(5)
    received: list[Page[int]] = []

    async def walk() -> None:
        async for page in iter_pages(fetch, policy=POLICY, sleep=sleep):
            received.append(page)
            fetch.script = [TransientSourceError("down", status_code=503) for _ in range(3)]

    with pytest.raises(TransientSourceError):
        asyncio.run(walk())

    assert [page.items for page in received] == [[10, 11]]
    assert sleep.waits == [0.2, 1.0, 2.0]


def test_success_resets_error_counter() -> None:
    script: list[Exception] = [
        TransientSourceError("a"),
        TransientSourceError("b"),
    ]
    fetch = ScriptedPages(2, script=script)

    items, progress = _walk(fetch, policy=POLICY, sleep=FakeSleep())

    assert items == [10, 11, 20, 21]
    assert len(progress.errors) == 2


def test_parse_errors_count_as_consecutive_errors() -> None:
    fetch = ScriptedPages(1, script=[SourceResponseError("bad json") for _ in range(3)])

    with pytest.raises(SourceResponseError):
        _walk(fetch, policy=POLICY, sleep=FakeSleep())


def test_page_ceiling_truncates() -> None:
    policy = PaginationPolicy(max_pages=2, min_page_delay=0)
    fetch = ScriptedPages(5)

    items, progress = _walk(fetch, policy=policy, sleep=FakeSleep())

    assert items == [10, 11, 20, 21]
    assert progress.truncated is True


def test_expired_deadline_stops_before_next_page() -> None:
    moments = iter([NOW, NOW, NOW + timedelta(seconds=61)])

    def clock() -> datetime:
        return next(moments)

    deadline = Deadline.after(60, clock=clock)
    fetch = ScriptedPages(5)

    items, progress = _walk(fetch, policy=POLICY, sleep=FakeSleep(), deadline=deadline)

    assert items == [10, 11]
    assert progress.truncated is True
