from __future__ import annotations

from datetime import timedelta

import pytest

from bookingsync.domain.model import EventStatus, Participant
from bookingsync.domain.reconciliation import (
    ChangeAction,
    decide_change,
    dedupe_events,
    new_record,
    normalize_status,
    updated_record,
)
from tests.helpers.bookings import NOW, event_uri, make_event, make_record


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("active", EventStatus.ACTIVE),
        ("Scheduled", EventStatus.ACTIVE),
        ("confirmed", EventStatus.ACTIVE),
        ("canceled", EventStatus.CANCELLED),
        ("CANCELLED", EventStatus.CANCELLED),
        ("complete", EventStatus.COMPLETED),
        ("no-show", EventStatus.NO_SHOW),
        ("noshow", EventStatus.NO_SHOW),
        ("No Show", EventStatus.NO_SHOW),
        (None, EventStatus.ACTIVE),
    ],
)
def test_normalize_status_accepts_source_spellings(raw: str | None, expected: EventStatus) -> None:
    assert normalize_status(raw) is expected


def test_unknown_status_is_logged_and_treated_as_active(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("WARNING"):
        assert normalize_status("rescheduled") is EventStatus.ACTIVE

    assert "rescheduled" in caplog.text


def test_dedupe_prefers_newer_source_update() -> None:
    older = make_event(1, status="active", updated_at=NOW - timedelta(hours=3))
    newer = make_event(1, status="canceled", updated_at=NOW - timedelta(hours=1))

    deduped = dedupe_events([newer, older, make_event(2)])

    assert set(deduped) == {event_uri(1), event_uri(2)}
    assert deduped[event_uri(1)].status is EventStatus.CANCELLED


def test_dedupe_without_timestamps_keeps_last_seen() -> None:
    first = make_event(1, status="active")
    second = make_event(1, status="canceled")

    assert dedupe_events([first, second])[event_uri(1)] is second


def test_missing_record_is_inserted() -> None:
    assert decide_change(None, make_event(1)) is ChangeAction.INSERT


def test_equal_terminal_statuses_skip_even_with_newer_update() -> None:
    existing = make_record("p1", 1, status=EventStatus.CANCELLED)
    incoming = make_event(1, status="canceled", updated_at=NOW)

    assert decide_change(existing, incoming) is ChangeAction.SKIP


def test_status_change_updates() -> None:
    existing = make_record("p1", 1, status=EventStatus.ACTIVE)

    assert decide_change(existing, make_event(1, status="canceled")) is ChangeAction.UPDATE


def test_status_change_from_older_source_copy_is_skipped() -> None:
    existing = make_record("p1", 1, source_updated_at=NOW - timedelta(hours=1))
    stale = make_event(1, status="canceled", updated_at=NOW - timedelta(hours=2))
    same_time = make_event(1, status="canceled", updated_at=NOW - timedelta(hours=1))

    assert decide_change(existing, stale) is ChangeAction.SKIP
    assert decide_change(existing, same_time) is ChangeAction.UPDATE


def test_newer_source_update_with_same_active_status_updates() -> None:
    existing = make_record("p1", 1, source_updated_at=NOW - timedelta(days=1))

    assert decide_change(existing, make_event(1, updated_at=NOW)) is ChangeAction.UPDATE
    assert (
        decide_change(existing, make_event(1, updated_at=NOW - timedelta(days=2)))
        is ChangeAction.SKIP
    )


def test_unchanged_active_event_is_skipped() -> None:
    assert decide_change(make_record("p1", 1), make_event(1)) is ChangeAction.SKIP


def test_new_record_takes_source_creation_time_and_participant() -> None:
    event = make_event(1, created_at=NOW - timedelta(days=3)).with_participant(
        Participant(name="Ada", email="ada@example.com")
    )

    record = new_record("p1", event, category_name="Discovery call", now=NOW)

    assert record.created_at == NOW - timedelta(days=3)
    assert record.updated_at == NOW
    assert record.category_name == "Discovery call"
    assert record.participant_email == "ada@example.com"
    assert record.cancelled_at is None


def test_new_cancelled_record_gets_cancelled_at() -> None:
    record = new_record("p1", make_event(1, status="canceled"), category_name="x", now=NOW)

    assert record.cancelled_at == NOW


def test_updated_record_sets_cancelled_at_only_once() -> None:
    existing = make_record("p1", 1)

    cancelled = updated_record(existing, status=EventStatus.CANCELLED, now=NOW)
    again = updated_record(
        cancelled, status=EventStatus.CANCELLED, now=NOW + timedelta(hours=1)
    )

    assert cancelled.cancelled_at == NOW
    assert again.cancelled_at == NOW
    assert again.created_at == existing.created_at
