from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from bookingsync.domain.errors import AuthenticationError, TransientSourceError
from bookingsync.domain.model import Category, EventStatus, Participant
from bookingsync.domain.reconciliation import Reconciler
from bookingsync.domain.time_windows import SyncWindow
from bookingsync.domain.type_registry import TypeMappingRegistry
from tests.helpers.bookings import (
    NOW,
    FakeEventSource,
    FakeStore,
    category_uri,
    event_uri,
    fixed_clock,
    make_event,
)

WINDOW = SyncWindow(start=NOW - timedelta(days=7), end=NOW)


def _categories(*indices: int) -> list[Category]:
    return [Category(category_uri(i), f"Type {i}") for i in indices]


def _reconciler(source: FakeEventSource, store: FakeStore) -> Reconciler:
    return Reconciler(
        source=source, unit_of_work_factory=store.unit_of_work, clock=fixed_clock()
    )


def _pages(events: list, size: int = 100) -> list[list]:
    return [events[i : i + size] for i in range(0, len(events), size)]


@pytest.fixture
def store() -> FakeStore:
    store = FakeStore()
    store.integrations.add_project("p1")
    return store


def test_three_categories_one_hundred_fifty_events(store: FakeStore) -> None:
    events = [make_event(i, category=1 + i % 3) for i in range(150)]
    source = FakeEventSource(
        categories=[
            Category(category_uri(1), "Type 1"),
            Category(category_uri(2), "Type 2"),
            Category(category_uri(3), "Archived", active=False),
        ],
        events={"active": _pages(events)},
    )

    result = _reconciler(source, store).reconcile_project("p1", WINDOW)

    archived = [event for event in events if event.category_id == category_uri(3)]
    assert len(archived) == 50
    assert result.stats.pages_fetched == 2
    assert result.stats.fetched == 150
    assert result.stats.filtered == len(archived)
    assert result.stats.inserted == 100
    assert len(TypeMappingRegistry(store.type_mappings).list_active("p1")) == 2
    assert store.events.count("p1") == 100
    assert {row.category_id for row in store.events.rows.values()} == {
        category_uri(1),
        category_uri(2),
    }


def test_reconcile_is_idempotent(store: FakeStore) -> None:
    source = FakeEventSource(
        categories=_categories(1),
        events={
            "active": [[make_event(1), make_event(2)]],
            "canceled": [[make_event(3, status="canceled")]],
        },
    )
    reconciler = _reconciler(source, store)

    first = reconciler.reconcile_project("p1", WINDOW)
    snapshot = {key: (row.status, row.created_at) for key, row in store.events.rows.items()}
    second = reconciler.reconcile_project("p1", WINDOW)

    assert first.stats.inserted == 3
    assert second.stats.inserted == 0
    assert second.stats.updated == 0
    assert second.stats.skipped == 3
    assert {key: (row.status, row.created_at) for key, row in store.events.rows.items()} == snapshot


def test_untracked_categories_are_filtered(store: FakeStore) -> None:
    source = FakeEventSource(
        categories=[
            Category(category_uri(1), "Tracked"),
            Category(category_uri(2), "Old", active=False),
        ],
        events={"active": [[make_event(1, category=1), make_event(2, category=2)]]},
    )

    result = _reconciler(source, store).reconcile_project("p1", WINDOW)

    assert result.stats.filtered == 1
    assert store.events.get("p1", event_uri(2)) is None
    assert store.events.get("p1", event_uri(1)) is not None


def test_cancellation_converges_and_keeps_created_at(store: FakeStore) -> None:
    source = FakeEventSource(categories=_categories(1), events={"active": [[make_event(1)]]})
    reconciler = _reconciler(source, store)
    reconciler.reconcile_project("p1", WINDOW)
    created_at = store.events.get("p1", event_uri(1)).created_at

    source.events = {
        "active": [],
        "canceled": [[make_event(1, status="canceled", created_at=NOW)]],
    }
    result = reconciler.reconcile_project("p1", WINDOW)

    stored = store.events.get("p1", event_uri(1))
    assert result.stats.updated == 1
    assert stored.status is EventStatus.CANCELLED
    assert stored.cancelled_at == NOW
    assert stored.created_at == created_at


def test_duplicate_across_status_walks_stores_one_row(store: FakeStore) -> None:
    source = FakeEventSource(
        categories=_categories(1),
        events={
            "active": [[make_event(1, updated_at=NOW - timedelta(hours=2))]],
            "canceled": [[make_event(1, status="canceled", updated_at=NOW - timedelta(hours=1))]],
        },
    )

    result = _reconciler(source, store).reconcile_project("p1", WINDOW)

    assert result.stats.fetched == 1
    assert store.events.count("p1") == 1
    assert store.events.get("p1", event_uri(1)).status is EventStatus.CANCELLED


def test_persist_failure_is_isolated_per_record(store: FakeStore) -> None:
    source = FakeEventSource(
        categories=_categories(1), events={"active": [[make_event(1), make_event(2), make_event(3)]]}
    )
    store.events.fail_on.add(event_uri(2))

    result = _reconciler(source, store).reconcile_project("p1", WINDOW)

    assert result.stats.inserted == 2
    assert result.stats.failed == 1
    assert [(f.stage, f.external_id) for f in result.failures] == [("persist", event_uri(2))]
    assert store.integrations.integrations["p1"].last_sync == NOW


def test_last_sync_advances_without_changes(store: FakeStore) -> None:
    source = FakeEventSource(categories=_categories(1))

    result = _reconciler(source, store).reconcile_project("p1", WINDOW)

    assert result.stats.written == 0
    assert store.integrations.integrations["p1"].last_sync == NOW


def test_participants_are_looked_up_only_for_new_events(store: FakeStore) -> None:
    source = FakeEventSource(
        categories=_categories(1),
        events={"active": [[make_event(1)]]},
        participants={event_uri(1): Participant(name="Ada", email="ada@example.com")},
    )
    reconciler = _reconciler(source, store)
    reconciler.reconcile_project("p1", WINDOW)

    source.events = {"active": [[make_event(1), make_event(2)]]}
    reconciler.reconcile_project("p1", WINDOW)

    assert source.calls_named("fetch_participants") == [(event_uri(1),), (event_uri(2),)]
    assert store.events.get("p1", event_uri(1)).participant_name == "Ada"
    assert store.events.get("p1", event_uri(2)).participant_name is None


def test_fetch_error_keeps_partial_results(store: FakeStore) -> None:
    source = FakeEventSource(
        categories=_categories(1),
        events={"active": [[make_event(1)]]},
        fetch_errors={"active": TransientSourceError("boom", status_code=503)},
    )

    result = _reconciler(source, store).reconcile_project("p1", WINDOW)

    assert result.stats.inserted == 1
    assert [(f.stage, f.status) for f in result.failures] == [("fetch", "active")]


def test_category_discovery_failure_uses_stored_mappings(store: FakeStore) -> None:
    store.track("p1", 1)
    source = FakeEventSource(
        category_error=TransientSourceError("down"),
        events={"active": [[make_event(1)]]},
    )

    result = _reconciler(source, store).reconcile_project("p1", WINDOW)

    assert result.registry is None
    assert result.stats.inserted == 1
    assert result.failures[0].stage == "type_mapping"


def test_missing_user_scope_is_discovered_and_saved() -> None:
    store = FakeStore()
    store.integrations.add_project("p1", user_uri=None)
    source = FakeEventSource(categories=_categories(1))

    _reconciler(source, store).reconcile_project("p1", WINDOW)

    credentials = store.integrations.get_credentials("p1")
    assert credentials.user_uri == source.user.user_uri
    assert credentials.organization_uri == source.user.organization_uri


@pytest.mark.parametrize(
    ("token", "expires_at"),
    [(None, None), ("  ", None), ("token", NOW - timedelta(minutes=1))],
)
def test_unusable_token_raises_authentication_error(token: str | None, expires_at) -> None:
    store = FakeStore()
    store.integrations.add_project("p1", token=token, expires_at=expires_at)

    with pytest.raises(AuthenticationError):
        _reconciler(FakeEventSource(), store).reconcile_project("p1", WINDOW)

    assert store.events.count("p1") == 0


def test_truncated_walk_is_reported(store: FakeStore) -> None:
    source = FakeEventSource(
        categories=_categories(1),
        events={"active": [[make_event(1)]], "canceled": []},
        truncated={"active"},
    )

    result = _reconciler(source, store).reconcile_project("p1", WINDOW)

    assert result.stats.inserted == 1
    assert [(f.stage, f.status) for f in result.failures] == [("fetch", "active")]
    assert "page ceiling or deadline" in result.failures[0].message


def test_older_source_update_is_skipped_not_counted(store: FakeStore) -> None:
    source = FakeEventSource(
        categories=_categories(1),
        events={"active": [[make_event(1, updated_at=NOW - timedelta(hours=1))]]},
    )
    reconciler = _reconciler(source, store)
    reconciler.reconcile_project("p1", WINDOW)

    source.events = {
        "canceled": [[make_event(1, status="canceled", updated_at=NOW - timedelta(hours=3))]]
    }
    result = reconciler.reconcile_project("p1", WINDOW)

    assert result.stats.updated == 0
    assert result.stats.skipped == 1
    assert store.events.get("p1", event_uri(1)).status is EventStatus.ACTIVE


def test_source_cancellation_time_is_kept(store: FakeStore) -> None:
    cancelled_at = NOW - timedelta(minutes=30)
    event = replace(make_event(1, status="canceled"), cancelled_at=cancelled_at)
    source = FakeEventSource(categories=_categories(1), events={"canceled": [[event]]})

    _reconciler(source, store).reconcile_project("p1", WINDOW)

    assert store.events.get("p1", event_uri(1)).cancelled_at == cancelled_at
