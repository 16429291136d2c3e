from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import inspect

from bookingsync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemySyncUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)
from bookingsync.domain.errors import PersistenceError
from bookingsync.domain.model import EventStatus
from tests.helpers.bookings import event_uri, make_record

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.engine import Engine


def test_unit_of_work_requires_startup() -> None:
    shutdown()

    with pytest.raises(StartupError):
        SqlAlchemySyncUnitOfWork()


def test_startup_twice_requires_force(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    try:
        with pytest.raises(StartupError):
            startup(engine=sqlite_engine)
        assert is_started()
        assert configured_engine() is sqlite_engine
    finally:
        shutdown()

    assert not is_started()


def test_migrations_create_expected_tables(sqlite_engine: Engine) -> None:
    inspector = inspect(sqlite_engine)

    assert {
        "calendly_event",
        "event_type_mapping",
        "project_integration",
        "integration_credentials",
        "alembic_version",
    } <= set(inspector.get_table_names())
    index_names = {index["name"] for index in inspector.get_indexes("calendly_event")}
    assert {"ix_calendly_event_project_status", "ix_calendly_event_project_created"} <= index_names


def test_repositories_require_open_session(
    sqlite_unit_of_work: Callable[[], SqlAlchemySyncUnitOfWork],
) -> None:
    uow = sqlite_unit_of_work()

    with pytest.raises(StartupError):
        _ = uow.repositories


def test_commit_persists_between_units(
    sqlite_unit_of_work: Callable[[], SqlAlchemySyncUnitOfWork],
) -> None:
    with sqlite_unit_of_work() as uow:
        uow.repositories.events.upsert(make_record("p1", 1))
        uow.commit()

    with sqlite_unit_of_work() as uow:
        assert uow.repositories.events.count("p1") == 1


def test_exit_without_commit_rolls_back(
    sqlite_unit_of_work: Callable[[], SqlAlchemySyncUnitOfWork],
) -> None:
    with pytest.raises(RuntimeError), sqlite_unit_of_work() as uow:
        uow.repositories.events.upsert(make_record("p1", 1))
        raise RuntimeError("abort")

    with sqlite_unit_of_work() as uow:
        assert uow.repositories.events.count("p1") == 0


def test_savepoint_rolls_back_only_failed_block(
    sqlite_unit_of_work: Callable[[], SqlAlchemySyncUnitOfWork],
) -> None:
    with sqlite_unit_of_work() as uow:
        events = uow.repositories.events
        with uow.savepoint():
            events.upsert(make_record("p1", 1))

        with pytest.raises(PersistenceError), uow.savepoint():
            events.upsert(make_record("p1", 2))
            raise PersistenceError("simulated failure")

        with uow.savepoint():
            events.upsert(make_record("p1", 3))
        uow.commit()

    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.events.get_many("p1", [event_uri(i) for i in (1, 2, 3)])

    assert set(stored) == {event_uri(1), event_uri(3)}
    assert {record.status for record in stored.values()} == {EventStatus.ACTIVE}
