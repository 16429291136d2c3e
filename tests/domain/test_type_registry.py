from __future__ import annotations

from bookingsync.domain.model import Category
from bookingsync.domain.type_registry import TypeMappingRegistry
from tests.helpers.bookings import NOW, InMemoryTypeMappingRepository, category_uri


def _registry() -> tuple[TypeMappingRegistry, InMemoryTypeMappingRepository]:
    repository = InMemoryTypeMappingRepository()
    return TypeMappingRegistry(repository), repository


def test_refresh_ensures_active_categories() -> None:
    registry, _ = _registry()

    result = registry.refresh(
        "p1",
        [Category(category_uri(1), "Intro"), Category(category_uri(2), "Closing")],
        now=NOW,
    )

    assert result.ensured == [category_uri(1), category_uri(2)]
    assert {m.category_id for m in registry.list_active("p1")} == {
        category_uri(1),
        category_uri(2),
    }


def test_refresh_deactivates_missing_and_inactive_categories_without_deleting() -> None:
    registry, repository = _registry()
    registry.refresh(
        "p1",
        [Category(category_uri(i), f"Type {i}") for i in (1, 2, 3)],
        now=NOW,
    )

    result = registry.refresh(
        "p1",
        [Category(category_uri(1), "Type 1"), Category(category_uri(2), "Type 2", active=False)],
        now=NOW,
    )

    assert sorted(result.deactivated) == [category_uri(2), category_uri(3)]
    assert {m.category_id for m in registry.list_active("p1")} == {category_uri(1)}
    assert len(repository.list_for_project("p1")) == 3


def test_ensure_is_idempotent_and_reactivates() -> None:
    registry, repository = _registry()
    registry.ensure("p1", category_uri(1), "Intro", now=NOW)
    repository.set_active("p1", category_uri(1), active=False, now=NOW)

    registry.ensure("p1", category_uri(1), "Intro call", now=NOW)
    registry.ensure("p1", category_uri(1), "Intro call", now=NOW)

    (mapping,) = registry.list_active("p1")
    assert mapping.name == "Intro call"
    assert len(repository.list_for_project("p1")) == 1


def test_projects_are_isolated() -> None:
    registry, _ = _registry()
    registry.ensure("p1", category_uri(1), "Intro", now=NOW)

    assert registry.list_active("p2") == set()
