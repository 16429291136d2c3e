"""Registry of source categories (event types) a project tracks."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from bookingsync.domain.model import Category, TypeMapping
    from bookingsync.domain.ports.persistence import TypeMappingRepository

log = getLogger(__name__)


@dataclass(slots=True)
class RegistryRefresh:
    """What one discovery pass changed."""

    ensured: list[str] = field(default_factory=list[str])
    deactivated: list[str] = field(default_factory=list[str])


class TypeMappingRegistry:
    """Keeps ``(project, category)`` mappings in step with what the source offers.

    Mappings are never deleted. A category that disappears from discovery, or that
    the source reports as inactive, is deactivated so its events stop being tracked.
    """

    def __init__(self, repository: TypeMappingRepository) -> None:
        self._repository = repository

    def list_active(self, project_id: str) -> set[TypeMapping]:
        return {m for m in self._repository.list_for_project(project_id) if m.is_active}

    def ensure(self, project_id: str, category_id: str, name: str, *, now: datetime) -> None:
        self._repository.ensure(project_id, category_id, name, now=now)

    def refresh(
        self,
        project_id: str,
        categories: Iterable[Category],
        *,
        now: datetime,
    ) -> RegistryRefresh:
        result = RegistryRefresh()
        discovered_active: set[str] = set()
        for category in categories:
            if not category.active:
                continue
            discovered_active.add(category.category_id)
            self.ensure(project_id, category.category_id, category.name, now=now)
            result.ensured.append(category.category_id)

        for mapping in self._repository.list_for_project(project_id):
            if mapping.is_active and mapping.category_id not in discovered_active:
                self._repository.set_active(
                    project_id, mapping.category_id, active=False, now=now
                )
                result.deactivated.append(mapping.category_id)

        log.info(
            "project=%s stage=type_mapping ensured=%s deactivated=%s",
            project_id,
            len(result.ensured),
            len(result.deactivated),
        )
        return result
