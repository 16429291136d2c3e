"""Unit-of-work abstractions for coordinating repositories."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from contextlib import AbstractContextManager
    from types import TracebackType

    from bookingsync.domain.ports.persistence import (
        IntegrationRepository,
        LocalEventRepository,
        TypeMappingRepository,
    )


@runtime_checkable
class RepositoryCollection(Protocol):
    """Marker protocol for groups of repositories managed together."""


@runtime_checkable
class UnitOfWork[TRepositories: RepositoryCollection](Protocol):
    """Generic unit-of-work boundary around a repository collection."""

    @property
    def repositories(self) -> TRepositories: ...

    def __enter__(self) -> UnitOfWork[TRepositories]: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def savepoint(self) -> AbstractContextManager[object]:
        """Nested transaction: a failure inside rolls back only that block."""
        ...


@dataclass(slots=True)
class SyncRepositories(RepositoryCollection):
    """Repositories required to reconcile one project."""

    events: LocalEventRepository
    type_mappings: TypeMappingRepository
    integrations: IntegrationRepository


type SyncUnitOfWork = UnitOfWork[SyncRepositories]
