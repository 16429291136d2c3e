"""Domain port definitions for adapters."""

from __future__ import annotations

from .fetching import EventSource, SourceUser, StatusFetchResult
from .persistence import IntegrationRepository, LocalEventRepository, TypeMappingRepository
from .unit_of_work import RepositoryCollection, SyncRepositories, SyncUnitOfWork, UnitOfWork

__all__ = [
    "EventSource",
    "IntegrationRepository",
    "LocalEventRepository",
    "RepositoryCollection",
    "SourceUser",
    "StatusFetchResult",
    "SyncRepositories",
    "SyncUnitOfWork",
    "TypeMappingRepository",
    "UnitOfWork",
]
