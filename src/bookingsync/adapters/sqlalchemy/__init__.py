"""SQLAlchemy adapter package for bookingsync."""

from __future__ import annotations

from .mappings import mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyIntegrationRepository,
    SqlAlchemyLocalEventRepository,
    SqlAlchemyTypeMappingRepository,
)

__all__ = [
    "SqlAlchemyIntegrationRepository",
    "SqlAlchemyLocalEventRepository",
    "SqlAlchemyTypeMappingRepository",
    "mapper_registry",
    "start_mappers",
]
