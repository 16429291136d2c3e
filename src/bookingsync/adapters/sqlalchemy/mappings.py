"""SQLAlchemy mapping metadata for the booking sync domain model."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import StrEnum
from functools import cache

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    Index,
    Integer,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
    orm,
)
from sqlalchemy.orm import configure_mappers

from bookingsync.domain.model import (
    EventStatus,
    IntegrationCredentials,
    LocalEventRecord,
    Platform,
    ProjectIntegration,
    TypeMapping,
)

log = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


def _enum_values(enum_cls: type[StrEnum]) -> list[str]:
    return [member.value for member in enum_cls]


def _status_type() -> Enum:
    return Enum(EventStatus, native_enum=False, length=16, values_callable=_enum_values)


def _platform_type() -> Enum:
    return Enum(Platform, native_enum=False, length=32, values_callable=_enum_values)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

calendly_event_table = Table(
    "calendly_event",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", String, nullable=False),
    Column("external_id", String, nullable=False),
    Column("category_id", String, nullable=False),
    Column("category_name", String, nullable=False),
    Column("scheduled_at", UTCDateTime(), nullable=False),
    Column("status", _status_type(), nullable=False),
    Column("participant_name", String, nullable=True),
    Column("participant_email", String, nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
    Column("source_updated_at", UTCDateTime(), nullable=True),
    Column("cancelled_at", UTCDateTime(), nullable=True),
    UniqueConstraint("project_id", "external_id", name="uq_calendly_event_project_external"),
    Index("ix_calendly_event_project_status", "project_id", "status", "scheduled_at"),
    Index("ix_calendly_event_project_created", "project_id", "created_at"),
)

event_type_mapping_table = Table(
    "event_type_mapping",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", String, nullable=False),
    Column("category_id", String, nullable=False),
    Column("name", String, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("updated_at", UTCDateTime(), nullable=True),
    UniqueConstraint("project_id", "category_id", name="uq_event_type_mapping_project_category"),
)

project_integration_table = Table(
    "project_integration",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", String, nullable=False),
    Column("platform", _platform_type(), nullable=False),
    Column("is_connected", Boolean, nullable=False, default=True),
    Column("last_sync", UTCDateTime(), nullable=True),
    Column("timezone", String, nullable=False, default="UTC"),
    UniqueConstraint("project_id", "platform", name="uq_project_integration_project_platform"),
)

integration_credentials_table = Table(
    "integration_credentials",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", String, nullable=False),
    Column("platform", _platform_type(), nullable=False),
    Column("access_token", String, nullable=True),
    Column("user_uri", String, nullable=True),
    Column("organization_uri", String, nullable=True),
    Column("expires_at", UTCDateTime(), nullable=True),
    UniqueConstraint(
        "project_id", "platform", name="uq_integration_credentials_project_platform"
    ),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(LocalEventRecord, calendly_event_table)
    mapper_registry.map_imperatively(TypeMapping, event_type_mapping_table)
    mapper_registry.map_imperatively(ProjectIntegration, project_integration_table)
    mapper_registry.map_imperatively(IntegrationCredentials, integration_credentials_table)

    configure_mappers()
    return mapper_registry
