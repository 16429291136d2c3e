"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from bookingsync.adapters.sqlalchemy.mappings import (
    calendly_event_table,
    event_type_mapping_table,
    integration_credentials_table,
    project_integration_table,
)
from bookingsync.domain.errors import PersistenceError
from bookingsync.domain.model import (
    IntegrationCredentials,
    LocalEventRecord,
    Platform,
    ProjectIntegration,
    TypeMapping,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy.orm import Session

    from bookingsync.domain.model import EventStatus

# Keeps IN lists under SQLite's bound-parameter limit.
_IN_CHUNK = 500

_EVENT_COLUMNS = (
    "project_id",
    "external_id",
    "category_id",
    "category_name",
    "scheduled_at",
    "status",
    "participant_name",
    "participant_email",
    "created_at",
    "updated_at",
    "source_updated_at",
    "cancelled_at",
)


class SqlAlchemyLocalEventRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, project_id: str, external_id: str) -> LocalEventRecord | None:
        stmt = (
            select(LocalEventRecord)
            .where(calendly_event_table.c.project_id == project_id)
            .where(calendly_event_table.c.external_id == external_id)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def get_many(
        self, project_id: str, external_ids: Sequence[str]
    ) -> dict[str, LocalEventRecord]:
        ids = list(dict.fromkeys(external_ids))
        found: dict[str, LocalEventRecord] = {}
        for offset in range(0, len(ids), _IN_CHUNK):
            chunk = ids[offset : offset + _IN_CHUNK]
            stmt = (
                select(LocalEventRecord)
                .where(calendly_event_table.c.project_id == project_id)
                .where(calendly_event_table.c.external_id.in_(chunk))
                .execution_options(populate_existing=True)
            )
            for record in self.session.execute(stmt).scalars():
                found[record.external_id] = record
        return found

    def upsert(self, record: LocalEventRecord) -> None:
        """Insert ``record`` or merge it into the stored row for the same key.

        On conflict only the mutable columns move, and only when the incoming
        ``source_updated_at`` is not older than the stored one. ``cancelled_at``
        keeps the first value it was given.
        """

        table = calendly_event_table
        values = {column: getattr(record, column) for column in _EVENT_COLUMNS}
        dialect = self.session.get_bind().dialect.name
        insert = postgresql_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert(table).values(**values)
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.project_id, table.c.external_id],
            set_={
                "scheduled_at": excluded.scheduled_at,
                "status": excluded.status,
                "updated_at": excluded.updated_at,
                "source_updated_at": func.coalesce(
                    excluded.source_updated_at, table.c.source_updated_at
                ),
                "cancelled_at": func.coalesce(table.c.cancelled_at, excluded.cancelled_at),
            },
            where=or_(
                table.c.source_updated_at.is_(None),
                excluded.source_updated_at.is_(None),
                excluded.source_updated_at >= table.c.source_updated_at,
            ),
        )
        try:
            self.session.execute(stmt)
        except SQLAlchemyError as exc:
            msg = f"Could not store event {record.external_id} for project {record.project_id}"
            raise PersistenceError(msg) from exc

    def list_by_status(
        self,
        project_id: str,
        status: EventStatus,
        *,
        scheduled_from: datetime | None = None,
        scheduled_before: datetime | None = None,
    ) -> list[LocalEventRecord]:
        table = calendly_event_table
        stmt = (
            select(LocalEventRecord)
            .where(table.c.project_id == project_id)
            .where(table.c.status == status)
            .order_by(table.c.scheduled_at)
            .execution_options(populate_existing=True)
        )
        if scheduled_from is not None:
            stmt = stmt.where(table.c.scheduled_at >= scheduled_from)
        if scheduled_before is not None:
            stmt = stmt.where(table.c.scheduled_at < scheduled_before)
        return list(self.session.execute(stmt).scalars())

    def list_created_since(self, project_id: str, since: datetime) -> list[LocalEventRecord]:
        table = calendly_event_table
        stmt = (
            select(LocalEventRecord)
            .where(table.c.project_id == project_id)
            .where(table.c.created_at >= since)
            .order_by(table.c.created_at)
            .execution_options(populate_existing=True)
        )
        return list(self.session.execute(stmt).scalars())

    def count(self, project_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(calendly_event_table)
            .where(calendly_event_table.c.project_id == project_id)
        )
        return int(self.session.execute(stmt).scalar_one())


class SqlAlchemyTypeMappingRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_for_project(self, project_id: str) -> list[TypeMapping]:
        stmt = (
            select(TypeMapping)
            .where(event_type_mapping_table.c.project_id == project_id)
            .order_by(event_type_mapping_table.c.category_id)
        )
        return list(self.session.execute(stmt).scalars())

    def ensure(self, project_id: str, category_id: str, name: str, *, now: datetime) -> None:
        mapping = self._get(project_id, category_id)
        if mapping is None:
            self.session.add(
                TypeMapping(
                    project_id=project_id,
                    category_id=category_id,
                    name=name,
                    is_active=True,
                    updated_at=now,
                )
            )
            return
        if mapping.name != name or not mapping.is_active:
            mapping.name = name
            mapping.is_active = True
            mapping.updated_at = now

    def set_active(
        self, project_id: str, category_id: str, *, active: bool, now: datetime
    ) -> None:
        mapping = self._get(project_id, category_id)
        if mapping is None or mapping.is_active == active:
            return
        mapping.is_active = active
        mapping.updated_at = now

    def _get(self, project_id: str, category_id: str) -> TypeMapping | None:
        stmt = (
            select(TypeMapping)
            .where(event_type_mapping_table.c.project_id == project_id)
            .where(event_type_mapping_table.c.category_id == category_id)
        )
        return self.session.execute(stmt).scalar_one_or_none()


class SqlAlchemyIntegrationRepository:
    def __init__(self, session: Session, *, platform: Platform = Platform.CALENDLY) -> None:
        self.session = session
        self.platform = platform

    def list_connected(self, project_id: str | None = None) -> list[ProjectIntegration]:
        table = project_integration_table
        stmt = (
            select(ProjectIntegration)
            .where(table.c.platform == self.platform)
            .where(table.c.is_connected.is_(True))
            .order_by(table.c.project_id)
        )
        if project_id is not None:
            stmt = stmt.where(table.c.project_id == project_id)
        return list(self.session.execute(stmt).scalars())

    def mark_synced(self, project_id: str, *, at: datetime) -> None:
        table = project_integration_table
        self.session.execute(
            update(ProjectIntegration)
            .where(table.c.project_id == project_id)
            .where(table.c.platform == self.platform)
            .values(last_sync=at)
        )

    def get_credentials(self, project_id: str) -> IntegrationCredentials | None:
        table = integration_credentials_table
        stmt = (
            select(IntegrationCredentials)
            .where(table.c.project_id == project_id)
            .where(table.c.platform == self.platform)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def save_source_identity(
        self, project_id: str, *, user_uri: str, organization_uri: str | None
    ) -> None:
        table = integration_credentials_table
        self.session.execute(
            update(IntegrationCredentials)
            .where(table.c.project_id == project_id)
            .where(table.c.platform == self.platform)
            .values(user_uri=user_uri, organization_uri=organization_uri)
        )

    def connect(
        self,
        project_id: str,
        *,
        access_token: str,
        timezone: str = "UTC",
        expires_at: datetime | None = None,
    ) -> ProjectIntegration:
        integration = self.session.execute(
            select(ProjectIntegration)
            .where(project_integration_table.c.project_id == project_id)
            .where(project_integration_table.c.platform == self.platform)
        ).scalar_one_or_none()
        if integration is None:
            integration = ProjectIntegration(project_id=project_id, platform=self.platform)
            self.session.add(integration)
        integration.is_connected = True
        integration.timezone = timezone

        credentials = self.get_credentials(project_id)
        if credentials is None:
            credentials = IntegrationCredentials(project_id=project_id, platform=self.platform)
            self.session.add(credentials)
        if credentials.access_token != access_token:
            # A new token may belong to a different Calendly user.
            credentials.user_uri = None
            credentials.organization_uri = None
        credentials.access_token = access_token
        credentials.expires_at = expires_at
        return integration
