"""Ports for persisting reconciliation state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from bookingsync.domain.model import (
        EventStatus,
        IntegrationCredentials,
        LocalEventRecord,
        ProjectIntegration,
        TypeMapping,
    )


@runtime_checkable
class LocalEventRepository(Protocol):
    """Persistence contract for local event records."""

    def get(self, project_id: str, external_id: str) -> LocalEventRecord | None: ...

    def get_many(
        self, project_id: str, external_ids: Sequence[str]
    ) -> dict[str, LocalEventRecord]: ...

    def upsert(self, record: LocalEventRecord) -> None:
        """Insert, or on ``(project_id, external_id)`` conflict update mutable columns.

        The update applies only when the incoming ``source_updated_at`` is not older
        than the stored one; ``created_at``, ``category_name`` and participant
        columns are never overwritten.
        """
        ...

    def list_by_status(
        self,
        project_id: str,
        status: EventStatus,
        *,
        scheduled_from: datetime | None = None,
        scheduled_before: datetime | None = None,
    ) -> Sequence[LocalEventRecord]: ...

    def list_created_since(self, project_id: str, since: datetime) -> Sequence[LocalEventRecord]: ...

    def count(self, project_id: str) -> int: ...


@runtime_checkable
class TypeMappingRepository(Protocol):
    def list_for_project(self, project_id: str) -> Sequence[TypeMapping]: ...

    def ensure(self, project_id: str, category_id: str, name: str, *, now: datetime) -> None: ...

    def set_active(
        self, project_id: str, category_id: str, *, active: bool, now: datetime
    ) -> None: ...


@runtime_checkable
class IntegrationRepository(Protocol):
    def list_connected(self, project_id: str | None = None) -> Sequence[ProjectIntegration]: ...

    def mark_synced(self, project_id: str, *, at: datetime) -> None: ...

    def get_credentials(self, project_id: str) -> IntegrationCredentials | None: ...

    def save_source_identity(
        self, project_id: str, *, user_uri: str, organization_uri: str | None
    ) -> None: ...

    def connect(
        self,
        project_id: str,
        *,
        access_token: str,
        timezone: str = "UTC",
        expires_at: datetime | None = None,
    ) -> ProjectIntegration:
        """Create or refresh the integration and its stored token for ``project_id``."""
        ...
