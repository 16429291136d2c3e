"""Per-project integration state: connection, credentials and type mappings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from bookingsync.domain.model.enums import Platform

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(eq=False, kw_only=True)
class ProjectIntegration:
    project_id: str
    platform: Platform = Platform.CALENDLY
    is_connected: bool = True
    last_sync: datetime | None = None
    timezone: str = "UTC"
    id: int | None = field(default=None, repr=False)


@dataclass(eq=False, kw_only=True)
class IntegrationCredentials:
    project_id: str
    platform: Platform = Platform.CALENDLY
    access_token: str | None = None
    user_uri: str | None = None
    organization_uri: str | None = None
    expires_at: datetime | None = None
    id: int | None = field(default=None, repr=False)

    def is_usable(self, now: datetime) -> bool:
        if self.access_token is None or not self.access_token.strip():
            return False
        return self.expires_at is None or self.expires_at > now


@dataclass(eq=False, kw_only=True)
class TypeMapping:
    """Local alias connecting a source category to a display name."""

    project_id: str
    category_id: str
    name: str
    is_active: bool = True
    updated_at: datetime | None = None
    id: int | None = field(default=None, repr=False)

    def __hash__(self) -> int:
        return hash((self.project_id, self.category_id))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypeMapping):
            return NotImplemented
        return (self.project_id, self.category_id) == (other.project_id, other.category_id)
