"""Access-token lookup for a project."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from bookingsync.domain.errors import AuthenticationError

if TYPE_CHECKING:
    from datetime import datetime

    from bookingsync.domain.model import IntegrationCredentials
    from bookingsync.domain.ports.fetching import EventSource
    from bookingsync.domain.ports.persistence import IntegrationRepository

log = getLogger(__name__)


def resolve_credentials(
    integrations: IntegrationRepository,
    source: EventSource,
    project_id: str,
    *,
    now: datetime,
) -> IntegrationCredentials:
    """Return usable credentials, discovering the source user scope when unknown.

    Raises ``AuthenticationError`` when no usable token exists.
    """

    credentials = integrations.get_credentials(project_id)
    if credentials is None:
        raise AuthenticationError("No stored credentials", project_id=project_id)
    if not credentials.is_usable(now):
        raise AuthenticationError("Access token missing or expired", project_id=project_id)

    if credentials.user_uri is None:
        user = source.current_user(credentials)
        credentials.user_uri = user.user_uri
        credentials.organization_uri = credentials.organization_uri or user.organization_uri
        integrations.save_source_identity(
            project_id,
            user_uri=user.user_uri,
            organization_uri=credentials.organization_uri,
        )
        log.info("project=%s stage=credentials discovered user scope", project_id)
    return credentials
