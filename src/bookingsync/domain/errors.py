"""Error taxonomy for sync runs."""

from __future__ import annotations


class SyncError(RuntimeError):
    """Base class for failures raised while reconciling a project."""


class AuthenticationError(SyncError):
    """No usable access token for a project. Skips the project, never the batch."""

    def __init__(self, message: str, *, project_id: str | None = None) -> None:
        super().__init__(message)
        self.project_id = project_id


class SourceError(SyncError):
    """The external source could not serve a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(SourceError):
    """The source answered 429. ``retry_after`` is the hinted wait in seconds, if any."""

    def __init__(self, message: str, *, retry_after: float | None = None) -> None:
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class TransientSourceError(SourceError):
    """5xx or network failure after transport-level retries were exhausted."""


class SourceResponseError(SourceError):
    """The source answered with a payload we could not interpret, or a 4xx."""


class DeadlineExceededError(SyncError):
    """The run deadline passed at a page boundary."""


class PersistenceError(SyncError):
    """A single record could not be written to the local store."""
