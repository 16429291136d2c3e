"""Application configuration helpers."""

from __future__ import annotations

from .calendly import CalendlyConfig, get_calendly_config
from .env import require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config
from .sync import PaginationPolicy, SyncConfig, get_sync_config

__all__ = [
    "CalendlyConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "PaginationPolicy",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "SyncConfig",
    "configure_logging",
    "get_calendly_config",
    "get_database_config",
    "get_storage_config",
    "get_sync_config",
    "require_env_vars",
]
