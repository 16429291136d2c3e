"""Calendly configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

DEFAULT_CALENDLY_BASE_URL = "https://api.calendly.com"
CALENDLY_TIMEOUT_SECONDS = 15.0


@dataclass(frozen=True, slots=True)
class CalendlyConfig:
    """Holds Calendly API configuration values."""

    resilience: ResilienceConfig


def get_calendly_config(*, resilience: ResilienceConfig | None = None) -> CalendlyConfig:
    base_url = os.getenv("CALENDLY_API_BASE_URL") or DEFAULT_CALENDLY_BASE_URL
    return CalendlyConfig(
        resilience=resilience
        or ResilienceConfig(
            name="calendly",
            base_url=base_url.rstrip("/"),
            timeout_seconds=CALENDLY_TIMEOUT_SECONDS,
            retry=RetryPolicy(total=2),
            # Documented limit is per access token; one client is built per token.
            ratelimit=RateLimit(max_calls=8, per_seconds=1.0),
            default_headers={"Content-Type": "application/json"},
        ),
    )
