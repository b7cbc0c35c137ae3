"""
Application settings and environment configuration.

Responsibilities:
- Load configuration from environment variables and .env files.
- Validate settings and provide defaults for optional ones.
- Expose typed settings (relays, relay limit, timeouts, auto-load policy,
  aggregation policy, API host/port) for the fetcher, orchestrator, API and CLI.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import timezone as dt_timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from zaplytics.config.env import (
    env_bool,
    env_float,
    env_int,
    get_identities,
    get_relay_urls,
    load_zaplytics_env,
)

# Nostr relays commonly cap REQ limits at 500
DEFAULT_RELAY_LIMIT = 500
DEFAULT_FETCH_TIMEOUT_SEC = 15.0
DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_AUTO_LOAD_DELAY_SEC = 0.5
DEFAULT_BACKOFF_BASE_SEC = 1.0
DEFAULT_BACKOFF_MAX_SEC = 30.0
DEFAULT_LOYALTY_MIN_ZAPS = 3
DEFAULT_TOP_CONTENT_LIMIT = 10


@dataclass(frozen=True)
class Settings:
    """Typed settings for one process; every policy value lives here."""

    relay_urls: list[str] = field(default_factory=list)
    relay_limit: int = DEFAULT_RELAY_LIMIT
    fetch_timeout_sec: float = DEFAULT_FETCH_TIMEOUT_SEC
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    auto_load_delay_sec: float = DEFAULT_AUTO_LOAD_DELAY_SEC
    backoff_base_sec: float = DEFAULT_BACKOFF_BASE_SEC
    backoff_max_sec: float = DEFAULT_BACKOFF_MAX_SEC
    loyalty_min_zaps: int = DEFAULT_LOYALTY_MIN_ZAPS
    top_content_limit: int = DEFAULT_TOP_CONTENT_LIMIT
    timezone: str = "UTC"
    resolve_content: bool = True
    discover_relay_limit: bool = True
    identities: list[str] = field(default_factory=list)
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    def __post_init__(self) -> None:
        if self.relay_limit < 1:
            raise ValueError("relay_limit must be at least 1")
        if self.fetch_timeout_sec <= 0:
            raise ValueError("fetch_timeout_sec must be positive")
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.auto_load_delay_sec < 0 or self.backoff_base_sec < 0:
            raise ValueError("auto-load delays must not be negative")
        if self.backoff_max_sec < self.backoff_base_sec:
            raise ValueError("backoff_max_sec must be >= backoff_base_sec")
        if self.loyalty_min_zaps < 1:
            raise ValueError("loyalty_min_zaps must be at least 1")
        if self.top_content_limit < 1:
            raise ValueError("top_content_limit must be at least 1")
        if self.timezone.upper() != "UTC":
            try:
                ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(f"Unknown timezone: {self.timezone!r}") from e

    @property
    def tzinfo(self) -> tzinfo:
        if self.timezone.upper() == "UTC":
            return dt_timezone.utc
        return ZoneInfo(self.timezone)

    def with_overrides(self, **changes: object) -> "Settings":
        """Return a copy with the given fields replaced (CLI flags, tests)."""
        return replace(self, **changes)


def get_settings() -> Settings:
    """
    Return the current application settings.

    Returns:
        Settings built from ZAPLYTICS_* variables (and API_HOST / API_PORT),
        falling back to defaults for anything unset.
    """
    load_zaplytics_env()
    return Settings(
        relay_urls=get_relay_urls(),
        relay_limit=env_int("ZAPLYTICS_RELAY_LIMIT", DEFAULT_RELAY_LIMIT),
        fetch_timeout_sec=env_float("ZAPLYTICS_FETCH_TIMEOUT_SEC", DEFAULT_FETCH_TIMEOUT_SEC),
        failure_threshold=env_int("ZAPLYTICS_FAILURE_THRESHOLD", DEFAULT_FAILURE_THRESHOLD),
        auto_load_delay_sec=env_float("ZAPLYTICS_AUTO_LOAD_DELAY_SEC", DEFAULT_AUTO_LOAD_DELAY_SEC),
        backoff_base_sec=env_float("ZAPLYTICS_BACKOFF_BASE_SEC", DEFAULT_BACKOFF_BASE_SEC),
        backoff_max_sec=env_float("ZAPLYTICS_BACKOFF_MAX_SEC", DEFAULT_BACKOFF_MAX_SEC),
        loyalty_min_zaps=env_int("ZAPLYTICS_LOYALTY_MIN_ZAPS", DEFAULT_LOYALTY_MIN_ZAPS),
        top_content_limit=env_int("ZAPLYTICS_TOP_CONTENT_LIMIT", DEFAULT_TOP_CONTENT_LIMIT),
        timezone=(os.getenv("ZAPLYTICS_TIMEZONE") or "UTC").strip() or "UTC",
        resolve_content=env_bool("ZAPLYTICS_RESOLVE_CONTENT", True),
        discover_relay_limit=env_bool("ZAPLYTICS_DISCOVER_RELAY_LIMIT", True),
        identities=get_identities(),
        api_host=(os.getenv("API_HOST") or "0.0.0.0").strip(),
        api_port=env_int("API_PORT", 8000),
    )
