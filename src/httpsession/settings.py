"""Environment-driven configuration for HTTP sessions.

Every field defaults to the hardened value from :mod:`httpsession.policy` and
can be overridden with an ``HTTPSESSION_``-prefixed environment variable, for
example ``HTTPSESSION_TIMEOUT_SEC=60``. The resolved settings are cached per
process; call :func:`reset_settings` after changing the environment.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .policy import (
    DEFAULT_COOKIE_JAR,
    DNS_CACHE_MAX_ENTRIES,
    DNS_CACHE_TTL,
    HTTP_CONNECT_TIMEOUT,
    HTTP_TOTAL_TIMEOUT,
    KEEPALIVE_EXPIRY,
    MAX_CONNECTIONS,
    MAX_KEEPALIVE_CONNECTIONS,
    MAX_REDIRECT_HOPS,
    USER_AGENT,
)

__all__ = ["SessionSettings", "get_settings", "reset_settings"]


class SessionSettings(BaseSettings):
    """Process-wide overrides for transfer timeouts, pooling, and persistence."""

    connect_timeout_sec: float = Field(default=HTTP_CONNECT_TIMEOUT, gt=0)
    timeout_sec: float = Field(default=HTTP_TOTAL_TIMEOUT, gt=0)
    max_redirects: int = Field(default=MAX_REDIRECT_HOPS, ge=0)
    cookie_jar_path: Path = Field(default=DEFAULT_COOKIE_JAR)
    ca_bundle: Optional[Path] = Field(
        default=None, description="PEM bundle used instead of certifi's trust store"
    )
    user_agent: str = Field(default=USER_AGENT, min_length=1)
    dns_cache_ttl_sec: float = Field(default=DNS_CACHE_TTL, ge=0)
    dns_cache_max_entries: int = Field(default=DNS_CACHE_MAX_ENTRIES, ge=1)
    max_connections: int = Field(default=MAX_CONNECTIONS, ge=1)
    max_keepalive_connections: int = Field(default=MAX_KEEPALIVE_CONNECTIONS, ge=0)
    keepalive_expiry_sec: float = Field(default=KEEPALIVE_EXPIRY, ge=0)
    log_level: str = Field(default="WARNING")

    model_config = SettingsConfigDict(
        env_prefix="HTTPSESSION_", case_sensitive=False, extra="ignore"
    )

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value!r}")
        return level

    @field_validator("cookie_jar_path", "ca_bundle")
    @classmethod
    def _expand_path(cls, value: Optional[Path]) -> Optional[Path]:
        if value is None:
            return None
        return Path(value).expanduser()


@lru_cache(maxsize=1)
def get_settings() -> SessionSettings:
    """Return the cached process-wide settings."""

    return SessionSettings()


def reset_settings() -> None:
    """Drop the cached settings so the next lookup re-reads the environment."""

    get_settings.cache_clear()
