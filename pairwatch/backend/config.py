"""
backend/config.py

Application configuration via Pydantic Settings.
All values can be overridden with environment variables or a .env file.

One Settings instance is built in main() and handed to each component's
constructor; nothing reads configuration from module state.

Quick start — create a .env file in your project root:
    MODE=capture
    INTERFACE=eth0
    SESSION_API_URL=http://arkime.local:8005
    DB_PATH=data/pairwatch.db
"""

from __future__ import annotations

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # "capture": live sniffer → pair table → cache → store
    # "sessions": external session API → correlation → store
    MODE: Literal["capture", "sessions"] = "capture"

    # Capture
    INTERFACE: str = "eth0"
    BPF_FILTER: str = "ip or ip6"
    PAIR_RETENTION_SECONDS: int = 300
    EVICTION_INTERVAL_SECONDS: float = 60.0

    # Periodic sync
    STAGING_INTERVAL_SECONDS: float = 10.0
    FLUSH_INTERVAL_SECONDS: float = 60.0
    CORRELATION_INTERVAL_SECONDS: float = 10.0
    STAGED_STATS_TTL_SECONDS: int = 7 * 24 * 3600

    # Supervision
    RESTART_DELAY_SECONDS: float = 1.0
    MAX_RESTARTS_PER_MINUTE: int = 5
    SHUTDOWN_TIMEOUT_SECONDS: float = 5.0

    # Resolution
    DNS_LOOKUP_TIMEOUT_SECONDS: float = 2.0
    DNS_LOOKUP_WORKERS: int = 16

    # Correlation
    WATERMARK_GRACE_SECONDS: int = 60
    DEFAULT_CONNECTIVITY: str = "wifi"

    # External session API (Arkime-compatible)
    SESSION_API_URL: str = "http://localhost:8005"
    SESSION_API_USER: str = ""
    SESSION_API_PASSWORD: str = ""
    SESSION_API_TIMEOUT_SECONDS: float = 10.0
    SESSION_API_PAGE_SIZE: int = 500

    # Storage
    DB_PATH: str = "data/pairwatch.db"
    CACHE_DB_PATH: str = "data/cache.db"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator(
        "EVICTION_INTERVAL_SECONDS",
        "STAGING_INTERVAL_SECONDS",
        "FLUSH_INTERVAL_SECONDS",
        "CORRELATION_INTERVAL_SECONDS",
        "DNS_LOOKUP_TIMEOUT_SECONDS",
        "PAIR_RETENTION_SECONDS",
        "DNS_LOOKUP_WORKERS",
    )
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalise_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v
