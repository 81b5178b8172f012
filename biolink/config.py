"""Configuration management for the link-in-bio resolution service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from biolink.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3 — Access values**::
    ttl = settings.STATS_CACHE_TTL_SECONDS
    prefix = settings.PROFILE_PATH_PREFIX

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- STATS_CACHE_TTL_SECONDS=0 turns the Redis stats cache off.
- STATS_TIMEZONE unset means "the server's local clock" for daily/monthly windows.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "biolink"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://biolink:biolink@db:5432/biolink"

    # Redis (stats cache only)
    REDIS_URL: str = "redis://redis:6379/0"

    # Short links
    SHORT_CODE_LENGTH: int = 6
    SHORT_CODE_ALPHABET: str = "abcdefghijklmnopqrstuvwxyz0123456789"

    # Statistics
    STATS_CACHE_TTL_SECONDS: int = 30
    STATS_CACHE_KEY_PREFIX: str = "stats"
    STATS_TIMEZONE: str | None = None

    # Where the app router renders profiles and unmatched routes
    PROFILE_PATH_PREFIX: str = "/users"
    FRONTEND_INDEX_FILE: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
