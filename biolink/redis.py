"""Redis client management for the stats cache.

This module provides a singleton Redis client with connection management.
Redis only ever holds derived, short-lived stats summaries; identifiers and
counters are always read from the relational store.

Flow Diagram — Redis Operations
=============================
::
    ┌─────────────┐
    │ get_redis()  │
    │ dependency  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check global │
    │ client var   │
    └──────┬──────┘
    EXISTS?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Redis   │  │ existing│
│ client  │  │ client  │
└─────────┘  └─────────┘

Functions:
    get_redis():  FastAPI dependency for the Redis client.
    close_redis():  Cleanup function for shutdown.
"""

import redis.asyncio as redis

from biolink.config import get_settings

__all__ = ["close_redis", "get_redis"]

settings = get_settings()

redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
