"""Visit statistics: total, daily, monthly and owner/external splits.

The aggregator is read-only. Every summary is one ``SELECT`` with filtered
counts over ``link_visits``; nothing is cached in process.

Aggregate Query
================
::
    SELECT count(*)                                         AS total,
           count(*) FILTER (WHERE visited_at >= :day_start)   AS daily,
           count(*) FILTER (WHERE visited_at >= :month_start) AS monthly,
           count(*) FILTER (WHERE is_owner)                  AS owner
      FROM link_visits
     WHERE link_id = :id            -- or link_id IN (:ids) for a user

    external = total - owner

Period Boundaries
==================
"Today" and "this month" are computed on the local clock (``STATS_TIMEZONE``
when set, else the server's zone) and converted to UTC before querying, so a
visit at 23:30 local time on the last day of the month never lands in the
next month's bucket.

Stats Cache
============
::
    GET /api/links/{id}/stats ──► Redis GET stats:link:{id}
                                     │ hit ──► return
                                     │ miss / error
                                     ▼
                                 aggregate query ──► Redis SET ex=TTL

- Only the single-link and per-user summaries are cached; link lists always
  hit the store.
- A Redis failure is logged, counted and bypassed; it never fails the request.
"""

import datetime
import logging
import os
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import redis.asyncio as redis
from redis.exceptions import RedisError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from biolink.config import Settings, get_settings
from biolink.enums import CacheStatus
from biolink.metrics import DATABASE_READS_TOTAL, STATS_CACHE_LOOKUPS_TOTAL
from biolink.models import Link, LinkVisit
from biolink.schemas import VisitStats

__all__ = ["StatisticsAggregator", "StatsCache", "period_boundaries"]

_SYSTEM_ZONE_FILE = Path("/etc/localtime")


@lru_cache
def _system_zone(tz_env: str | None) -> datetime.tzinfo:
    """Resolve the server's zone to a tz database entry, so DST rules apply.

    Falls back to the current fixed offset only when no zone data is found.
    """
    key = (tz_env or "").lstrip(":")
    try:
        if key.startswith("/"):
            with open(key, "rb") as fh:
                return ZoneInfo.from_file(fh, key=key)
        if key:
            return ZoneInfo(key)
        if _SYSTEM_ZONE_FILE.is_file():
            with _SYSTEM_ZONE_FILE.open("rb") as fh:
                return ZoneInfo.from_file(fh, key="localtime")
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        logging.getLogger("biolink.stats").warning(f"System timezone {key or _SYSTEM_ZONE_FILE} unusable: {exc}")
    return datetime.datetime.now().astimezone().tzinfo


def _local_zone(tz_name: str | None) -> datetime.tzinfo:
    if tz_name:
        return ZoneInfo(tz_name)
    return _system_zone(os.environ.get("TZ"))


def period_boundaries(
    now: datetime.datetime | None = None, tz_name: str | None = None
) -> tuple[datetime.datetime, datetime.datetime]:
    """Return (start of today, start of this month) as aware UTC datetimes."""
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)

    local_now = now.astimezone(_local_zone(tz_name))
    day_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    month_start = day_start.replace(day=1)
    return (
        day_start.astimezone(datetime.timezone.utc),
        month_start.astimezone(datetime.timezone.utc),
    )


class StatsCache:
    """Short-lived Redis cache for five-number summaries."""

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int,
        key_prefix: str = "stats",
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self._client = client
        self._ttl = ttl_seconds
        self._prefix = key_prefix
        self._logger = logger or logging.getLogger("biolink.stats")

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    def key(self, scope: str, target_id: int) -> str:
        return f"{self._prefix}:{scope}:{target_id}"

    async def get(self, key: str) -> VisitStats | None:
        if not self.enabled:
            return None
        try:
            payload = await self._client.get(key)
            if payload is None:
                STATS_CACHE_LOOKUPS_TOTAL.labels(result=CacheStatus.MISS).inc()
                return None
            STATS_CACHE_LOOKUPS_TOTAL.labels(result=CacheStatus.HIT).inc()
            return VisitStats.model_validate_json(payload)
        except (RedisError, OSError, ValueError) as exc:
            STATS_CACHE_LOOKUPS_TOTAL.labels(result=CacheStatus.ERROR).inc()
            self._logger.warning(f"Stats cache read failed for {key}: {exc}")
            return None

    async def set(self, key: str, stats: VisitStats) -> None:
        if not self.enabled:
            return
        try:
            await self._client.set(key, stats.model_dump_json(), ex=self._ttl)
        except (RedisError, OSError) as exc:
            self._logger.warning(f"Stats cache write failed for {key}: {exc}")


class StatisticsAggregator:
    """Computes visit summaries per link, per user, and per link in bulk."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        cache: StatsCache | None = None,
    ):
        self._db = db
        self._settings = settings or get_settings()
        self._logger = logger or logging.getLogger("biolink.stats")
        self._cache = cache

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "StatisticsAggregator":
        settings = ctx.settings
        cache = StatsCache(
            ctx.cache,
            settings.STATS_CACHE_TTL_SECONDS,
            settings.STATS_CACHE_KEY_PREFIX,
            ctx.logger,
        )
        return cls(ctx.database, settings, ctx.logger, cache)

    async def stats_for_link(self, link_id: int, now: datetime.datetime | None = None) -> VisitStats:
        return await self._aggregate(LinkVisit.link_id == link_id, now)

    async def stats_for_user(self, user_id: int, now: datetime.datetime | None = None) -> VisitStats:
        link_ids = await self._link_ids_for_user(user_id)
        if not link_ids:
            return VisitStats()
        return await self._aggregate(LinkVisit.link_id.in_(link_ids), now)

    async def stats_by_link(
        self, link_ids: list[int], now: datetime.datetime | None = None
    ) -> dict[int, VisitStats]:
        """Summaries for many links in one grouped query; links without visits get zeros."""
        if not link_ids:
            return {}

        day_start, month_start = period_boundaries(now, self._settings.STATS_TIMEZONE)
        stmt = (
            select(LinkVisit.link_id, *self._count_columns(day_start, month_start))
            .where(LinkVisit.link_id.in_(link_ids))
            .group_by(LinkVisit.link_id)
        )
        result = await self._db.execute(stmt)
        DATABASE_READS_TOTAL.inc()

        summaries = {link_id: VisitStats() for link_id in link_ids}
        for link_id, total, daily, monthly, owner in result.all():
            summaries[link_id] = self._to_stats(total, daily, monthly, owner)
        return summaries

    async def cached_stats_for_link(self, link_id: int) -> VisitStats:
        return await self._cached("link", link_id, self.stats_for_link)

    async def cached_stats_for_user(self, user_id: int) -> VisitStats:
        return await self._cached("user", user_id, self.stats_for_user)

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _cached(self, scope: str, target_id: int, compute) -> VisitStats:
        if self._cache is None:
            return await compute(target_id)

        key = self._cache.key(scope, target_id)
        stats = await self._cache.get(key)
        if stats is not None:
            return stats

        stats = await compute(target_id)
        await self._cache.set(key, stats)
        return stats

    async def _link_ids_for_user(self, user_id: int) -> list[int]:
        result = await self._db.execute(select(Link.id).where(Link.user_id == user_id))
        DATABASE_READS_TOTAL.inc()
        return list(result.scalars())

    async def _aggregate(self, condition, now: datetime.datetime | None) -> VisitStats:
        day_start, month_start = period_boundaries(now, self._settings.STATS_TIMEZONE)
        stmt = select(*self._count_columns(day_start, month_start)).where(condition)
        result = await self._db.execute(stmt)
        DATABASE_READS_TOTAL.inc()
        total, daily, monthly, owner = result.one()
        return self._to_stats(total, daily, monthly, owner)

    @staticmethod
    def _count_columns(day_start: datetime.datetime, month_start: datetime.datetime) -> list:
        return [
            func.count(LinkVisit.id),
            func.count(LinkVisit.id).filter(LinkVisit.visited_at >= day_start),
            func.count(LinkVisit.id).filter(LinkVisit.visited_at >= month_start),
            func.count(LinkVisit.id).filter(LinkVisit.is_owner.is_(True)),
        ]

    @staticmethod
    def _to_stats(total: int | None, daily: int | None, monthly: int | None, owner: int | None) -> VisitStats:
        total = total or 0
        owner = owner or 0
        return VisitStats(
            total_visits=total,
            daily_visits=daily or 0,
            monthly_visits=monthly or 0,
            owner_visits=owner,
            external_visits=total - owner,
        )
