"""Statistics aggregator and stats cache tests."""

import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession

from biolink.models import Link, LinkVisit, User
from biolink.schemas import VisitStats
from biolink.stats import StatisticsAggregator, StatsCache, period_boundaries

NOW = datetime.datetime(2026, 10, 19, 15, 0, tzinfo=datetime.timezone.utc)
# DST ended in New York on 2026-11-01, so that month began at UTC-4 and this day at UTC-5.
DST_NOW = datetime.datetime(2026, 11, 15, 12, tzinfo=datetime.timezone.utc)


async def _link_with_visits(db: AsyncSession, username: str = "alice") -> Link:
    """A link with 10 visits: 7 in the last hour, 3 earlier this month, 3 by the owner."""
    user = User(username=username)
    db.add(user)
    await db.commit()
    link = Link(user_id=user.id, title="t", short_code=f"{username[:3]}001", original_url="https://example.com")
    db.add(link)
    await db.commit()

    recent = NOW - datetime.timedelta(hours=1)
    earlier = datetime.datetime(2026, 10, 5, 12, 0, tzinfo=datetime.timezone.utc)
    for i in range(7):
        db.add(LinkVisit(link_id=link.id, visitor_ip="10.0.0.1", is_owner=i < 3, visited_at=recent))
    for _ in range(3):
        db.add(LinkVisit(link_id=link.id, visitor_ip="10.0.0.2", visited_at=earlier))
    await db.commit()
    return link


def test_period_boundaries_in_utc() -> None:
    day_start, month_start = period_boundaries(NOW, "UTC")
    assert day_start == datetime.datetime(2026, 10, 19, tzinfo=datetime.timezone.utc)
    assert month_start == datetime.datetime(2026, 10, 1, tzinfo=datetime.timezone.utc)


def test_period_boundaries_follow_local_zone() -> None:
    # 15:00 UTC is 00:00 on the 20th in Seoul
    day_start, month_start = period_boundaries(NOW, "Asia/Seoul")
    assert day_start == datetime.datetime(2026, 10, 19, 15, tzinfo=datetime.timezone.utc)
    assert month_start == datetime.datetime(2026, 9, 30, 15, tzinfo=datetime.timezone.utc)


def test_period_boundaries_across_dst_change() -> None:
    day_start, month_start = period_boundaries(DST_NOW, "America/New_York")
    assert day_start == datetime.datetime(2026, 11, 15, 5, tzinfo=datetime.timezone.utc)
    assert month_start == datetime.datetime(2026, 11, 1, 4, tzinfo=datetime.timezone.utc)


def test_period_boundaries_use_server_zone_rules(monkeypatch) -> None:
    monkeypatch.setenv("TZ", "America/New_York")

    day_start, month_start = period_boundaries(DST_NOW)

    assert day_start == datetime.datetime(2026, 11, 15, 5, tzinfo=datetime.timezone.utc)
    assert month_start == datetime.datetime(2026, 11, 1, 4, tzinfo=datetime.timezone.utc)


@pytest.mark.asyncio
async def test_stats_for_link(ctx: SimpleNamespace) -> None:
    link = await _link_with_visits(ctx.database)

    stats = await StatisticsAggregator.from_context(ctx).stats_for_link(link.id, now=NOW)

    assert stats == VisitStats(
        total_visits=10, daily_visits=7, monthly_visits=10, owner_visits=3, external_visits=7
    )


@pytest.mark.asyncio
async def test_stats_for_user_sums_links(ctx: SimpleNamespace) -> None:
    link = await _link_with_visits(ctx.database)
    second = Link(user_id=link.user_id, title="t2", short_code="ali002", original_url="https://example.org")
    ctx.database.add(second)
    await ctx.database.commit()
    ctx.database.add(LinkVisit(link_id=second.id, visitor_ip="10.0.0.3", visited_at=NOW))
    await ctx.database.commit()

    stats = await StatisticsAggregator.from_context(ctx).stats_for_user(link.user_id, now=NOW)

    assert stats.total_visits == 11
    assert stats.daily_visits == 8
    assert stats.external_visits == 8


@pytest.mark.asyncio
async def test_stats_for_user_without_links_is_zero(ctx: SimpleNamespace) -> None:
    stats = await StatisticsAggregator.from_context(ctx).stats_for_user(999, now=NOW)
    assert stats == VisitStats()


@pytest.mark.asyncio
async def test_stats_by_link_fills_missing_links_with_zeros(ctx: SimpleNamespace) -> None:
    link = await _link_with_visits(ctx.database)

    summaries = await StatisticsAggregator.from_context(ctx).stats_by_link([link.id, 12345], now=NOW)

    assert summaries[link.id].total_visits == 10
    assert summaries[12345] == VisitStats()


@pytest.mark.asyncio
async def test_cached_stats_served_from_redis(ctx: SimpleNamespace) -> None:
    cached = VisitStats(total_visits=42)
    ctx.cache.get = AsyncMock(return_value=cached.model_dump_json())

    stats = await StatisticsAggregator.from_context(ctx).cached_stats_for_link(1)

    assert stats.total_visits == 42
    ctx.cache.set.assert_not_called()


@pytest.mark.asyncio
async def test_cache_miss_computes_and_stores(ctx: SimpleNamespace) -> None:
    link = await _link_with_visits(ctx.database)

    stats = await StatisticsAggregator.from_context(ctx).cached_stats_for_link(link.id)

    assert stats.total_visits == 10
    ctx.cache.set.assert_awaited_once()
    key, _payload = ctx.cache.set.await_args.args
    assert key == f"stats:link:{link.id}"
    assert ctx.cache.set.await_args.kwargs["ex"] == 30


@pytest.mark.asyncio
async def test_cache_errors_fall_back_to_store(ctx: SimpleNamespace) -> None:
    link = await _link_with_visits(ctx.database)
    ctx.cache.get = AsyncMock(side_effect=RedisConnectionError("down"))
    ctx.cache.set = AsyncMock(side_effect=RedisConnectionError("down"))

    stats = await StatisticsAggregator.from_context(ctx).cached_stats_for_link(link.id)

    assert stats.total_visits == 10


@pytest.mark.asyncio
async def test_zero_ttl_disables_cache(mock_redis: AsyncMock) -> None:
    cache = StatsCache(mock_redis, ttl_seconds=0)

    assert await cache.get("stats:link:1") is None
    await cache.set("stats:link:1", VisitStats())

    mock_redis.get.assert_not_called()
    mock_redis.set.assert_not_called()
