"""Visit recorder tests: inserts, counters and best-effort failure isolation."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from biolink.models import Link, LinkVisit, User
from biolink.visits import VisitorInfo, VisitRecorder, get_client_ip


async def _user_and_link(db: AsyncSession) -> tuple[User, Link]:
    user = User(username="alice")
    db.add(user)
    await db.commit()
    link = Link(user_id=user.id, title="t", short_code="abc123", original_url="https://example.com")
    db.add(link)
    await db.commit()
    return user, link


async def _refreshed(db: AsyncSession, obj):
    await db.refresh(obj)
    return obj


def test_get_client_ip_prefers_first_forwarded_hop() -> None:
    request = SimpleNamespace(
        headers={"x-forwarded-for": "203.0.113.7, 10.0.0.1"},
        client=SimpleNamespace(host="10.0.0.1"),
    )
    assert get_client_ip(request) == "203.0.113.7"


def test_get_client_ip_falls_back_to_peer() -> None:
    request = SimpleNamespace(headers={}, client=SimpleNamespace(host="192.0.2.5"))
    assert get_client_ip(request) == "192.0.2.5"


@pytest.mark.asyncio
async def test_record_inserts_visit(ctx: SimpleNamespace) -> None:
    _, link = await _user_and_link(ctx.database)

    visit = await VisitRecorder(ctx.database).record(link.id, "198.51.100.1", "curl/8", None, is_owner=True)

    assert visit.id is not None
    assert visit.visited_at is not None
    assert visit.is_owner is True


@pytest.mark.asyncio
async def test_record_link_access_updates_all_counters(ctx: SimpleNamespace) -> None:
    user, link = await _user_and_link(ctx.database)
    visitor = VisitorInfo(ip="198.51.100.1", user_agent="Mozilla/5.0", referrer="https://ref.example.com")

    await VisitRecorder(ctx.database).record_link_access(link.id, user.id, visitor)

    visits = (await ctx.database.execute(select(LinkVisit))).scalars().all()
    assert len(visits) == 1
    assert visits[0].referrer == "https://ref.example.com"
    assert (await _refreshed(ctx.database, link)).clicks == 1
    assert (await _refreshed(ctx.database, user)).visit_count == 1


@pytest.mark.asyncio
async def test_failed_visit_insert_does_not_block_counters(ctx: SimpleNamespace) -> None:
    user, link = await _user_and_link(ctx.database)
    recorder = VisitRecorder(ctx.database)
    failure = OperationalError("INSERT", {}, Exception("disk full"))

    with patch.object(recorder, "record", AsyncMock(side_effect=failure)):
        await recorder.record_link_access(link.id, user.id, VisitorInfo(ip="198.51.100.1"))

    assert (await _refreshed(ctx.database, link)).clicks == 1
    assert (await _refreshed(ctx.database, user)).visit_count == 1


@pytest.mark.asyncio
async def test_failed_click_increment_is_swallowed(ctx: SimpleNamespace) -> None:
    user, link = await _user_and_link(ctx.database)
    recorder = VisitRecorder(ctx.database)
    failure = OperationalError("UPDATE", {}, Exception("locked"))

    with patch.object(recorder, "increment_clicks", AsyncMock(side_effect=failure)):
        await recorder.record_link_access(link.id, user.id, VisitorInfo(ip="198.51.100.1"))

    visits = (await ctx.database.execute(select(LinkVisit))).scalars().all()
    assert len(visits) == 1
    assert (await _refreshed(ctx.database, user)).visit_count == 1


@pytest.mark.asyncio
async def test_record_profile_access_increments_visit_count(ctx: SimpleNamespace) -> None:
    user, _ = await _user_and_link(ctx.database)

    await VisitRecorder(ctx.database).record_profile_access(user.id)
    await VisitRecorder(ctx.database).record_profile_access(user.id)

    assert (await _refreshed(ctx.database, user)).visit_count == 2
