"""Resolution chain ordering and settings-slug tie-break tests."""

import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from biolink.enums import TargetSource
from biolink.models import Link, SettingsSlug, User, UserSettings
from biolink.resolver import ResolutionChain


async def _user(db: AsyncSession, username: str, custom_url: str | None = None) -> User:
    user = User(username=username, custom_url=custom_url)
    db.add(user)
    await db.commit()
    return user


async def _link(db: AsyncSession, user: User, short_code: str, url: str) -> Link:
    link = Link(user_id=user.id, title="t", short_code=short_code, original_url=url)
    db.add(link)
    await db.commit()
    return link


async def _slug(db: AsyncSession, user: User, title: str, url: str, slug: str, updated_at: datetime.datetime) -> None:
    db.add(UserSettings(user_id=user.id, link_title=title, link_url=url))
    db.add(SettingsSlug(user_id=user.id, slug=slug, updated_at=updated_at))
    await db.commit()


@pytest.mark.asyncio
async def test_short_code_wins_over_username(ctx: SimpleNamespace) -> None:
    owner = await _user(ctx.database, "owner")
    await _user(ctx.database, "abc")
    await _link(ctx.database, owner, "abc", "https://example.com/x")

    target = await ResolutionChain.from_context(ctx).resolve("abc")

    assert target is not None
    assert target.source is TargetSource.LINK
    assert target.destination_url == "https://example.com/x"


@pytest.mark.asyncio
async def test_custom_url_wins_over_username(ctx: SimpleNamespace) -> None:
    await _user(ctx.database, "vanity")
    await _user(ctx.database, "bob", custom_url="vanity")

    target = await ResolutionChain.from_context(ctx).resolve("vanity")

    assert target is not None
    assert target.source is TargetSource.PROFILE
    assert target.user.username == "bob"
    assert target.destination_url == "/users/bob"


@pytest.mark.asyncio
async def test_username_resolves_to_profile(ctx: SimpleNamespace) -> None:
    await _user(ctx.database, "carol")

    target = await ResolutionChain.from_context(ctx).resolve("carol")

    assert target is not None
    assert target.source is TargetSource.PROFILE
    assert target.destination_url == "/users/carol"


@pytest.mark.asyncio
async def test_settings_slug_resolves_to_link_url(ctx: SimpleNamespace) -> None:
    user = await _user(ctx.database, "dave")
    now = datetime.datetime.now(datetime.timezone.utc)
    await _slug(ctx.database, user, "My Shop", "https://shop.example.com", "my-shop", now)

    target = await ResolutionChain.from_context(ctx).resolve("my-shop")

    assert target is not None
    assert target.source is TargetSource.SETTINGS_SLUG
    assert target.destination_url == "https://shop.example.com"
    assert target.user.id == user.id


@pytest.mark.asyncio
async def test_settings_slug_collision_prefers_most_recent(ctx: SimpleNamespace) -> None:
    older = await _user(ctx.database, "older")
    newer = await _user(ctx.database, "newer")
    now = datetime.datetime.now(datetime.timezone.utc)
    await _slug(ctx.database, newer, "Promo", "https://new.example.com", "promo", now)
    await _slug(ctx.database, older, "Promo", "https://old.example.com", "promo", now - datetime.timedelta(days=1))

    target = await ResolutionChain.from_context(ctx).resolve("promo")

    assert target is not None
    assert target.destination_url == "https://new.example.com"


@pytest.mark.asyncio
async def test_unknown_identifier_resolves_to_none(ctx: SimpleNamespace) -> None:
    await _user(ctx.database, "erin")
    assert await ResolutionChain.from_context(ctx).resolve("nobody") is None


@pytest.mark.asyncio
async def test_resolve_short_code_skips_profile_steps(ctx: SimpleNamespace) -> None:
    await _user(ctx.database, "frank")
    chain = ResolutionChain.from_context(ctx)
    assert await chain.resolve_short_code("frank") is None
