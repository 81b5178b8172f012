"""Username allocator and fuzzy lookup tests."""

import re
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from biolink.exceptions import InvalidIdentifierError
from biolink.models import User
from biolink.usernames import MAX_NUMERIC_SUFFIX, MAX_USERNAME_LENGTH, UsernameAllocator, sanitize_username


async def _add_users(db: AsyncSession, *usernames: str) -> list[User]:
    users = [User(username=name) for name in usernames]
    db.add_all(users)
    await db.commit()
    return users


def test_sanitize_strips_disallowed_characters() -> None:
    assert sanitize_username("Alice Smith!") == "alicesmith"
    assert sanitize_username("김 철수") == "김철수"
    assert sanitize_username("  ok_name-1  ") == "ok_name-1"


@pytest.mark.asyncio
async def test_allocate_returns_base_when_free(ctx: SimpleNamespace) -> None:
    allocator = UsernameAllocator.from_context(ctx)
    assert await allocator.allocate("Alice") == "alice"


@pytest.mark.asyncio
async def test_allocate_probes_numeric_suffixes_in_order(ctx: SimpleNamespace) -> None:
    await _add_users(ctx.database, "alice", "alice1", "alice3")
    allocator = UsernameAllocator.from_context(ctx)
    assert await allocator.allocate("alice") == "alice2"


@pytest.mark.asyncio
async def test_allocate_falls_back_to_timestamp_after_999(ctx: SimpleNamespace) -> None:
    await _add_users(ctx.database, "bob", *[f"bob{i}" for i in range(1, MAX_NUMERIC_SUFFIX + 1)])
    allocator = UsernameAllocator.from_context(ctx)

    username = await allocator.allocate("bob")

    assert re.fullmatch(r"bob_\d{6}", username)


@pytest.mark.asyncio
async def test_allocate_rejects_names_that_sanitize_to_nothing(ctx: SimpleNamespace) -> None:
    allocator = UsernameAllocator.from_context(ctx)
    with pytest.raises(InvalidIdentifierError):
        await allocator.allocate("!!! ???")


@pytest.mark.asyncio
async def test_allocate_treats_like_wildcards_literally(ctx: SimpleNamespace) -> None:
    await _add_users(ctx.database, "a_b", "axb")
    allocator = UsernameAllocator.from_context(ctx)
    assert await allocator.allocate("a_b") == "a_b1"
    assert await allocator.allocate("a%b") == "ab"


@pytest.mark.asyncio
async def test_allocate_keeps_suffixed_names_within_column_width(ctx: SimpleNamespace) -> None:
    long_name = "a" * MAX_USERNAME_LENGTH
    await _add_users(ctx.database, long_name)
    allocator = UsernameAllocator.from_context(ctx)

    username = await allocator.allocate(long_name + "overflow")

    assert len(username) == MAX_USERNAME_LENGTH
    assert username == "a" * (MAX_USERNAME_LENGTH - 1) + "1"


@pytest.mark.asyncio
async def test_allocate_timestamp_fallback_fits_column_width(ctx: SimpleNamespace) -> None:
    long_name = "b" * MAX_USERNAME_LENGTH
    numbered = [f"{long_name[: MAX_USERNAME_LENGTH - len(str(i))]}{i}" for i in range(1, MAX_NUMERIC_SUFFIX + 1)]
    await _add_users(ctx.database, long_name, *numbered)
    allocator = UsernameAllocator.from_context(ctx)

    username = await allocator.allocate(long_name)

    assert len(username) <= MAX_USERNAME_LENGTH
    assert re.fullmatch(r"b+_\d{6}", username)


@pytest.mark.asyncio
async def test_allocate_suffixes_reserved_route_names(ctx: SimpleNamespace) -> None:
    allocator = UsernameAllocator.from_context(ctx)

    assert await allocator.allocate("login") == "login1"
    assert await allocator.allocate("Static") == "static1"
    with pytest.raises(InvalidIdentifierError):
        await allocator.allocate("__vite_client")


@pytest.mark.asyncio
async def test_resolve_fuzzy_picks_highest_id(ctx: SimpleNamespace) -> None:
    users = await _add_users(ctx.database, "alice_1", "alice_22", "alice_x", "alicex_3")
    allocator = UsernameAllocator.from_context(ctx)

    match = await allocator.resolve_fuzzy("alice")

    assert match is not None
    assert match.id == users[1].id
    assert match.username == "alice_22"


@pytest.mark.asyncio
async def test_resolve_fuzzy_returns_none_without_match(ctx: SimpleNamespace) -> None:
    await _add_users(ctx.database, "alice", "alice_x")
    allocator = UsernameAllocator.from_context(ctx)
    assert await allocator.resolve_fuzzy("alice") is None


@pytest.mark.asyncio
async def test_find_by_flexible_username_prefers_exact(ctx: SimpleNamespace) -> None:
    await _add_users(ctx.database, "carol", "carol_5")
    allocator = UsernameAllocator.from_context(ctx)

    exact = await allocator.find_by_flexible_username("carol")
    fuzzy = await allocator.find_by_flexible_username("carol_")

    assert exact is not None and exact.username == "carol"
    assert fuzzy is None


@pytest.mark.asyncio
async def test_is_available_excludes_current_user(ctx: SimpleNamespace) -> None:
    (dave,) = await _add_users(ctx.database, "dave")
    allocator = UsernameAllocator.from_context(ctx)

    assert not await allocator.is_available("dave")
    assert await allocator.is_available("dave", exclude_user_id=dave.id)
    assert await allocator.is_available("erin")
