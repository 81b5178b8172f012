"""Resolution chain: map a normalized identifier to a redirect target.

Resolution Order
================
::
    identifier
        │
        ▼
    ┌──────────────────────┐  hit   ┌──────────────────────────────┐
    │ 1. links.short_code  ├───────►│ source=link                  │
    └─────────┬────────────┘        │ destination=link.original_url│
              │ miss                └──────────────────────────────┘
              ▼
    ┌──────────────────────┐  hit   ┌──────────────────────────────┐
    │ 2. users.custom_url  ├───────►│ source=profile               │
    └─────────┬────────────┘        │ destination=/users/<username>│
              │ miss                └──────────────────────────────┘
              ▼
    ┌──────────────────────┐  hit
    │ 3. users.username    ├───────► source=profile
    └─────────┬────────────┘
              │ miss
              ▼
    ┌──────────────────────┐  hit   ┌──────────────────────────────┐
    │ 4. settings_slugs    ├───────►│ source=settings-slug         │
    │    newest first      │        │ destination=settings.link_url│
    └─────────┬────────────┘        └──────────────────────────────┘
              │ miss
              ▼
            None

Key Behaviours
===============
- Steps run strictly in order, one indexed lookup each; the first hit wins.
- Short codes are checked first because they are globally unique.
- A miss is ``None``, never an exception, and the chain never writes.
- Store errors propagate to the caller.
- Two users whose link titles slugify to the same value are disambiguated by
  the projection's ``updated_at`` (newest wins), then by the highest user id.
"""

import logging
import time
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from biolink.config import Settings, get_settings
from biolink.enums import TargetSource
from biolink.metrics import DATABASE_READS_TOTAL, RESOLUTION_DURATION, RESOLUTION_REQUESTS_TOTAL
from biolink.models import Link, SettingsSlug, User, UserSettings

__all__ = ["ResolvedTarget", "ResolutionChain"]


@dataclass(frozen=True)
class ResolvedTarget:
    """Where an identifier points and which lookup produced it.

    Attributes:
        source: The resolution step that matched.
        destination_url: Location for the 302.
        link: The matched Link, for ``source=link``.
        user: The profile owner, for ``profile`` and ``settings-slug``.
    """

    source: TargetSource
    destination_url: str
    link: Link | None = None
    user: User | None = None


class ResolutionChain:
    """Ordered, first-match-wins identifier lookup."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self._db = db
        self._settings = settings or get_settings()
        self._logger = logger or logging.getLogger("biolink.resolver")

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "ResolutionChain":
        return cls(ctx.database, ctx.settings, ctx.logger)

    async def resolve(self, identifier: str) -> ResolvedTarget | None:
        start_time = time.perf_counter()
        try:
            target = await self._by_short_code(identifier)
            if target is None:
                target = await self._by_custom_url(identifier)
            if target is None:
                target = await self._by_username(identifier)
            if target is None:
                target = await self._by_settings_slug(identifier)
        finally:
            RESOLUTION_DURATION.observe(time.perf_counter() - start_time)

        self._record_outcome(identifier, target)
        return target

    async def resolve_short_code(self, short_code: str) -> ResolvedTarget | None:
        """Short-code step only; used by the explicit ``/l/`` and ``/link/`` routes."""
        target = await self._by_short_code(short_code)
        self._record_outcome(short_code, target)
        return target

    def profile_url(self, user: User) -> str:
        return f"{self._settings.PROFILE_PATH_PREFIX.rstrip('/')}/{user.username}"

    # ========================================================================
    # RESOLUTION STEPS
    # ========================================================================

    async def _by_short_code(self, identifier: str) -> ResolvedTarget | None:
        result = await self._db.execute(select(Link).where(Link.short_code == identifier))
        DATABASE_READS_TOTAL.inc()
        link = result.scalar_one_or_none()
        if link is None:
            return None
        return ResolvedTarget(source=TargetSource.LINK, destination_url=link.original_url, link=link)

    async def _by_custom_url(self, identifier: str) -> ResolvedTarget | None:
        result = await self._db.execute(select(User).where(User.custom_url == identifier))
        DATABASE_READS_TOTAL.inc()
        user = result.scalar_one_or_none()
        if user is None:
            return None
        return ResolvedTarget(source=TargetSource.PROFILE, destination_url=self.profile_url(user), user=user)

    async def _by_username(self, identifier: str) -> ResolvedTarget | None:
        result = await self._db.execute(select(User).where(User.username == identifier))
        DATABASE_READS_TOTAL.inc()
        user = result.scalar_one_or_none()
        if user is None:
            return None
        return ResolvedTarget(source=TargetSource.PROFILE, destination_url=self.profile_url(user), user=user)

    async def _by_settings_slug(self, identifier: str) -> ResolvedTarget | None:
        # Slugs are stored lowercased, so an identifier with capitals never matches.
        stmt = (
            select(User, UserSettings.link_url)
            .join(SettingsSlug, SettingsSlug.user_id == User.id)
            .join(UserSettings, UserSettings.user_id == User.id)
            .where(SettingsSlug.slug == identifier)
            .order_by(SettingsSlug.updated_at.desc(), SettingsSlug.user_id.desc())
            .limit(1)
        )
        result = await self._db.execute(stmt)
        DATABASE_READS_TOTAL.inc()
        row = result.first()
        if row is None or not row.link_url:
            return None
        user, link_url = row
        return ResolvedTarget(source=TargetSource.SETTINGS_SLUG, destination_url=link_url, user=user)

    def _record_outcome(self, identifier: str, target: ResolvedTarget | None) -> None:
        if target is None:
            RESOLUTION_REQUESTS_TOTAL.labels(outcome="not_found", source="none").inc()
            self._logger.debug(f"No target for identifier: {identifier}")
            return
        RESOLUTION_REQUESTS_TOTAL.labels(outcome="found", source=target.source.value).inc()
        self._logger.debug(f"Resolved {identifier} via {target.source.value} -> {target.destination_url}")
