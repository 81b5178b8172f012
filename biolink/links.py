"""Link management: create, list with stats, update, delete, raw visits.

Link Creation Flow
==================
::
    ┌──────────────┐
    │ POST         │
    │ /api/links   │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ nanoid code  │◄──────────┐
    │ (6 chars)    │           │ IntegrityError
    └──────┬───────┘           │ (attempts left)
           ▼                   │
    ┌──────────────┐           │
    │ INSERT link  ├───────────┘
    └──────┬───────┘
           │ attempts exhausted ──► ConflictError("short_code") ──► 409
           ▼
    ┌──────────────┐
    │ 201 + link   │
    └──────────────┘

Key Behaviours
===============
- The unique index on ``short_code`` is the only arbiter of collisions; no
  read-before-write check is made.
- ``short_code`` is never changed by an update.
- Deleting a link leaves its LinkVisit rows in place.
- Link lists are annotated with the five-number summary from one grouped
  aggregate query, never one query per link.
"""

import time

from nanoid import generate
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from biolink.enums import RequestStatus
from biolink.exceptions import ConflictError
from biolink.metrics import DATABASE_READS_TOTAL, DATABASE_WRITES_TOTAL, LINK_CREATION_REQUESTS_TOTAL
from biolink.models import Link, LinkVisit
from biolink.schemas import LinkCreate, LinkResponse, LinkUpdate, LinkWithStats, VisitStats
from biolink.stats import StatisticsAggregator

__all__ = ["LinkService", "MAX_SHORT_CODE_ATTEMPTS"]

MAX_SHORT_CODE_ATTEMPTS = 5
DEFAULT_VISIT_PAGE_SIZE = 100


class LinkService:
    """Service layer for link CRUD and link-level analytics.

    Example:
        >>> service = LinkService.from_context(ctx)
        >>> link = await service.create_link(LinkCreate(title="Blog", original_url="https://a.b", user_id=1))
        >>> link.short_code
        'x3k9qa'
    """

    def __init__(self, ctx: "RequestContext"):
        self._db = ctx.database
        self._logger = ctx.logger
        self._settings = ctx.settings
        self._stats = StatisticsAggregator.from_context(ctx)

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "LinkService":
        return cls(ctx)

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create_link(self, payload: LinkCreate) -> Link:
        """Insert a link under a freshly generated short code.

        Raises:
            ConflictError: If every generated code collided with an existing one.
        """
        start_time = time.perf_counter()
        self._logger.info(f"Creating link for user {payload.user_id}: {payload.original_url}")

        for attempt in range(1, MAX_SHORT_CODE_ATTEMPTS + 1):
            short_code = self._generate_short_code()
            link = Link(
                user_id=payload.user_id,
                title=payload.title,
                short_code=short_code,
                original_url=payload.original_url,
                style=payload.style.value,
                description=payload.description,
                image_url=payload.image_url,
            )
            self._db.add(link)
            try:
                await self._db.commit()
            except IntegrityError:
                await self._db.rollback()
                self._logger.warning(f"Short code collision on attempt {attempt}: {short_code}")
                continue
            except SQLAlchemyError as exc:
                await self._db.rollback()
                LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
                self._logger.error(f"Link creation error: {exc}")
                raise

            DATABASE_WRITES_TOTAL.inc()
            await self._db.refresh(link)
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
            self._logger.info(f"Link created: {short_code} in {time.perf_counter() - start_time:.3f}s")
            return link

        LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.CONFLICT).inc()
        raise ConflictError("short_code")

    async def get_link(self, link_id: int) -> Link | None:
        result = await self._db.execute(select(Link).where(Link.id == link_id))
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none()

    async def list_links(self, user_id: int, active_only: bool = False) -> list[LinkWithStats]:
        stmt = select(Link).where(Link.user_id == user_id)
        if active_only:
            stmt = stmt.where(Link.is_active.is_(True))
        result = await self._db.execute(stmt.order_by(Link.id))
        DATABASE_READS_TOTAL.inc()
        links = list(result.scalars())

        summaries = await self._stats.stats_by_link([link.id for link in links])
        return [self.with_stats(link, summaries[link.id]) for link in links]

    async def update_link(self, link_id: int, payload: LinkUpdate) -> Link | None:
        link = await self.get_link(link_id)
        if link is None:
            return None

        changes = payload.model_dump(exclude_unset=True)
        if changes.get("style") is not None:
            changes["style"] = changes["style"].value
        for field, value in changes.items():
            if value is None and field in ("title", "original_url", "style", "is_active"):
                continue
            setattr(link, field, value)

        await self._db.commit()
        DATABASE_WRITES_TOTAL.inc()
        await self._db.refresh(link)
        self._logger.info(f"Link {link_id} updated: {sorted(changes)}")
        return link

    async def delete_link(self, link_id: int) -> bool:
        link = await self.get_link(link_id)
        if link is None:
            return False
        await self._db.delete(link)
        await self._db.commit()
        DATABASE_WRITES_TOTAL.inc()
        self._logger.info(f"Link {link_id} deleted ({link.short_code}); visits kept")
        return True

    async def list_visits(self, link_id: int, limit: int = DEFAULT_VISIT_PAGE_SIZE) -> list[LinkVisit]:
        result = await self._db.execute(
            select(LinkVisit)
            .where(LinkVisit.link_id == link_id)
            .order_by(LinkVisit.visited_at.desc(), LinkVisit.id.desc())
            .limit(limit)
        )
        DATABASE_READS_TOTAL.inc()
        return list(result.scalars())

    async def link_stats(self, link_id: int) -> VisitStats:
        return await self._stats.cached_stats_for_link(link_id)

    # ========================================================================
    # SERIALIZATION
    # ========================================================================

    def short_url(self, short_code: str) -> str:
        return f"{self._settings.BASE_URL.rstrip('/')}/l/{short_code}"

    def to_response(self, link: Link) -> LinkResponse:
        return LinkResponse(
            id=link.id,
            user_id=link.user_id,
            title=link.title,
            short_code=link.short_code,
            short_url=self.short_url(link.short_code),
            original_url=link.original_url,
            style=link.style,
            description=link.description,
            image_url=link.image_url,
            clicks=link.clicks,
            is_active=link.is_active,
            created_at=link.created_at,
        )

    def with_stats(self, link: Link, stats: VisitStats) -> LinkWithStats:
        return LinkWithStats(**self.to_response(link).model_dump(), **stats.model_dump())

    def _generate_short_code(self) -> str:
        return generate(self._settings.SHORT_CODE_ALPHABET, self._settings.SHORT_CODE_LENGTH)
