"""Visit recording: one LinkVisit row per resolved access plus counter bumps.

Write Flow — link access
========================
::
    302 sent to client
           │
           ▼  (BackgroundTask, own session)
    ┌──────────────────┐   fail ─► log + biolink_visit_record_failures_total{step="visit"}
    │ INSERT link_visit │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐   fail ─► log + ...{step="clicks"}
    │ clicks += 1      │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐   fail ─► log + ...{step="visit_count"}
    │ visit_count += 1 │
    └──────────────────┘

Key Behaviours
===============
- ``record`` is a plain insert and propagates store errors.
- ``record_link_access`` runs three independent commits; a failure in one is
  rolled back, logged and counted, and the remaining writes still run.
- Counter updates are single ``UPDATE ... SET x = x + 1`` statements, so
  concurrent visits never lose increments.
- LinkVisit rows are the source of truth; ``clicks`` and ``visit_count`` are
  best-effort denormalized counters that may drift below it.
"""

import logging
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from biolink.metrics import (
    DATABASE_WRITES_TOTAL,
    PROFILE_VISITS_TOTAL,
    VISIT_RECORD_FAILURES_TOTAL,
    VISITS_RECORDED_TOTAL,
)
from biolink.models import Link, LinkVisit, User

__all__ = [
    "VisitorInfo",
    "VisitRecorder",
    "get_client_ip",
    "record_link_access_task",
    "record_profile_access_task",
]

logger = logging.getLogger("biolink.visits")

UNKNOWN_IP = "unknown"


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # First hop is the original client
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return UNKNOWN_IP


@dataclass(frozen=True)
class VisitorInfo:
    """Request attributes captured with every visit."""

    ip: str = UNKNOWN_IP
    user_agent: str | None = None
    referrer: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> "VisitorInfo":
        return cls(
            ip=get_client_ip(request)[:45],
            user_agent=(request.headers.get("user-agent") or None),
            referrer=(request.headers.get("referer") or None),
        )


def _clip(value: str | None, size: int = 512) -> str | None:
    return value[:size] if value else value


class VisitRecorder:
    """Persists visits and bumps the denormalized counters."""

    def __init__(self, db: AsyncSession, log: logging.Logger | logging.LoggerAdapter | None = None):
        self._db = db
        self._logger = log or logger

    async def record(
        self,
        link_id: int,
        visitor_ip: str,
        user_agent: str | None = None,
        referrer: str | None = None,
        is_owner: bool = False,
    ) -> LinkVisit:
        """Insert one visit row.

        Raises:
            SQLAlchemyError: When the store rejects or cannot take the write.
        """
        visit = LinkVisit(
            link_id=link_id,
            visitor_ip=visitor_ip or UNKNOWN_IP,
            user_agent=_clip(user_agent),
            referrer=_clip(referrer),
            is_owner=is_owner,
        )
        self._db.add(visit)
        await self._db.commit()
        DATABASE_WRITES_TOTAL.inc()
        VISITS_RECORDED_TOTAL.inc()
        return visit

    async def increment_clicks(self, link_id: int) -> None:
        await self._db.execute(update(Link).where(Link.id == link_id).values(clicks=Link.clicks + 1))
        await self._db.commit()
        DATABASE_WRITES_TOTAL.inc()

    async def increment_visit_count(self, user_id: int) -> None:
        await self._db.execute(
            update(User).where(User.id == user_id).values(visit_count=User.visit_count + 1)
        )
        await self._db.commit()
        DATABASE_WRITES_TOTAL.inc()

    async def record_link_access(
        self,
        link_id: int,
        owner_id: int,
        visitor: VisitorInfo,
        is_owner: bool = False,
    ) -> None:
        """Run the three link-access writes, each on its own commit."""
        await self._best_effort(
            "visit",
            link_id,
            self.record(link_id, visitor.ip, visitor.user_agent, visitor.referrer, is_owner),
        )
        await self._best_effort("clicks", link_id, self.increment_clicks(link_id))
        await self._best_effort("visit_count", owner_id, self.increment_visit_count(owner_id))

    async def record_profile_access(self, user_id: int) -> None:
        await self._best_effort("visit_count", user_id, self.increment_visit_count(user_id))
        PROFILE_VISITS_TOTAL.inc()

    async def _best_effort(self, step: str, target_id: int, write) -> None:
        try:
            await write
        except (SQLAlchemyError, OSError) as exc:
            await self._db.rollback()
            VISIT_RECORD_FAILURES_TOTAL.labels(step=step).inc()
            self._logger.error(f"Visit recording step '{step}' failed for id={target_id}: {exc}")


# ============================================================================
# BACKGROUND TASK ENTRY POINTS
# ============================================================================


async def record_link_access_task(
    session_factory: async_sessionmaker[AsyncSession],
    link_id: int,
    owner_id: int,
    visitor: VisitorInfo,
    is_owner: bool = False,
) -> None:
    async with session_factory() as session:
        await VisitRecorder(session).record_link_access(link_id, owner_id, visitor, is_owner)


async def record_profile_access_task(session_factory: async_sessionmaker[AsyncSession], user_id: int) -> None:
    async with session_factory() as session:
        await VisitRecorder(session).record_profile_access(user_id)
