"""Database configuration and session management for the resolution service.

This module provides SQLAlchemy async engine setup, session management,
and database lifecycle operations. PostgreSQL (asyncpg) is the production
backend; SQLite (aiosqlite) is accepted for local runs and tests.

Flow Diagram — Database Operations
=================================
::
    ┌─────────────┐          ┌─────────────────┐
    │  Request    │          │ Background task │
    │  handler    │          │ (visit record)  │
    └──────┬──────┘          └────────┬────────┘
           ▼                          ▼
    ┌─────────────┐          ┌─────────────────┐
    │ get_db()    │          │ get_session_    │
    │ dependency  │          │ factory()       │
    └──────┬──────┘          └────────┬────────┘
           ▼                          ▼
    ┌─────────────────────────────────────────┐
    │         async_session (sessionmaker)     │
    └─────────────────────────────────────────┘

How to Use
===========
**Step 1 — Initialize on startup**::
    await init_db()  # Creates tables

**Step 2 — Use in FastAPI endpoints**::
    @router.get("/api/links/{user_id}")
    async def list_links(user_id: int, db: AsyncSession = Depends(get_db)):
        result = await db.execute(select(Link).where(Link.user_id == user_id))
        return result.scalars().all()

**Step 3 — Work outside the request session**::
    factory = get_session_factory()
    async with factory() as session:
        ...

**Step 4 — Cleanup on shutdown**::
    await close_db()

Key Behaviours
===============
- Async sessions are automatically closed after each request.
- Work scheduled after the response (visit recording) opens its own session
  from the factory, never the request session.
- Pool sizing only applies to server databases; SQLite uses the driver default.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    get_db():  FastAPI dependency for database sessions.
    get_session_factory():  FastAPI dependency returning the sessionmaker.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from biolink.config import get_settings

__all__ = ["Base", "get_db", "get_session_factory", "init_db", "close_db"]

settings = get_settings()

_engine_options: dict = {
    "echo": settings.APP_ENV == "development",
    "pool_pre_ping": True,
}
if not settings.DATABASE_URL.startswith("sqlite"):
    _engine_options.update(pool_size=20, max_overflow=10)

engine = create_async_engine(settings.DATABASE_URL, **_engine_options)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
