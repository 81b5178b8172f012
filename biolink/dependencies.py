"""Dependency injection with a singleton service manager.

Shared resources (settings, the configured logger) live on a process-wide
``ServiceManager``; everything request-scoped (DB session, Redis client,
client metadata) is bundled into a ``RequestContext`` that services are built
from via their ``from_context`` factories.

Dependency Graph
=================
::
    get_db ─────────────┐
    get_redis ──────────┤
    get_service_manager ┼──► get_request_context ──► get_link_service
                        │                        ├─► get_user_service
                        │                        ├─► get_stats_aggregator
    get_session_factory ┴────────────────────────┴─► get_dispatcher
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from biolink.config import get_settings
from biolink.database import get_db, get_session_factory
from biolink.dispatcher import RedirectDispatcher
from biolink.links import LinkService
from biolink.redis import get_redis
from biolink.stats import StatisticsAggregator
from biolink.users import UserService
from biolink.visits import get_client_ip

__all__ = [
    "ServiceManager",
    "RequestContext",
    "get_service_manager",
    "get_request_context",
    "get_link_service",
    "get_user_service",
    "get_stats_aggregator",
    "get_dispatcher",
]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ============================================================================
# SINGLETON SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Singleton holder for resources that outlive a request."""

    _instance: Optional["ServiceManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "ServiceManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def initialize(self) -> None:
        if not self._initialized:
            self.settings = get_settings()
            self.logger = self._setup_logger()
            self._initialized = True

    def _setup_logger(self) -> logging.Logger:
        # Child loggers (biolink.visits, biolink.stats, ...) propagate here.
        logger = logging.getLogger("biolink")
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    def cleanup(self) -> None:
        self._initialized = False


_service_manager = ServiceManager()


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request bundle of resources and client metadata.

    Attributes:
        database: Async session for this request.
        cache: Shared Redis client (stats cache only).
        service_manager: Singleton with settings and the base logger.
        request_id: Taken from ``X-Request-ID`` or generated.
        client_ip: First ``X-Forwarded-For`` hop, else the socket peer.
        user_agent: Client user agent string.
        start_time: Request start timestamp.
    """

    database: AsyncSession
    cache: redis.Redis
    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    start_time: float = field(default_factory=time.time)

    @property
    def settings(self):
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
            },
        )

    def get_duration(self) -> float:
        """Request duration so far, in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager._initialized:
        _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    cache: redis.Redis = Depends(get_redis),
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        database=db,
        cache=cache,
        service_manager=manager,
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        client_ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def get_link_service(ctx: RequestContext = Depends(get_request_context)) -> LinkService:
    return LinkService.from_context(ctx)


def get_user_service(ctx: RequestContext = Depends(get_request_context)) -> UserService:
    return UserService.from_context(ctx)


def get_stats_aggregator(ctx: RequestContext = Depends(get_request_context)) -> StatisticsAggregator:
    return StatisticsAggregator.from_context(ctx)


def get_dispatcher(
    ctx: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> RedirectDispatcher:
    return RedirectDispatcher.from_context(ctx, session_factory)
