"""FastAPI route definitions for the link-in-bio resolution and analytics API.

API Endpoint Overview
=====================
::
    GET    /health                              HealthResponse
    POST   /api/users                           UserResponse (201) / 400 / 409
    GET    /api/user/{user_id}                  UserResponse / 404
    PATCH  /api/user/{user_id}/username         UserResponse / 400 / 404 / 409
    GET    /api/user/{user_id}/link-stats       VisitStats (cached)
    POST   /api/auth/check-username             UsernameCheckResponse
    GET    /api/settings/{user_id}              SettingsResponse / 404
    PUT    /api/settings/{user_id}              SettingsResponse / 400 / 404 / 409
    POST   /api/visit/{user_id}                 VisitCountResponse / 404
    GET    /api/public/{identifier}             PublicProfile / 404
    GET    /api/public/{identifier}/links       [LinkWithStats] / 404
    POST   /api/links                           LinkResponse (201) / 404 / 409
    GET    /api/links/{user_id}                 [LinkWithStats]
    PUT    /api/links/{link_id}                 LinkResponse / 404
    DELETE /api/links/{link_id}                 204 / 404
    GET    /api/links/{link_id}/stats           VisitStats (cached) / 404
    GET    /api/links/{link_id}/visits          [LinkVisitResponse] / 404
    GET    /l/{short_code}                      302 / 410 / page fallback
    GET    /link/{short_code}                   302 / 410 / page fallback
    GET    /{identifier}                        302 / 410 / page fallback

Request Flow — redirect entry points
====================================
::
    ┌─────────────┐     ┌──────────────┐     ┌──────────────┐
    │ /l/{code}   │     │ /link/{code} │     │ /{identifier}│
    │ owner=?     │     │ owner=?      │     │ owner=false  │
    └──────┬──────┘     └──────┬───────┘     └──────┬───────┘
           │ short code only   │ short code only    │ full chain
           └─────────┬─────────┴────────────────────┘
                     ▼
           RedirectDispatcher.dispatch()
                     ▼
           RedirectDispatcher.to_response()

Key Behaviours
===============
- The catch-all ``/{identifier}`` is registered last so every API and
  documentation route wins over it.
- ``/l/`` and ``/link/`` match the stored code verbatim; only the catch-all
  filters reserved segments.
- Domain errors (InvalidIdentifierError, ConflictError) are mapped to
  400/409 by the app-level handlers; missing entities raise 404 here.
- Visit recording never delays a redirect: it is attached to the response as
  a background task.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import Response
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from biolink.database import get_session_factory
from biolink.dependencies import (
    RequestContext,
    get_dispatcher,
    get_link_service,
    get_request_context,
    get_stats_aggregator,
    get_user_service,
)
from biolink.dispatcher import RedirectDispatcher
from biolink.enums import HealthStatus
from biolink.links import LinkService
from biolink.schemas import (
    HealthResponse,
    LinkCreate,
    LinkResponse,
    LinkUpdate,
    LinkVisitResponse,
    LinkWithStats,
    PublicProfile,
    SettingsResponse,
    SettingsUpdate,
    UserCreate,
    UserResponse,
    UsernameCheckRequest,
    UsernameCheckResponse,
    UsernameUpdate,
    VisitCountResponse,
    VisitStats,
)
from biolink.stats import StatisticsAggregator
from biolink.users import UserService
from biolink.visits import VisitorInfo, record_profile_access_task

__all__ = ["router"]

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await ctx.database.execute(text("SELECT 1"))
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        await ctx.cache.ping()
    except Exception as e:
        ctx.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    overall = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=overall, database=db_status, cache=cache_status)


# ============================================================================
# USERS AND SETTINGS
# ============================================================================


@router.post("/api/users", response_model=UserResponse, status_code=201, tags=["users"])
async def create_user(
    payload: UserCreate,
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    user = await service.create_user(payload)
    return UserResponse.model_validate(user)


@router.get("/api/user/{user_id}", response_model=UserResponse, tags=["users"])
async def get_user(user_id: int, service: UserService = Depends(get_user_service)) -> UserResponse:
    user = await service.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse.model_validate(user)


@router.patch("/api/user/{user_id}/username", response_model=UserResponse, tags=["users"])
async def update_username(
    user_id: int,
    payload: UsernameUpdate,
    ctx: RequestContext = Depends(get_request_context),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    user = await service.update_username(user_id, payload.username)
    if user is None:
        ctx.logger.warning(f"Username update for missing user {user_id}")
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse.model_validate(user)


@router.get("/api/user/{user_id}/link-stats", response_model=VisitStats, tags=["stats"])
async def get_user_link_stats(
    user_id: int,
    aggregator: StatisticsAggregator = Depends(get_stats_aggregator),
) -> VisitStats:
    return await aggregator.cached_stats_for_user(user_id)


@router.post("/api/auth/check-username", response_model=UsernameCheckResponse, tags=["users"])
async def check_username(
    payload: UsernameCheckRequest,
    service: UserService = Depends(get_user_service),
) -> UsernameCheckResponse:
    available, message = await service.check_username(payload.username, payload.current_user_id)
    return UsernameCheckResponse(available=available, message=message)


@router.get("/api/settings/{user_id}", response_model=SettingsResponse, tags=["settings"])
async def read_settings(user_id: int, service: UserService = Depends(get_user_service)) -> SettingsResponse:
    user_settings = await service.get_user_settings(user_id)
    if user_settings is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user_settings


@router.put("/api/settings/{user_id}", response_model=SettingsResponse, tags=["settings"])
async def update_settings(
    user_id: int,
    payload: SettingsUpdate,
    service: UserService = Depends(get_user_service),
) -> SettingsResponse:
    user_settings = await service.update_user_settings(user_id, payload)
    if user_settings is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user_settings


@router.post("/api/visit/{user_id}", response_model=VisitCountResponse, tags=["stats"])
async def count_profile_visit(
    user_id: int,
    service: UserService = Depends(get_user_service),
) -> VisitCountResponse:
    visit_count = await service.increment_visit_count(user_id)
    if visit_count is None:
        raise HTTPException(status_code=404, detail="User not found")
    return VisitCountResponse(visit_count=visit_count)


@router.get("/api/public/{identifier}", response_model=PublicProfile, tags=["public"])
async def get_public_profile(
    identifier: str,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    service: UserService = Depends(get_user_service),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> PublicProfile:
    user = await service.find_public_profile(identifier)
    if user is None:
        ctx.logger.info(f"Public profile not found: {identifier}")
        raise HTTPException(status_code=404, detail="User not found")

    background_tasks.add_task(record_profile_access_task, session_factory, user.id)
    return PublicProfile.model_validate(user)


@router.get("/api/public/{identifier}/links", response_model=list[LinkWithStats], tags=["public"])
async def get_public_links(
    identifier: str,
    users: UserService = Depends(get_user_service),
    links: LinkService = Depends(get_link_service),
) -> list[LinkWithStats]:
    user = await users.find_public_profile(identifier)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return await links.list_links(user.id, active_only=True)


# ============================================================================
# LINKS
# ============================================================================


@router.post("/api/links", response_model=LinkResponse, status_code=201, tags=["links"])
async def create_link(
    payload: LinkCreate,
    ctx: RequestContext = Depends(get_request_context),
    users: UserService = Depends(get_user_service),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    if await users.get_user(payload.user_id) is None:
        ctx.logger.warning(f"Link creation for missing user {payload.user_id}")
        raise HTTPException(status_code=404, detail="User not found")

    link = await service.create_link(payload)
    ctx.logger.info(f"Link {link.short_code} created in {ctx.get_duration():.1f}ms")
    return service.to_response(link)


@router.get("/api/links/{user_id}", response_model=list[LinkWithStats], tags=["links"])
async def list_links(user_id: int, service: LinkService = Depends(get_link_service)) -> list[LinkWithStats]:
    return await service.list_links(user_id)


@router.put("/api/links/{link_id}", response_model=LinkResponse, tags=["links"])
async def update_link(
    link_id: int,
    payload: LinkUpdate,
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    link = await service.update_link(link_id, payload)
    if link is None:
        raise HTTPException(status_code=404, detail="Link not found")
    return service.to_response(link)


@router.delete("/api/links/{link_id}", status_code=204, tags=["links"])
async def delete_link(link_id: int, service: LinkService = Depends(get_link_service)) -> Response:
    if not await service.delete_link(link_id):
        raise HTTPException(status_code=404, detail="Link not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/api/links/{link_id}/stats", response_model=VisitStats, tags=["stats"])
async def get_link_stats(link_id: int, service: LinkService = Depends(get_link_service)) -> VisitStats:
    if await service.get_link(link_id) is None:
        raise HTTPException(status_code=404, detail="Link not found")
    return await service.link_stats(link_id)


@router.get("/api/links/{link_id}/visits", response_model=list[LinkVisitResponse], tags=["stats"])
async def list_link_visits(
    link_id: int,
    limit: int = 100,
    service: LinkService = Depends(get_link_service),
) -> list[LinkVisitResponse]:
    if await service.get_link(link_id) is None:
        raise HTTPException(status_code=404, detail="Link not found")
    visits = await service.list_visits(link_id, limit=max(1, min(limit, 1000)))
    return [LinkVisitResponse.model_validate(visit) for visit in visits]


# ============================================================================
# REDIRECTS (catch-all last)
# ============================================================================


@router.get("/l/{short_code}", tags=["redirect"])
@router.get("/link/{short_code}", tags=["redirect"])
async def redirect_short_code(
    short_code: str,
    request: Request,
    owner: bool = False,
    dispatcher: RedirectDispatcher = Depends(get_dispatcher),
) -> Response:
    result = await dispatcher.dispatch(
        short_code,
        VisitorInfo.from_request(request),
        is_owner=owner,
        short_code_only=True,
    )
    return dispatcher.to_response(result)


@router.get("/{identifier}", tags=["redirect"])
async def redirect_identifier(
    identifier: str,
    request: Request,
    dispatcher: RedirectDispatcher = Depends(get_dispatcher),
) -> Response:
    result = await dispatcher.dispatch(identifier, VisitorInfo.from_request(request))
    return dispatcher.to_response(result)
