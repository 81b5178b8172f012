"""Redirect dispatcher: turn an inbound path segment into an HTTP response.

State Machine
==============
::
    Received ──normalize──► Rejected ───────────────┐
        │                                            │
        ▼                                            ▼
    Normalized ──resolve──► NotFound ──────► page fallback (app router)
        │
        ▼
      Found ──► link inactive? ──yes──► 410 Gone, nothing recorded
        │no
        ▼
    Redirecting ──► 302 Location: destination
                     └─ BackgroundTask: record visit (own session)

Key Behaviours
===============
- Rejected and NotFound are not errors: the identifier belongs to the app
  router, which serves the SPA index (``FRONTEND_INDEX_FILE``) or a plain
  not-found page.
- Recording runs after the response is sent; its failures never change the
  status code the client sees.
- Store errors raised while resolving propagate and surface as a 500.
- The explicit short-link routes skip ``normalize``: a stored code such as
  ``images`` or ``health`` still redirects there.
- ``is_owner`` is whatever the entry point passes: the catch-all always passes
  ``False``, the explicit short-link routes honour ``?owner=true``.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.background import BackgroundTask
from starlette.responses import Response

from biolink.config import Settings, get_settings
from biolink.enums import DispatchOutcome, TargetSource
from biolink.identifiers import normalize
from biolink.metrics import RESOLUTION_REQUESTS_TOTAL
from biolink.resolver import ResolutionChain, ResolvedTarget
from biolink.visits import VisitorInfo, record_link_access_task, record_profile_access_task

__all__ = ["DispatchResult", "RedirectDispatcher", "not_found_page", "gone_page"]

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate, max-age=0",
    "Pragma": "no-cache",
}

_NOT_FOUND_HTML = """<!DOCTYPE html>
<html><head><meta charset="UTF-8"><title>Page not found</title></head>
<body style="font-family: sans-serif; text-align: center; padding: 50px;">
    <h1>404 - Page not found</h1>
    <p>Nothing lives at this address.</p>
    <a href="/">Go to the home page</a>
</body></html>
"""

_GONE_HTML = """<!DOCTYPE html>
<html><head><meta charset="UTF-8"><title>Link disabled</title></head>
<body style="font-family: sans-serif; text-align: center; padding: 50px;">
    <h1>410 - Link disabled</h1>
    <p>The owner has turned this link off.</p>
    <a href="/">Go to the home page</a>
</body></html>
"""


def not_found_page(settings: Settings | None = None) -> HTMLResponse:
    settings = settings or get_settings()
    if settings.FRONTEND_INDEX_FILE:
        index_file = Path(settings.FRONTEND_INDEX_FILE)
        if index_file.is_file():
            return HTMLResponse(content=index_file.read_text(encoding="utf-8"))
    return HTMLResponse(content=_NOT_FOUND_HTML, status_code=404, headers=NO_CACHE_HEADERS)


def gone_page() -> HTMLResponse:
    return HTMLResponse(content=_GONE_HTML, status_code=410, headers=NO_CACHE_HEADERS)


@dataclass
class DispatchResult:
    """Terminal state of one dispatch.

    Attributes:
        outcome: Which terminal state was reached.
        identifier: The normalized identifier, None when rejected.
        target: The resolved target for INACTIVE and REDIRECT.
        background: Visit recording to run after a REDIRECT response.
    """

    outcome: DispatchOutcome
    identifier: str | None = None
    target: ResolvedTarget | None = None
    background: BackgroundTask | None = None


class RedirectDispatcher:
    """Drives normalize → resolve → record → respond for one request."""

    def __init__(
        self,
        resolver: ResolutionChain,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self._resolver = resolver
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._logger = logger or logging.getLogger("biolink.dispatcher")

    @classmethod
    def from_context(
        cls, ctx: "RequestContext", session_factory: async_sessionmaker[AsyncSession]
    ) -> "RedirectDispatcher":
        return cls(ResolutionChain.from_context(ctx), session_factory, ctx.settings, ctx.logger)

    async def dispatch(
        self,
        raw_segment: str,
        visitor: VisitorInfo,
        is_owner: bool = False,
        short_code_only: bool = False,
    ) -> DispatchResult:
        if short_code_only:
            # Stored codes are matched verbatim, reserved words included.
            identifier = raw_segment
            target = await self._resolver.resolve_short_code(identifier) if identifier else None
        else:
            identifier = normalize(raw_segment)
            if identifier is None:
                RESOLUTION_REQUESTS_TOTAL.labels(outcome=DispatchOutcome.REJECTED, source="none").inc()
                self._logger.debug(f"Reserved segment passed to app router: {raw_segment!r}")
                return DispatchResult(outcome=DispatchOutcome.REJECTED)
            target = await self._resolver.resolve(identifier)

        if target is None:
            return DispatchResult(outcome=DispatchOutcome.NOT_FOUND, identifier=identifier)

        if target.link is not None and not target.link.is_active:
            self._logger.info(f"Inactive link requested: {identifier}")
            return DispatchResult(outcome=DispatchOutcome.INACTIVE, identifier=identifier, target=target)

        return DispatchResult(
            outcome=DispatchOutcome.REDIRECT,
            identifier=identifier,
            target=target,
            background=self._recording_task(target, visitor, is_owner),
        )

    def to_response(self, result: DispatchResult) -> Response:
        if result.outcome is DispatchOutcome.REDIRECT:
            self._logger.info(
                f"Redirect {result.identifier} -> {result.target.destination_url} "
                f"({result.target.source.value})"
            )
            return RedirectResponse(
                url=result.target.destination_url,
                status_code=302,
                headers=NO_CACHE_HEADERS,
                background=result.background,
            )
        if result.outcome is DispatchOutcome.INACTIVE:
            return gone_page()
        return not_found_page(self._settings)

    def _recording_task(self, target: ResolvedTarget, visitor: VisitorInfo, is_owner: bool) -> BackgroundTask:
        if target.source is TargetSource.LINK:
            return BackgroundTask(
                record_link_access_task,
                self._session_factory,
                target.link.id,
                target.link.user_id,
                visitor,
                is_owner,
            )
        return BackgroundTask(record_profile_access_task, self._session_factory, target.user.id)
