"""FastAPI application entry point for the biolink resolution service.

Application Lifecycle Diagram
=============================
::
    ┌──────────────┐
    │  uvicorn     │
    │  startup     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ init_db()    │
    │ logger setup │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Serve HTTP   │
    │ requests     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ close_db()   │
    │ close_redis()│
    └──────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn biolink.main:app --host 0.0.0.0 --port 8080 --reload

**Step 2 — Create a user and a link**::
    curl -X POST http://localhost:8080/api/users \
         -H "Content-Type: application/json" -d '{"username": "alice"}'
    curl -X POST http://localhost:8080/api/links \
         -H "Content-Type: application/json" \
         -d '{"title": "Blog", "originalUrl": "https://example.com", "userId": 1}'

**Step 3 — Follow it**::
    curl -i http://localhost:8080/l/<shortCode>

Key Behaviours
===============
- Database tables are created automatically on startup.
- Redis is connected lazily on the first stats-cache lookup.
- Prometheus metrics are exposed at /metrics.
- Route order matters: /metrics and the docs routes are registered before the
  router's catch-all ``/{identifier}``.
"""

__all__ = ["app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from biolink.config import get_settings
from biolink.database import close_db, init_db
from biolink.dependencies import _service_manager
from biolink.exceptions import add_exception_handlers
from biolink.redis import close_redis
from biolink.routes import router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    _service_manager.initialize()
    yield
    # Shutdown
    _service_manager.cleanup()
    await close_db()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Identifier resolution and visit analytics for link-in-bio profiles",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_exception_handlers(app)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

app.include_router(router)
