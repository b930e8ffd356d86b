"""FastAPI application with lifespan startup."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import async_sessionmaker

from reposync import __version__
from reposync.api.app_state import AppState
from reposync.api.event_bus import SyncEventBus
from reposync.api.middleware.auth import ApiKeyMiddleware
from reposync.api.routes import health, jobs, repos
from reposync.config import Settings, create_app_engine
from reposync.logging_config import setup_logging
from reposync.models.base import Base
from reposync.runtime import build_runtime
from reposync.services.data_service import DataService

_logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # 1. Use module-level settings (single source of truth)
    settings = _settings
    setup_logging(settings.log_level)

    # 2. Create async SQLite engine (WAL set via pool-connect listener)
    engine = create_app_engine(
        settings.database_url, echo=settings.debug_mode
    )

    # 3. Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # 4. Create session factory
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    # 5. Build the engine runtime; startup recovery runs before
    # workers accept deliveries
    event_bus = SyncEventBus()
    runtime = build_runtime(settings, session_factory, event_bus=event_bus)
    recovered = await runtime.start()
    if recovered.total_recovered:
        _logger.warning(
            "event=status_recovery recovered=%d requeued=%d",
            recovered.total_recovered,
            recovered.requeued,
        )

    # 6. Typed state for routes
    app.state.typed = AppState(
        settings=settings,
        session_factory=session_factory,
        event_bus=event_bus,
        runtime=runtime,
        data_service=DataService(session_factory),
    )

    # 7. Security: warn if auth is disabled
    if not settings.api_key:
        _logger.warning(
            "event=no_api_key action=all_endpoints_public"
        )

    yield

    # Cleanup
    await runtime.stop()
    await engine.dispose()


app = FastAPI(
    title="RepoSync",
    description=(
        "Repository mirror engine --"
        " durable sync ledger, incremental diffs and crash recovery"
    ),
    version=__version__,
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

# Middleware stack (Starlette LIFO: last added = outermost = runs first)
#
# Inbound request order:
#   CORSMiddleware (outermost) -> ApiKeyMiddleware -> Router
#
# CORS must be outermost so OPTIONS preflight is answered before
# ApiKeyMiddleware rejects for missing X-API-Key.
_settings = Settings()
_cors_origins = [
    o.strip()
    for o in _settings.cors_origins.split(",")
    if o.strip()
]

app.add_middleware(ApiKeyMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-API-Key", "Cache-Control"],
    allow_credentials=False,
)

# Routes
app.include_router(health.router)
app.include_router(repos.router)
app.include_router(jobs.router)
