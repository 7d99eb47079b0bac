"""FastAPI application entry point for the job broker.

Lifecycle:
    1. Startup: Initialize logging, database, Redis (optional), collaborators,
       and the background settlement sweep.
    2. Running: Serve REST API + MCP tools on a single Uvicorn process.
    3. Shutdown: Stop the sweep, close database and Redis connections gracefully.

The MCP server is mounted at /mcp so AI agents can discover tools
alongside the REST API at /api/v1/*.

Run with:
    uvicorn job_broker.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from job_broker.config import get_settings
from job_broker.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
    )

    # 2. Initialize database
    from job_broker.infrastructure.database.engine import close_db, get_session_factory, init_db

    await init_db()

    # 3. Initialize Redis; without it notifications and events are only logged
    from job_broker.infrastructure.redis_client import close_redis, connect_optional

    redis = await connect_optional(settings.redis_url)

    # 4. Collaborators shared by routes, MCP tools and the sweep
    from job_broker.mcp_server.tools import configure
    from job_broker.services import SettlementService, build_collaborators

    collaborators = build_collaborators(settings, redis)
    app.state.collaborators = collaborators
    configure(collaborators)

    # 5. Background settlement sweep
    sweep_task: asyncio.Task | None = None
    if settings.settlement_sweep_enabled:
        settlement = SettlementService(get_session_factory(), collaborators, settings)
        sweep_task = asyncio.create_task(settlement.run_forever(), name="settlement-sweep")
        logger.info("app.sweep_scheduled", interval_seconds=settings.settlement_sweep_interval_seconds)

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    if sweep_task is not None:
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task
    aclose = getattr(collaborators.payments, "aclose", None)
    if aclose is not None:
        await aclose()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory: creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Job Broker",
        description=(
            "Bidding, escrow, completion and settlement for an on-demand "
            "services marketplace."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from job_broker.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from job_broker.api.routes.accounts import router as accounts_router
    from job_broker.api.routes.admin import router as admin_router
    from job_broker.api.routes.bids import router as bids_router
    from job_broker.api.routes.health import router as health_router
    from job_broker.api.routes.jobs import router as jobs_router

    app.include_router(health_router)
    app.include_router(jobs_router)
    app.include_router(bids_router)
    app.include_router(accounts_router)
    app.include_router(admin_router)

    # --- MCP Server (mounted as sub-application) ---
    from job_broker.mcp_server.tools import mcp

    mcp_app = mcp.sse_app()
    app.mount("/mcp", mcp_app)

    return app


# The app instance used by Uvicorn
app = create_app()
