"""Health check endpoint.

Verifies connectivity to the database and Redis, returns structured status.
Used by Docker healthchecks, load balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text

from job_broker import __version__
from job_broker.infrastructure.database.engine import _get_engine
from job_broker.infrastructure.redis_client import redis_status
from job_broker.logging_config import get_logger
from job_broker.schemas.jobs import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check() -> HealthResponse:
    """Check connectivity to the database and Redis.

    Redis is optional: without it collaborators log instead of publishing,
    so a missing client reports "disabled" and does not degrade the status.
    """
    db_status = "unknown"
    try:
        engine = _get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    redis = await redis_status()

    healthy = db_status == "healthy" and redis in ("healthy", "disabled")
    return HealthResponse(
        status="ok" if healthy else "degraded",
        version=__version__,
        database=db_status,
        redis=redis,
    )
