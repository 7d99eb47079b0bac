"""Redis client backing the event bus and the notification queue.

Redis is optional. When it cannot be reached at startup the process keeps
running and collaborators fall back to logging, so ``connect_optional``
returns ``None`` instead of raising.

Usage:
    from job_broker.infrastructure.redis_client import connect_optional, close_redis

    redis = await connect_optional()
    collaborators = build_collaborators(settings, redis)
"""

from __future__ import annotations

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from job_broker.config import get_settings
from job_broker.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis(url: str | None = None) -> aioredis.Redis:
    """Connect, ping and keep the client as the process-wide singleton."""
    global _redis_client
    url = url or get_settings().redis_url
    client = aioredis.from_url(url, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError):
        await client.aclose()
        raise
    _redis_client = client
    logger.info("redis.connected", url=url)
    return client


async def connect_optional(url: str | None = None) -> aioredis.Redis | None:
    """Like ``init_redis`` but returns None when Redis is unreachable."""
    try:
        return await init_redis(url)
    except (RedisError, OSError) as exc:
        logger.warning("redis.unavailable", error=str(exc), fallback="logging collaborators")
        return None


async def redis_status() -> str:
    """'disabled' without a client, else 'healthy' or 'unhealthy: <error>'."""
    if _redis_client is None:
        return "disabled"
    try:
        await _redis_client.ping()
    except (RedisError, OSError) as exc:
        logger.error("redis.ping_failed", error=str(exc))
        return f"unhealthy: {exc}"
    return "healthy"


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None
