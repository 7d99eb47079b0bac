"""Real-time event bus.

One event is published per job transition for delivery to connected clients.
Delivery is at-most-once: a subscriber that is not listening misses it.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from job_broker.logging_config import get_logger

if TYPE_CHECKING:
    import redis.asyncio as aioredis

logger = get_logger(__name__)


@runtime_checkable
class EventBus(Protocol):
    async def publish(self, topic: str, payload: dict[str, Any]) -> None: ...


class LoggingEventBus:
    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        logger.info("event.published", topic=topic, payload=payload)


class RedisEventBus:
    """Redis pub/sub, one channel per topic under a common prefix."""

    def __init__(self, redis: aioredis.Redis, channel_prefix: str) -> None:
        self._redis = redis
        self._prefix = channel_prefix

    def channel_for(self, topic: str) -> str:
        return f"{self._prefix}:{topic}"

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        channel = self.channel_for(topic)
        receivers = await self._redis.publish(channel, json.dumps(payload, default=str))
        logger.debug("event.published", channel=channel, receivers=receivers)
