"""Notification dispatchers.

The core hands every notification to a dispatcher after the transition that
caused it is committed. Rendering and delivering email is someone else's job:
the Redis dispatcher pushes a JSON message onto a list that an external
mailer consumes; the logging dispatcher is used in development and tests.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from job_broker.logging_config import get_logger

if TYPE_CHECKING:
    import redis.asyncio as aioredis

logger = get_logger(__name__)


@runtime_checkable
class NotificationDispatcher(Protocol):
    async def notify(self, recipient: str, kind: str, context: dict[str, Any]) -> None:
        """Deliver one notification. May raise; callers treat failures as non-fatal."""
        ...


class LoggingNotificationDispatcher:
    """Writes notifications to the structured log instead of sending them."""

    async def notify(self, recipient: str, kind: str, context: dict[str, Any]) -> None:
        logger.info("notify.sent", recipient=recipient, kind=kind, context=context)


class RedisNotificationDispatcher:
    """Queues notifications on a Redis list for an external mailer."""

    def __init__(self, redis: aioredis.Redis, queue_key: str) -> None:
        self._redis = redis
        self._queue_key = queue_key

    async def notify(self, recipient: str, kind: str, context: dict[str, Any]) -> None:
        message = json.dumps(
            {
                "recipient": recipient,
                "kind": kind,
                "context": context,
                "queued_at": datetime.now(UTC).isoformat(),
            },
            default=str,
        )
        await self._redis.rpush(self._queue_key, message)
        logger.debug("notify.queued", recipient=recipient, kind=kind, queue=self._queue_key)
