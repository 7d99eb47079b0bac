"""Collaborator bundle and post-commit fan-out.

Services collect notifications and events in an Outbox while they work and
flush it only after the authoritative write is committed. Notifications are
retried a few times with backoff. Events are at-most-once and get a single
attempt. A delivery that still fails is logged and dropped, never raised
back to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from job_broker.infrastructure.event_bus import EventBus, LoggingEventBus, RedisEventBus
from job_broker.infrastructure.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    RedisNotificationDispatcher,
)
from job_broker.logging_config import get_logger
from job_broker.services.payment_service import PaymentGateway, build_payment_gateway

if TYPE_CHECKING:
    import redis.asyncio as aioredis

    from job_broker.config import Settings

logger = get_logger(__name__)

DELIVERY_ATTEMPTS = 3
EVENT_ATTEMPTS = 1


@dataclass
class Collaborators:
    """External systems the lifecycle core talks to."""

    notifier: NotificationDispatcher
    events: EventBus
    payments: PaymentGateway


def build_collaborators(settings: Settings, redis: aioredis.Redis | None = None) -> Collaborators:
    """Resolve collaborators from settings; Redis-backed when a client is given."""
    if redis is not None:
        notifier: NotificationDispatcher = RedisNotificationDispatcher(
            redis, settings.redis_notification_queue
        )
        events: EventBus = RedisEventBus(redis, settings.redis_event_channel_prefix)
    else:
        notifier = LoggingNotificationDispatcher()
        events = LoggingEventBus()
    return Collaborators(notifier=notifier, events=events, payments=build_payment_gateway(settings))


@dataclass
class Notification:
    recipient: str
    kind: str
    context: dict[str, Any]


@dataclass
class Event:
    topic: str
    payload: dict[str, Any]


@dataclass
class Outbox:
    notifications: list[Notification] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)

    def notify(self, recipient: str | None, kind: str, **context: Any) -> None:
        if not recipient:
            logger.warning("notify.skipped_no_recipient", kind=kind)
            return
        self.notifications.append(Notification(recipient, str(kind), context))

    def publish(self, topic: str, **payload: Any) -> None:
        self.events.append(Event(str(topic), payload))

    def clear(self) -> None:
        self.notifications.clear()
        self.events.clear()

    async def flush(self, collaborators: Collaborators) -> None:
        """Deliver everything collected, best-effort."""
        notifications, events = list(self.notifications), list(self.events)
        self.clear()
        for item in notifications:
            await _deliver(
                "notify",
                lambda item=item: collaborators.notifier.notify(item.recipient, item.kind, item.context),
                attempts=DELIVERY_ATTEMPTS,
                kind=item.kind,
                recipient=item.recipient,
            )
        for evt in events:
            await _deliver(
                "event",
                lambda evt=evt: collaborators.events.publish(evt.topic, evt.payload),
                attempts=EVENT_ATTEMPTS,
                topic=evt.topic,
            )


async def _deliver(channel: str, send: Any, attempts: int, **log_context: Any) -> None:
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=0.1, max=2),
            reraise=True,
        ):
            with attempt:
                await send()
    except Exception as exc:
        logger.warning(f"{channel}.failed", error=str(exc), **log_context)
