"""Retry of use cases on transient storage errors.

Bid and ledger writes are retried once when the database reports an
OperationalError (dropped connection, serialization failure, lock timeout).
The session is rolled back before the retry so the use case re-reads
everything from a clean transaction. Domain errors are never retried.
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy.exc import OperationalError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from job_broker.config import get_settings
from job_broker.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = get_logger(__name__)

T = TypeVar("T")


def retry_on_transient_storage_error(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """Decorate a service coroutine method whose instance holds ``self._session``.

    The attempt count comes from the instance's ``_settings`` when it has them.
    """

    @functools.wraps(func)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> T:
        settings = getattr(self, "_settings", None) or get_settings()
        attempts = max(1, settings.storage_retry_attempts)
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type(OperationalError),
            reraise=True,
        ):
            with attempt:
                try:
                    return await func(self, *args, **kwargs)
                except OperationalError as exc:
                    await self._session.rollback()
                    logger.warning(
                        "storage.transient_error",
                        operation=func.__qualname__,
                        attempt=attempt.retry_state.attempt_number,
                        error=str(exc.orig),
                    )
                    raise
        raise AssertionError("unreachable")  # pragma: no cover

    return wrapper
