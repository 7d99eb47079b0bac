"""Shared plumbing for the lifecycle services.

Every state change goes through ``_transition``: the JobStateMachine guard,
then a compare-and-set on the stored status, then exactly one audit row.
Services commit once per use case and flush their Outbox afterwards.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from statemachine.exceptions import TransitionNotAllowed

from job_broker.config import Settings, get_settings
from job_broker.domain.exceptions import (
    BidNotFoundError,
    CustomerNotFoundError,
    InvalidStateTransitionError,
    JobNotFoundError,
    PaymentError,
    WorkerNotFoundError,
)
from job_broker.domain.state_machine import JobStateMachine
from job_broker.infrastructure.database.repositories import (
    BidRepository,
    CustomerRepository,
    EventRepository,
    JobRepository,
    LedgerRepository,
    WorkerRepository,
)
from job_broker.logging_config import get_logger
from job_broker.services.fanout import Outbox

if TYPE_CHECKING:
    import uuid
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from job_broker.domain.enums import ActorRole, AuditAction
    from job_broker.infrastructure.database.orm_models import Bid, Customer, Job, Worker
    from job_broker.services.fanout import Collaborators

    Clock = Callable[[], datetime]

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


class LifecycleService:
    """Base class holding the session, repositories and collaborators."""

    def __init__(
        self,
        session: AsyncSession,
        collaborators: Collaborators,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._collab = collaborators
        self._settings = settings or get_settings()
        self._clock = clock or utcnow
        self._jobs = JobRepository(session)
        self._bids = BidRepository(session)
        self._events = EventRepository(session)
        self._workers = WorkerRepository(session)
        self._customers = CustomerRepository(session)
        self._ledger = LedgerRepository(session)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _get_job_or_raise(self, job_id: uuid.UUID) -> Job:
        job = await self._jobs.get_by_id(job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    async def _get_bid_or_raise(self, bid_id: uuid.UUID) -> Bid:
        bid = await self._bids.get_by_id(bid_id)
        if bid is None:
            raise BidNotFoundError(str(bid_id))
        return bid

    async def _get_worker_or_raise(self, worker_id: uuid.UUID) -> Worker:
        worker = await self._workers.get_by_id(worker_id)
        if worker is None:
            raise WorkerNotFoundError(str(worker_id))
        return worker

    async def _get_customer_or_raise(self, customer_id: uuid.UUID) -> Customer:
        customer = await self._customers.get_by_id(customer_id)
        if customer is None:
            raise CustomerNotFoundError(str(customer_id))
        return customer

    async def _customer_email(self, customer_id: uuid.UUID) -> str | None:
        customer = await self._customers.get_by_id(customer_id)
        return customer.email if customer else None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _fire_transition(self, job: Job, event_name: str) -> str:
        """Validate a transition and return the target status.

        Raises InvalidStateTransitionError if the transition is illegal.
        """
        sm = JobStateMachine(current_status=job.status)
        event_method = getattr(sm, event_name, None)
        if event_method is None:
            raise InvalidStateTransitionError(job.status, event_name, str(job.id))
        try:
            event_method()
        except TransitionNotAllowed as err:
            raise InvalidStateTransitionError(job.status, event_name, str(job.id)) from err
        return sm.status

    async def _transition(
        self,
        job: Job,
        event_name: str,
        action: AuditAction,
        actor_role: ActorRole,
        actor_id: str | None,
        notes: str | None = None,
        metadata: dict | None = None,
        **values: Any,
    ) -> str:
        """Guard, compare-and-set and audit one transition. Returns the old status.

        If another writer moved the job first, the job is refreshed and
        InvalidStateTransitionError carries its current status.
        """
        old_status = job.status
        new_status = self._fire_transition(job, event_name)
        won = await self._jobs.transition(
            job, old_status, status=new_status, updated_at=self._clock(), **values
        )
        if not won:
            logger.info(
                "job.transition_race_lost",
                job_id=str(job.id),
                event=event_name,
                expected=old_status,
                current=job.status,
            )
            raise InvalidStateTransitionError(job.status, event_name, str(job.id))
        await self._events.record(
            job_id=job.id,
            action=action,
            actor_role=actor_role,
            actor_id=actor_id,
            old_status=old_status,
            new_status=new_status,
            notes=notes,
            metadata=metadata,
        )
        return old_status

    async def _call_gateway(self, call: Awaitable[Any], job_id: str, status_before: str) -> Any:
        """Await a payment call; on failure roll back and surface PaymentError.

        ``status_before`` is the job status the rollback restores.
        """
        try:
            return await call
        except PaymentError as exc:
            await self._session.rollback()
            exc.current_status = status_before
            logger.warning("payment.call_failed", job_id=job_id, error=exc.message)
            raise
        except Exception as exc:
            await self._session.rollback()
            logger.exception("payment.call_crashed", job_id=job_id)
            raise PaymentError(f"Payment gateway failure: {exc}", current_status=status_before) from exc

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    async def _commit(self, outbox: Outbox | None = None) -> None:
        await self._session.commit()
        if outbox is not None:
            await outbox.flush(self._collab)

    def _new_outbox(self) -> Outbox:
        return Outbox()
