"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Status changes are compare-and-set: the UPDATE names the status the caller
read, and a rowcount of zero means another writer advanced the row first.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, delete, exists, func, select, update

from job_broker.domain.enums import (
    ASSIGNED_STATUSES,
    BidStatus,
    ChangeRequestStatus,
    JobStatus,
    LedgerEntryType,
    PaymentStatus,
    WorkerStatus,
)
from job_broker.infrastructure.database.orm_models import (
    Bid,
    BidRevision,
    Customer,
    Job,
    JobEvent,
    WalletEntry,
    Worker,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from job_broker.domain.enums import ActorRole, AuditAction

ZERO = Decimal("0.00")

# Jobs whose ledger credit must stay held whatever its available_at says.
AWAITING_CONFIRMATION = tuple(
    s.value for s in (JobStatus.ASSIGNED, JobStatus.WORKER_COMPLETED, JobStatus.DISPUTE, JobStatus.DISPUTED)
)


class CustomerRepository:
    """Data access for customers."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, customer: Customer) -> Customer:
        self._session.add(customer)
        await self._session.flush()
        return customer

    async def get_by_id(self, customer_id: uuid.UUID) -> Customer | None:
        return await self._session.get(Customer, customer_id)


class WorkerRepository:
    """Data access for workers: reliability state and wallet balance."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, worker: Worker) -> Worker:
        self._session.add(worker)
        await self._session.flush()
        return worker

    async def get_by_id(self, worker_id: uuid.UUID) -> Worker | None:
        return await self._session.get(Worker, worker_id, populate_existing=True)

    async def get_many(self, worker_ids: Iterable[uuid.UUID]) -> list[Worker]:
        ids = list(set(worker_ids))
        if not ids:
            return []
        result = await self._session.execute(select(Worker).where(Worker.id.in_(ids)))
        return list(result.scalars().all())

    async def increment_cancellation_count(self, worker_id: uuid.UUID, now: datetime) -> int:
        """Atomically bump the counter and return the new value."""
        await self._session.execute(
            update(Worker)
            .where(Worker.id == worker_id)
            .values(
                cancellation_count=Worker.cancellation_count + 1,
                last_cancellation_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(
            select(Worker.cancellation_count).where(Worker.id == worker_id)
        )
        return int(result.scalar_one())

    async def apply_values(self, worker_id: uuid.UUID, **values: Any) -> None:
        await self._session.execute(
            update(Worker)
            .where(Worker.id == worker_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def lift_expired_suspension(self, worker_id: uuid.UUID, now: datetime) -> bool:
        """Restore the pre-suspension status (approved if unknown). True if the row changed."""
        result = await self._session.execute(
            update(Worker)
            .where(
                Worker.id == worker_id,
                Worker.status == WorkerStatus.SUSPENDED.value,
                Worker.suspended_until <= now,
            )
            .values(
                status=func.coalesce(Worker.status_before_suspension, WorkerStatus.APPROVED.value),
                status_before_suspension=None,
                suspended_until=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def add_to_balance(self, worker_id: uuid.UUID, amount: Decimal) -> None:
        await self._session.execute(
            update(Worker)
            .where(Worker.id == worker_id)
            .values(wallet_balance=Worker.wallet_balance + amount)
            .execution_options(synchronize_session=False)
        )

    async def withdraw_if_sufficient(self, worker_id: uuid.UUID, amount: Decimal) -> bool:
        """Debit the balance only when it covers ``amount``."""
        result = await self._session.execute(
            update(Worker)
            .where(Worker.id == worker_id, Worker.wallet_balance >= amount)
            .values(wallet_balance=Worker.wallet_balance - amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def refresh(self, worker: Worker) -> Worker:
        await self._session.refresh(worker)
        return worker


class JobRepository:
    """Data access for jobs."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, job: Job) -> Job:
        self._session.add(job)
        await self._session.flush()
        return job

    async def get_by_id(self, job_id: uuid.UUID) -> Job | None:
        return await self._session.get(Job, job_id, populate_existing=True)

    async def refresh(self, job: Job) -> Job:
        await self._session.refresh(job)
        return job

    async def transition(
        self,
        job: Job,
        expected_status: str,
        **values: Any,
    ) -> bool:
        """Compare-and-set the job row from ``expected_status``.

        The job object is refreshed either way, so after a lost race it
        carries the authoritative current status.
        """
        result = await self._session.execute(
            update(Job)
            .where(Job.id == job.id, Job.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._session.refresh(job)
        return result.rowcount == 1

    async def advance_payment_status(self, job_id: uuid.UUID, expected: str, new: str) -> bool:
        result = await self._session.execute(
            update(Job)
            .where(Job.id == job_id, Job.payment_status == expected)
            .values(payment_status=new)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_fields(self, job: Job, **values: Any) -> Job:
        """Update non-status columns of a job already guarded by a transition."""
        await self._session.execute(
            update(Job)
            .where(Job.id == job.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._session.refresh(job)
        return job

    async def list_by_customer(
        self,
        customer_id: uuid.UUID,
        statuses: Iterable[str] | None = None,
    ) -> list[Job]:
        stmt = select(Job).where(Job.customer_id == customer_id)
        if statuses is not None:
            stmt = stmt.where(Job.status.in_([str(s) for s in statuses]))
        result = await self._session.execute(stmt.order_by(Job.created_at.desc()))
        return list(result.scalars().all())

    async def list_by_assigned_worker(
        self,
        worker_id: uuid.UUID,
        statuses: Iterable[str] = ASSIGNED_STATUSES,
    ) -> list[Job]:
        result = await self._session.execute(
            select(Job)
            .where(Job.assigned_worker_id == worker_id, Job.status.in_([str(s) for s in statuses]))
            .order_by(Job.scheduled_at.asc())
        )
        return list(result.scalars().all())

    async def ids_due_for_auto_confirm(self, now: datetime) -> list[uuid.UUID]:
        result = await self._session.execute(
            select(Job.id)
            .where(
                Job.status == JobStatus.WORKER_COMPLETED.value,
                Job.release_date.is_not(None),
                Job.release_date <= now,
            )
            .order_by(Job.release_date.asc())
        )
        return list(result.scalars().all())

    async def ids_expired_unassigned(self, cutoff: datetime) -> list[uuid.UUID]:
        result = await self._session.execute(
            select(Job.id)
            .where(
                Job.status.in_(
                    [JobStatus.PENDING.value, JobStatus.REOPENED.value, JobStatus.WAITLISTED.value]
                ),
                Job.assigned_worker_id.is_(None),
                Job.scheduled_at < cutoff,
            )
            .order_by(Job.scheduled_at.asc())
        )
        return list(result.scalars().all())

    async def ids_settled_before(self, cutoff: datetime) -> list[uuid.UUID]:
        """Jobs whose money movement is finished and that were last touched before ``cutoff``."""
        settled = (
            and_(
                Job.status == JobStatus.COMPLETED.value,
                Job.payment_status.in_(
                    [PaymentStatus.RELEASED.value, PaymentStatus.PARTIAL_REFUND.value]
                ),
            )
            | and_(
                Job.status == JobStatus.CANCELLED.value,
                Job.payment_status.in_([PaymentStatus.REFUNDED.value, PaymentStatus.UNPAID.value]),
            )
        )
        result = await self._session.execute(
            select(Job.id).where(settled, Job.updated_at < cutoff)
        )
        return list(result.scalars().all())

    async def delete_many(self, job_ids: list[uuid.UUID]) -> int:
        """Hard-delete jobs with their bids, bid history and audit rows."""
        if not job_ids:
            return 0
        bid_ids = select(Bid.id).where(Bid.job_id.in_(job_ids))
        statements = (
            delete(BidRevision).where(BidRevision.bid_id.in_(bid_ids)),
            delete(Bid).where(Bid.job_id.in_(job_ids)),
            delete(JobEvent).where(JobEvent.job_id.in_(job_ids)),
        )
        for stmt in statements:
            await self._session.execute(stmt.execution_options(synchronize_session=False))
        result = await self._session.execute(
            delete(Job).where(Job.id.in_(job_ids)).execution_options(synchronize_session=False)
        )
        return result.rowcount


class EventRepository:
    """Data access for the append-only job audit log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        job_id: uuid.UUID,
        action: AuditAction,
        actor_role: ActorRole,
        actor_id: str | None,
        old_status: str | None,
        new_status: str,
        notes: str | None = None,
        metadata: dict | None = None,
    ) -> JobEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = JobEvent(
            job_id=job_id,
            action=action.value,
            actor_role=actor_role.value,
            actor_id=actor_id,
            old_status=old_status,
            new_status=new_status,
            notes=notes,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_job(self, job_id: uuid.UUID) -> list[JobEvent]:
        """Fetch all events for a job in insertion order."""
        result = await self._session.execute(
            select(JobEvent).where(JobEvent.job_id == job_id).order_by(JobEvent.id.asc())
        )
        return list(result.scalars().all())


class BidRepository:
    """Data access for bids and their revision history."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, bid: Bid) -> Bid:
        self._session.add(bid)
        await self._session.flush()
        return bid

    async def get_by_id(self, bid_id: uuid.UUID) -> Bid | None:
        return await self._session.get(Bid, bid_id, populate_existing=True)

    async def refresh(self, bid: Bid) -> Bid:
        await self._session.refresh(bid)
        return bid

    async def get_active_for_worker(self, job_id: uuid.UUID, worker_id: uuid.UUID) -> Bid | None:
        result = await self._session.execute(
            select(Bid).where(
                Bid.job_id == job_id,
                Bid.worker_id == worker_id,
                Bid.status != BidStatus.REJECTED.value,
            )
        )
        return result.scalar_one_or_none()

    async def get_latest_for_worker(self, job_id: uuid.UUID, worker_id: uuid.UUID) -> Bid | None:
        result = await self._session.execute(
            select(Bid)
            .where(Bid.job_id == job_id, Bid.worker_id == worker_id)
            .order_by(Bid.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_winning(self, job_id: uuid.UUID) -> Bid | None:
        result = await self._session.execute(
            select(Bid).where(Bid.job_id == job_id, Bid.is_winning_bid.is_(True))
        )
        return result.scalar_one_or_none()

    async def list_by_job(self, job_id: uuid.UUID, include_rejected: bool = False) -> list[Bid]:
        stmt = select(Bid).where(Bid.job_id == job_id)
        if not include_rejected:
            stmt = stmt.where(Bid.status != BidStatus.REJECTED.value)
        result = await self._session.execute(stmt.order_by(Bid.created_at.asc()))
        return list(result.scalars().all())

    async def list_by_worker(self, worker_id: uuid.UUID) -> list[Bid]:
        result = await self._session.execute(
            select(Bid).where(Bid.worker_id == worker_id).order_by(Bid.created_at.desc())
        )
        return list(result.scalars().all())

    async def reject_active_for_worker(self, job_id: uuid.UUID, worker_id: uuid.UUID) -> int:
        result = await self._session.execute(
            update(Bid)
            .where(
                Bid.job_id == job_id,
                Bid.worker_id == worker_id,
                Bid.status != BidStatus.REJECTED.value,
            )
            .values(status=BidStatus.REJECTED.value, is_winning_bid=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def reject_all_for_job(self, job_id: uuid.UUID) -> int:
        """Invalidate every live bid of a job and clear the winner flag."""
        result = await self._session.execute(
            update(Bid)
            .where(
                Bid.job_id == job_id,
                (Bid.status != BidStatus.REJECTED.value) | Bid.is_winning_bid.is_(True),
            )
            .values(status=BidStatus.REJECTED.value, is_winning_bid=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def flag_cancelled_by_worker(self, job_id: uuid.UUID, worker_id: uuid.UUID) -> None:
        await self._session.execute(
            update(Bid)
            .where(Bid.job_id == job_id, Bid.worker_id == worker_id, Bid.is_winning_bid.is_(True))
            .values(cancelled_by_worker=True)
            .execution_options(synchronize_session=False)
        )

    async def mark_winning(self, bid: Bid) -> bool:
        """Compare-and-set a pending bid into the accepted, winning bid."""
        result = await self._session.execute(
            update(Bid)
            .where(
                Bid.id == bid.id,
                Bid.status == BidStatus.PENDING.value,
                Bid.is_winning_bid.is_(False),
            )
            .values(status=BidStatus.ACCEPTED.value, is_winning_bid=True)
            .execution_options(synchronize_session=False)
        )
        await self._session.refresh(bid)
        return result.rowcount == 1

    async def update_change_request(
        self,
        bid: Bid,
        expected_change_status: str,
        **values: Any,
    ) -> bool:
        """Compare-and-set the change-request sub-record of a bid."""
        result = await self._session.execute(
            update(Bid)
            .where(Bid.id == bid.id, Bid.change_status == expected_change_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._session.refresh(bid)
        return result.rowcount == 1

    async def has_pending_change(self, bid_id: uuid.UUID) -> bool:
        result = await self._session.execute(
            select(
                exists().where(
                    Bid.id == bid_id, Bid.change_status == ChangeRequestStatus.PENDING.value
                )
            )
        )
        return bool(result.scalar())

    async def add_revision(
        self,
        bid_id: uuid.UUID,
        kind: str,
        price: Decimal,
        earnings: Decimal,
        message: str | None = None,
    ) -> BidRevision:
        revision = BidRevision(
            bid_id=bid_id, kind=kind, price=price, earnings=earnings, message=message
        )
        self._session.add(revision)
        await self._session.flush()
        return revision

    async def list_revisions(self, bid_id: uuid.UUID) -> list[BidRevision]:
        result = await self._session.execute(
            select(BidRevision).where(BidRevision.bid_id == bid_id).order_by(BidRevision.id.asc())
        )
        return list(result.scalars().all())


class LedgerRepository:
    """Data access for the append-only wallet ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, entry: WalletEntry) -> WalletEntry:
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def get_by_id(self, entry_id: uuid.UUID) -> WalletEntry | None:
        return await self._session.get(WalletEntry, entry_id, populate_existing=True)

    async def credit_for_job(self, job_id: uuid.UUID) -> WalletEntry | None:
        result = await self._session.execute(
            select(WalletEntry).where(
                WalletEntry.job_id == job_id,
                WalletEntry.entry_type == LedgerEntryType.CREDIT.value,
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_worker(self, worker_id: uuid.UUID) -> list[WalletEntry]:
        result = await self._session.execute(
            select(WalletEntry)
            .where(WalletEntry.worker_id == worker_id)
            .order_by(WalletEntry.created_at.desc())
        )
        return list(result.scalars().all())

    async def ids_due_for_maturation(self, now: datetime) -> list[uuid.UUID]:
        """Unreleased, unblocked entries whose time has come.

        Credits of jobs still awaiting confirmation, or refunded to the
        customer, are excluded.
        """
        awaiting = exists().where(
            Job.id == WalletEntry.job_id,
            Job.status.in_(AWAITING_CONFIRMATION) | (Job.payment_status == PaymentStatus.REFUNDED.value),
        )
        result = await self._session.execute(
            select(WalletEntry.id)
            .where(
                WalletEntry.released.is_(False),
                WalletEntry.blocked.is_(False),
                WalletEntry.available_at <= now,
                ~awaiting,
            )
            .order_by(WalletEntry.available_at.asc())
        )
        return list(result.scalars().all())

    async def mark_released(self, entry_id: uuid.UUID, now: datetime) -> bool:
        """Compare-and-set an entry to released. False when not eligible."""
        result = await self._session.execute(
            update(WalletEntry)
            .where(
                WalletEntry.id == entry_id,
                WalletEntry.released.is_(False),
                WalletEntry.blocked.is_(False),
                WalletEntry.available_at <= now,
            )
            .values(released=True, released_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_unreleased(self, entry_id: uuid.UUID, **values: Any) -> bool:
        result = await self._session.execute(
            update(WalletEntry)
            .where(WalletEntry.id == entry_id, WalletEntry.released.is_(False))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_blocked(
        self,
        blocked: bool,
        job_id: uuid.UUID | None = None,
        worker_id: uuid.UUID | None = None,
    ) -> int:
        """Block or unblock unreleased entries of a job or a worker."""
        if job_id is None and worker_id is None:
            raise ValueError("set_blocked needs a job_id or a worker_id")
        stmt = update(WalletEntry).where(
            WalletEntry.released.is_(False), WalletEntry.blocked.is_(not blocked)
        )
        if job_id is not None:
            stmt = stmt.where(WalletEntry.job_id == job_id)
        if worker_id is not None:
            stmt = stmt.where(WalletEntry.worker_id == worker_id)
        result = await self._session.execute(
            stmt.values(blocked=blocked).execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def totals_for_worker(self, worker_id: uuid.UUID) -> dict[str, Decimal]:
        """Sum entries by (type, released) for a worker."""
        result = await self._session.execute(
            select(WalletEntry.entry_type, WalletEntry.released, func.sum(WalletEntry.amount))
            .where(WalletEntry.worker_id == worker_id)
            .group_by(WalletEntry.entry_type, WalletEntry.released)
        )
        totals = {
            "released_credit": ZERO,
            "released_debit": ZERO,
            "held_credit": ZERO,
            "held_debit": ZERO,
        }
        for entry_type, released, amount in result.all():
            key = f"{'released' if released else 'held'}_{entry_type}"
            totals[key] = Decimal(str(amount or 0)).quantize(ZERO)
        return totals
