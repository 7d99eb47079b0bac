"""Job Service: core business logic for the job lifecycle.

This is the application layer that coordinates between:
    - Domain state machine (transition guard)
    - Repositories (compare-and-set writes, audit log)
    - Payment gateway (escrow hold, release, refund)
    - Ledger and reliability services (same transaction)
    - Outbox (notifications and events, delivered after commit)

Both REST routes and MCP tools call into this service, and the settlement
sweep calls ``auto_confirm`` and ``expire_job``, so every rule lives here.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from job_broker.domain.audit import verify_projection
from job_broker.domain.earnings import calculate_earnings, to_money
from job_broker.domain.enums import (
    ActorRole,
    AuditAction,
    BidStatus,
    DisputeResolution,
    EventTopic,
    JobStatus,
    NotificationKind,
    PaymentStatus,
)
from job_broker.domain.exceptions import (
    BidNotFoundError,
    CompletionTooEarlyError,
    InvalidStateTransitionError,
    JobAlreadyAssignedError,
    MarketplaceError,
    NotEntitledError,
    WinningBidExistsError,
)
from job_broker.domain.state_machine import JobStateMachine
from job_broker.infrastructure.database.orm_models import Job
from job_broker.infrastructure.database.retry import retry_on_transient_storage_error
from job_broker.logging_config import get_logger
from job_broker.services.base import LifecycleService
from job_broker.services.reliability_service import ReliabilityService
from job_broker.services.wallet_service import WalletService

if TYPE_CHECKING:
    import uuid
    from datetime import datetime, timedelta

    from job_broker.infrastructure.database.orm_models import Bid, JobEvent
    from job_broker.services.fanout import Outbox

logger = get_logger(__name__)

ZERO = Decimal("0.00")

CUSTOMER_BUCKETS: dict[str, tuple[JobStatus, ...]] = {
    "pending": (JobStatus.PENDING, JobStatus.REOPENED, JobStatus.WAITLISTED),
    "active": (JobStatus.ASSIGNED, JobStatus.WORKER_COMPLETED, JobStatus.DISPUTE, JobStatus.DISPUTED),
    "completed": (JobStatus.COMPLETED, JobStatus.CANCELLED),
}


class JobService(LifecycleService):
    """Manages the job lifecycle from posting to settlement."""

    def _wallet(self) -> WalletService:
        return WalletService(self._session, self._collab, self._settings, self._clock)

    def _reliability(self) -> ReliabilityService:
        return ReliabilityService(self._session, self._collab, self._settings, self._clock)

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    async def post_job(
        self,
        customer_id: uuid.UUID,
        title: str,
        budget: Decimal,
        scheduled_at: datetime,
        description: str | None = None,
        location: str | None = None,
    ) -> Job:
        """Create a new job in pending state."""
        await self._get_customer_or_raise(customer_id)
        budget = to_money(budget)
        if budget <= 0:
            raise MarketplaceError(f"Budget must be positive: {budget}", code="INVALID_BUDGET")

        job = Job(
            customer_id=customer_id,
            title=title,
            description=description,
            budget=budget,
            location=location,
            scheduled_at=scheduled_at,
            status=JobStatus.PENDING.value,
            payment_status=PaymentStatus.UNPAID.value,
            repost_count=0,
        )
        await self._jobs.create(job)
        await self._events.record(
            job_id=job.id,
            action=AuditAction.JOB_POSTED,
            actor_role=ActorRole.CUSTOMER,
            actor_id=str(customer_id),
            old_status=None,
            new_status=JobStatus.PENDING.value,
            metadata={"budget": str(budget), "scheduled_at": scheduled_at.isoformat()},
        )

        outbox = self._new_outbox()
        self._publish_job_update(outbox, job, "Job posted")
        await self._commit(outbox)

        logger.info("job.posted", job_id=str(job.id), customer_id=str(customer_id), budget=str(budget))
        return job

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_job(self, job_id: uuid.UUID) -> Job:
        return await self._get_job_or_raise(job_id)

    async def get_job_with_bids(self, job_id: uuid.UUID) -> tuple[Job, list[Bid]]:
        """The job and its active (not invalidated) bids."""
        job = await self._get_job_or_raise(job_id)
        return job, await self._bids.list_by_job(job_id)

    async def list_jobs_for_customer(self, customer_id: uuid.UUID) -> dict[str, list[Job]]:
        await self._get_customer_or_raise(customer_id)
        jobs = await self._jobs.list_by_customer(customer_id)
        buckets: dict[str, list[Job]] = {name: [] for name in CUSTOMER_BUCKETS}
        for job in jobs:
            for name, statuses in CUSTOMER_BUCKETS.items():
                if job.status in statuses:
                    buckets[name].append(job)
                    break
        return buckets

    async def list_assigned_jobs(self, worker_id: uuid.UUID) -> list[Job]:
        await self._get_worker_or_raise(worker_id)
        return await self._jobs.list_by_assigned_worker(worker_id)

    async def get_history(self, job_id: uuid.UUID) -> list[JobEvent]:
        await self._get_job_or_raise(job_id)
        return await self._events.get_by_job(job_id)

    async def get_status(self, job_id: uuid.UUID) -> dict:
        """Current status with the events allowed from it."""
        job = await self._get_job_or_raise(job_id)
        sm = JobStateMachine(current_status=job.status)
        return {
            "job_id": str(job.id),
            "status": job.status,
            "payment_status": job.payment_status,
            "allowed_events": sm.get_allowed_events(),
        }

    async def verify_history(self, job_id: uuid.UUID) -> bool:
        """True when the stored status equals the fold of the audit log."""
        job = await self._get_job_or_raise(job_id)
        events = await self._events.get_by_job(job_id)
        if not verify_projection(job.status, [e.action for e in events]):
            logger.error("job.status_drift", job_id=str(job_id), stored=job.status)
            return False
        return True

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    @retry_on_transient_storage_error
    async def accept_bid(
        self,
        job_id: uuid.UUID,
        bid_id: uuid.UUID,
        customer_id: uuid.UUID | None = None,
    ) -> Job:
        """Assign the job to the bid's worker and capture the escrow hold."""
        job = await self._get_job_or_raise(job_id)
        bid = await self._get_bid_or_raise(bid_id)
        if bid.job_id != job.id:
            raise BidNotFoundError(f"{bid_id} on job {job_id}")
        if customer_id is not None and job.customer_id != customer_id:
            raise NotEntitledError(str(customer_id), f"job {job_id}", current_status=job.status)
        if job.assigned_worker_id is not None:
            raise JobAlreadyAssignedError(str(job_id), job.status)
        if await self._bids.get_winning(job.id) is not None:
            raise WinningBidExistsError(str(job_id), current_status=job.status)
        if bid.status != BidStatus.PENDING:
            raise InvalidStateTransitionError(bid.status, "accept_bid", str(bid_id))

        worker = await self._get_worker_or_raise(bid.worker_id)
        await self._reliability().ensure_eligible(worker)

        job_key = str(job.id)
        price = bid.price
        old_status = await self._transition(
            job,
            "accept_bid",
            AuditAction.BID_ACCEPTED,
            ActorRole.CUSTOMER if customer_id is not None else ActorRole.SYSTEM,
            str(customer_id) if customer_id is not None else None,
            notes=f"Accepted bid of {price}",
            metadata={"bid_id": str(bid_id), "worker_id": str(worker.id), "price": str(price)},
            assigned_worker_id=worker.id,
            assigned_price=price,
        )
        try:
            won = await self._bids.mark_winning(bid)
        except IntegrityError:
            won = False
        if not won:
            await self._session.rollback()
            raise WinningBidExistsError(job_key, current_status=old_status)

        if job.escrow_ref is None:
            escrow_ref = await self._call_gateway(
                self._collab.payments.capture_hold(job_key, price), job_key, old_status
            )
            await self._jobs.update_fields(
                job,
                escrow_ref=escrow_ref,
                held_amount=price,
                payment_status=PaymentStatus.HOLDING.value,
            )

        outbox = self._new_outbox()
        outbox.notify(
            worker.email,
            NotificationKind.JOB_ASSIGNED,
            job_id=job_key,
            job_title=job.title,
            price=str(price),
            estimated_earnings=str(bid.estimated_earnings),
            scheduled_at=job.scheduled_at.isoformat(),
        )
        losing = [b for b in await self._bids.list_by_job(job.id) if b.id != bid.id]
        for loser in await self._workers.get_many(b.worker_id for b in losing):
            outbox.notify(loser.email, NotificationKind.BID_NOT_SELECTED, job_id=job_key, job_title=job.title)
        outbox.publish(EventTopic.JOB_ASSIGNED, job_id=job_key, worker_id=str(worker.id), bid_id=str(bid_id))
        self._publish_job_update(outbox, job, "Bid accepted")
        await self._commit(outbox)

        logger.info(
            "job.assigned",
            job_id=job_key,
            worker_id=str(worker.id),
            bid_id=str(bid_id),
            price=str(price),
            escrow_ref=job.escrow_ref,
        )
        return job

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    @retry_on_transient_storage_error
    async def mark_worker_complete(self, job_id: uuid.UUID, worker_id: uuid.UUID) -> Job:
        """The assigned worker reports the job done, starting the hold window."""
        job = await self._get_job_or_raise(job_id)
        if job.assigned_worker_id != worker_id:
            raise NotEntitledError(str(worker_id), f"job {job_id}", current_status=job.status)
        self._fire_transition(job, "mark_worker_complete")

        now = self._clock()
        if now.date() < job.scheduled_at.date():
            raise CompletionTooEarlyError(str(job_id), job.scheduled_at.date().isoformat(), job.status)

        release_date = now + self._settings.completion_hold
        await self._transition(
            job,
            "mark_worker_complete",
            AuditAction.WORKER_COMPLETED,
            ActorRole.WORKER,
            str(worker_id),
            notes="Worker marked the job complete",
            metadata={"release_date": release_date.isoformat()},
            worker_marked_at=now,
            release_date=release_date,
        )
        await self._wallet().schedule_job_credit(
            worker_id=worker_id,
            job_id=job.id,
            amount=calculate_earnings(job.assigned_price),
            available_at=release_date,
            note="Held until customer confirmation or automatic release",
        )

        worker = await self._get_worker_or_raise(worker_id)
        hold_hours = self._settings.completion_hold_hours
        outbox = self._new_outbox()
        outbox.notify(
            worker.email,
            NotificationKind.COMPLETION_RECORDED,
            job_id=str(job.id),
            job_title=job.title,
            release_date=release_date.isoformat(),
        )
        outbox.notify(
            await self._customer_email(job.customer_id),
            NotificationKind.COMPLETION_ACTION_REQUIRED,
            job_id=str(job.id),
            job_title=job.title,
            message=(
                f"Please confirm or dispute within {hold_hours} hours; "
                "payment is released automatically afterwards."
            ),
            release_date=release_date.isoformat(),
        )
        self._publish_job_update(outbox, job, "Worker marked the job complete")
        await self._commit(outbox)

        logger.info("job.worker_completed", job_id=str(job.id), worker_id=str(worker_id), release_date=release_date.isoformat())
        return job

    @retry_on_transient_storage_error
    async def confirm_completion(self, job_id: uuid.UUID, customer_id: uuid.UUID) -> Job:
        """Customer confirms the work. A job already completed is returned unchanged."""
        job = await self._get_job_or_raise(job_id)
        if job.customer_id != customer_id:
            raise NotEntitledError(str(customer_id), f"job {job_id}", current_status=job.status)
        if job.status == JobStatus.COMPLETED:
            logger.info("job.confirm_noop", job_id=str(job_id), reason="already completed")
            return job

        outbox = self._new_outbox()
        try:
            await self._settle_completion(
                job,
                event_name="customer_confirm",
                action=AuditAction.CUSTOMER_CONFIRMED,
                actor_role=ActorRole.CUSTOMER,
                actor_id=str(customer_id),
                confirmed_field="customer_confirmed_at",
                outbox=outbox,
            )
        except InvalidStateTransitionError:
            if job.status == JobStatus.COMPLETED:
                logger.info("job.confirm_noop", job_id=str(job_id), reason="completed concurrently")
                return job
            raise
        await self._commit(outbox)
        logger.info("job.customer_confirmed", job_id=str(job_id), customer_id=str(customer_id))
        return job

    @retry_on_transient_storage_error
    async def auto_confirm(self, job_id: uuid.UUID) -> bool:
        """Complete a job whose hold window lapsed. False when there is nothing to do."""
        job = await self._get_job_or_raise(job_id)
        now = self._clock()
        if (
            job.status != JobStatus.WORKER_COMPLETED
            or job.release_date is None
            or job.release_date > now
        ):
            return False

        outbox = self._new_outbox()
        try:
            await self._settle_completion(
                job,
                event_name="auto_confirm",
                action=AuditAction.AUTO_CONFIRMED,
                actor_role=ActorRole.SYSTEM,
                actor_id=None,
                confirmed_field="auto_confirmed_at",
                outbox=outbox,
            )
        except InvalidStateTransitionError:
            logger.info("job.auto_confirm_noop", job_id=str(job_id), current=job.status)
            return False
        await self._commit(outbox)
        logger.info("job.auto_confirmed", job_id=str(job_id))
        return True

    async def _settle_completion(
        self,
        job: Job,
        event_name: str,
        action: AuditAction,
        actor_role: ActorRole,
        actor_id: str | None,
        confirmed_field: str,
        outbox: Outbox,
    ) -> None:
        """worker_completed -> completed, then reconcile, release and credit."""
        now = self._clock()
        job_key = str(job.id)
        worker_id = job.assigned_worker_id
        old_status = await self._transition(
            job,
            event_name,
            action,
            actor_role,
            actor_id,
            notes=f"Final amount: {job.assigned_price}",
            metadata={"final_amount": str(job.assigned_price)},
            payment_status=PaymentStatus.PENDING_RELEASE.value,
            **{confirmed_field: now},
        )
        await self._reconcile_payment(job, old_status)
        if job.escrow_ref is not None:
            await self._call_gateway(
                self._collab.payments.release_to_worker(job.escrow_ref), job_key, old_status
            )

        wallet = self._wallet()
        entry = await self._ledger.credit_for_job(job.id)
        if entry is None:
            entry = await wallet.schedule_job_credit(
                worker_id=worker_id,
                job_id=job.id,
                amount=calculate_earnings(job.assigned_price),
                available_at=now,
                note="Payout on completion",
            )
        elif entry.available_at > now:
            await self._ledger.update_unreleased(entry.id, available_at=now)
        await wallet.mature_entry(entry.id, outbox)
        await self._jobs.refresh(job)

        worker = await self._get_worker_or_raise(worker_id)
        kind = (
            NotificationKind.JOB_AUTO_CONFIRMED
            if action == AuditAction.AUTO_CONFIRMED
            else NotificationKind.JOB_COMPLETED
        )
        context = {"job_id": job_key, "job_title": job.title, "final_amount": str(job.assigned_price)}
        outbox.notify(worker.email, kind, **context)
        outbox.notify(await self._customer_email(job.customer_id), kind, **context)
        self._publish_job_update(outbox, job, "Job completed")

    async def _reconcile_payment(self, job: Job, status_before: str) -> None:
        """Capture or refund the difference between the hold and the final price."""
        if job.escrow_ref is None or job.held_amount is None or job.assigned_price is None:
            return
        difference = to_money(job.assigned_price - job.held_amount)
        threshold = Decimal(self._settings.price_reconcile_threshold)
        if abs(difference) < threshold:
            return

        job_key = str(job.id)
        if difference > 0:
            await self._call_gateway(
                self._collab.payments.capture_additional(job.escrow_ref, difference), job_key, status_before
            )
            await self._jobs.update_fields(job, held_amount=job.assigned_price)
        else:
            refund = -difference
            await self._call_gateway(
                self._collab.payments.refund(job.escrow_ref, refund), job_key, status_before
            )
            await self._jobs.update_fields(
                job,
                held_amount=job.assigned_price,
                refunded_amount=to_money((job.refunded_amount or ZERO) + refund),
            )
        logger.info("payment.reconciled", job_id=job_key, difference=str(difference))

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    @retry_on_transient_storage_error
    async def file_dispute(self, job_id: uuid.UUID, customer_id: uuid.UUID, reason: str) -> Job:
        """Customer disputes the work; escrow stays held and ledger entries freeze."""
        job = await self._get_job_or_raise(job_id)
        if job.customer_id != customer_id:
            raise NotEntitledError(str(customer_id), f"job {job_id}", current_status=job.status)

        now = self._clock()
        await self._transition(
            job,
            "file_dispute",
            AuditAction.DISPUTE_FILED,
            ActorRole.CUSTOMER,
            str(customer_id),
            notes=reason,
            disputed_at=now,
            dispute_reason=reason,
        )
        blocked = await self._ledger.set_blocked(True, job_id=job.id)

        worker = await self._get_worker_or_raise(job.assigned_worker_id)
        customer_email = await self._customer_email(job.customer_id)
        context = {"job_id": str(job.id), "job_title": job.title, "reason": reason}
        outbox = self._new_outbox()
        outbox.notify(worker.email, NotificationKind.DISPUTE_FILED, **context)
        outbox.notify(customer_email, NotificationKind.DISPUTE_FILED, **context)
        outbox.notify(
            self._settings.admin_email,
            NotificationKind.DISPUTE_ADMIN_ALERT,
            customer_email=customer_email,
            worker_email=worker.email,
            **context,
        )
        self._publish_job_update(outbox, job, "Dispute filed")
        await self._commit(outbox)

        logger.info("job.dispute_filed", job_id=str(job_id), blocked_entries=blocked)
        return job

    @retry_on_transient_storage_error
    async def triage_dispute(self, job_id: uuid.UUID, admin_id: str, notes: str | None = None) -> Job:
        job = await self._get_job_or_raise(job_id)
        await self._transition(
            job,
            "triage_dispute",
            AuditAction.DISPUTE_TRIAGED,
            ActorRole.ADMIN,
            admin_id,
            notes=notes,
        )
        outbox = self._new_outbox()
        self._publish_job_update(outbox, job, "Dispute under review")
        await self._commit(outbox)
        logger.info("job.dispute_triaged", job_id=str(job_id), admin_id=admin_id)
        return job

    @retry_on_transient_storage_error
    async def resolve_dispute(
        self,
        job_id: uuid.UUID,
        admin_id: str,
        favor: DisputeResolution,
        refund_amount: Decimal | None = None,
        notes: str | None = None,
    ) -> Job:
        """Close a dispute for the worker, or refund the customer fully or partly."""
        job = await self._get_job_or_raise(job_id)
        job_key = str(job.id)
        worker_id = job.assigned_worker_id
        held = to_money(job.held_amount or ZERO)
        entry = await self._ledger.credit_for_job(job.id)
        now = self._clock()
        outbox = self._new_outbox()

        if favor == DisputeResolution.WORKER:
            old_status = await self._transition(
                job,
                "resolve_for_worker",
                AuditAction.DISPUTE_RESOLVED_WORKER,
                ActorRole.ADMIN,
                admin_id,
                notes=notes,
                payment_status=PaymentStatus.PENDING_RELEASE.value,
            )
            if job.escrow_ref is not None:
                await self._call_gateway(
                    self._collab.payments.release_to_worker(job.escrow_ref), job_key, old_status
                )
            if entry is not None:
                await self._ledger.update_unreleased(entry.id, blocked=False, available_at=now)
                await self._wallet().mature_entry(entry.id, outbox)
            outcome = "resolved for the worker"
        elif refund_amount is None or to_money(refund_amount) >= held:
            old_status = await self._transition(
                job,
                "resolve_full_refund",
                AuditAction.DISPUTE_REFUNDED,
                ActorRole.ADMIN,
                admin_id,
                notes=notes,
                metadata={"worker_id": str(worker_id), "refund": str(held)},
                payment_status=PaymentStatus.REFUNDED.value,
                refunded_amount=held,
                assigned_worker_id=None,
                assigned_price=None,
                cancellation_reason="Dispute resolved with a full refund",
                cancelled_by=ActorRole.ADMIN.value,
                cancelled_by_id=admin_id,
                cancelled_at=now,
            )
            if job.escrow_ref is not None and held > 0:
                await self._call_gateway(
                    self._collab.payments.refund(job.escrow_ref, held), job_key, old_status
                )
            await self._bids.reject_all_for_job(job.id)
            outcome = "refunded in full"
        else:
            refund = to_money(refund_amount)
            if refund <= 0:
                raise MarketplaceError(f"Refund amount must be positive: {refund}", code="INVALID_AMOUNT")
            old_status = await self._transition(
                job,
                "resolve_partial_refund",
                AuditAction.DISPUTE_RESOLVED_PARTIAL,
                ActorRole.ADMIN,
                admin_id,
                notes=notes,
                metadata={"refund": str(refund)},
                payment_status=PaymentStatus.PARTIAL_REFUND.value,
                refunded_amount=refund,
            )
            if job.escrow_ref is not None:
                await self._call_gateway(
                    self._collab.payments.refund(job.escrow_ref, refund), job_key, old_status
                )
                await self._call_gateway(
                    self._collab.payments.release_to_worker(job.escrow_ref), job_key, old_status
                )
            earnings = calculate_earnings(held - refund)
            if entry is not None and earnings > 0:
                await self._ledger.update_unreleased(entry.id, amount=earnings, blocked=False, available_at=now)
                await self._wallet().mature_entry(entry.id, outbox)
            outcome = f"resolved with a partial refund of {refund}"

        await self._jobs.refresh(job)
        context = {"job_id": job_key, "job_title": job.title, "outcome": outcome}
        if worker_id is not None:
            worker = await self._get_worker_or_raise(worker_id)
            outbox.notify(worker.email, NotificationKind.DISPUTE_RESOLVED, **context)
        outbox.notify(await self._customer_email(job.customer_id), NotificationKind.DISPUTE_RESOLVED, **context)
        self._publish_job_update(outbox, job, f"Dispute {outcome}")
        await self._commit(outbox)

        logger.info("job.dispute_resolved", job_id=job_key, admin_id=admin_id, favor=str(favor), status=job.status)
        return job

    # ------------------------------------------------------------------
    # Cancellation and reopening
    # ------------------------------------------------------------------

    @retry_on_transient_storage_error
    async def cancel_by_worker(self, job_id: uuid.UUID, worker_id: uuid.UUID, reason: str) -> Job:
        """The assigned worker backs out: the job reopens and the worker is penalised."""
        job = await self._get_job_or_raise(job_id)
        if job.assigned_worker_id != worker_id:
            raise NotEntitledError(str(worker_id), f"job {job_id}", current_status=job.status)

        previous_bidders = {b.worker_id for b in await self._bids.list_by_job(job.id)} - {worker_id}
        now = self._clock()
        await self._transition(
            job,
            "worker_cancel",
            AuditAction.WORKER_CANCELLED,
            ActorRole.WORKER,
            str(worker_id),
            notes=reason,
            metadata={"price": str(job.assigned_price)},
            assigned_worker_id=None,
            assigned_price=None,
            repost_count=Job.repost_count + 1,
            cancellation_reason=reason,
            cancelled_by=ActorRole.WORKER.value,
            cancelled_by_id=str(worker_id),
            cancelled_at=now,
        )
        await self._bids.flag_cancelled_by_worker(job.id, worker_id)
        rejected = await self._bids.reject_all_for_job(job.id)

        outbox = self._new_outbox()
        worker, escalation = await self._reliability().record_cancellation(worker_id, job.id, outbox)

        job_key = str(job.id)
        outbox.notify(
            await self._customer_email(job.customer_id),
            NotificationKind.JOB_REOPENED,
            job_id=job_key,
            job_title=job.title,
            reason=reason,
            repost_count=job.repost_count,
        )
        outbox.notify(
            worker.email,
            NotificationKind.CANCELLATION_CONFIRMED,
            job_id=job_key,
            job_title=job.title,
            message=escalation.message,
        )
        for bidder in await self._workers.get_many(previous_bidders):
            outbox.notify(bidder.email, NotificationKind.REOPEN_INVITATION, job_id=job_key, job_title=job.title)
        outbox.publish(EventTopic.BID_REJECTED, job_id=job_key, reason="job reopened")
        self._publish_job_update(outbox, job, "Job reopened")
        await self._commit(outbox)

        logger.info(
            "job.reopened",
            job_id=job_key,
            worker_id=str(worker_id),
            repost_count=job.repost_count,
            bids_rejected=rejected,
            worker_status=worker.status,
        )
        return job

    @retry_on_transient_storage_error
    async def cancel_job(
        self,
        job_id: uuid.UUID,
        actor_role: ActorRole,
        actor_id: str,
        reason: str,
    ) -> Job:
        """Customer or admin cancels the job; any escrow hold is refunded."""
        if actor_role not in (ActorRole.CUSTOMER, ActorRole.ADMIN):
            raise NotEntitledError(actor_id, f"job {job_id}")
        job = await self._get_job_or_raise(job_id)
        if actor_role == ActorRole.CUSTOMER and str(job.customer_id) != str(actor_id):
            raise NotEntitledError(actor_id, f"job {job_id}", current_status=job.status)

        assigned_worker_id = job.assigned_worker_id
        bidders = {b.worker_id for b in await self._bids.list_by_job(job.id)}
        if assigned_worker_id is not None:
            bidders.add(assigned_worker_id)

        now = self._clock()
        old_status = await self._transition(
            job,
            "cancel_job",
            AuditAction.JOB_CANCELLED,
            actor_role,
            actor_id,
            notes=reason,
            assigned_worker_id=None,
            assigned_price=None,
            cancellation_reason=reason,
            cancelled_by=actor_role.value,
            cancelled_by_id=actor_id,
            cancelled_at=now,
        )
        await self._refund_hold(job, old_status)
        await self._bids.reject_all_for_job(job.id)

        outbox = self._new_outbox()
        context = {"job_id": str(job.id), "job_title": job.title, "reason": reason}
        outbox.notify(await self._customer_email(job.customer_id), NotificationKind.JOB_CANCELLED, **context)
        for worker in await self._workers.get_many(bidders):
            outbox.notify(worker.email, NotificationKind.JOB_CANCELLED, **context)
        self._publish_job_update(outbox, job, "Job cancelled")
        await self._commit(outbox)

        logger.info("job.cancelled", job_id=str(job.id), by=actor_role.value, payment_status=job.payment_status)
        return job

    @retry_on_transient_storage_error
    async def expire_job(self, job_id: uuid.UUID) -> bool:
        """Cancel a job nobody took before its scheduled time plus grace. False if not due."""
        job = await self._get_job_or_raise(job_id)
        now = self._clock()
        cutoff = now - self._settings.expired_job_grace
        if (
            job.status not in (JobStatus.PENDING, JobStatus.REOPENED, JobStatus.WAITLISTED)
            or job.assigned_worker_id is not None
            or job.scheduled_at >= cutoff
        ):
            return False

        reason = "No worker was assigned before the scheduled time"
        try:
            old_status = await self._transition(
                job,
                "expire_unassigned",
                AuditAction.AUTO_CANCELLED,
                ActorRole.SYSTEM,
                None,
                notes=reason,
                cancellation_reason=reason,
                cancelled_by=ActorRole.SYSTEM.value,
                cancelled_at=now,
            )
        except InvalidStateTransitionError:
            logger.info("job.expire_noop", job_id=str(job_id), current=job.status)
            return False
        await self._refund_hold(job, old_status)
        await self._bids.reject_all_for_job(job.id)

        outbox = self._new_outbox()
        context = {
            "job_id": str(job.id),
            "job_title": job.title,
            "scheduled_at": job.scheduled_at.isoformat(),
            "payment_status": job.payment_status,
        }
        outbox.notify(await self._customer_email(job.customer_id), NotificationKind.JOB_AUTO_CANCELLED, **context)
        outbox.notify(self._settings.admin_email, NotificationKind.JOB_AUTO_CANCELLED, **context)
        self._publish_job_update(outbox, job, "Job cancelled automatically")
        await self._commit(outbox)

        logger.info("job.auto_cancelled", job_id=str(job.id), payment_status=job.payment_status)
        return True

    async def _refund_hold(self, job: Job, status_before: str) -> None:
        if job.escrow_ref is None or job.payment_status != PaymentStatus.HOLDING:
            return
        held = to_money(job.held_amount or ZERO)
        if held > 0:
            await self._call_gateway(
                self._collab.payments.refund(job.escrow_ref, held), str(job.id), status_before
            )
        await self._jobs.update_fields(
            job,
            payment_status=PaymentStatus.REFUNDED.value,
            refunded_amount=to_money((job.refunded_amount or ZERO) + held),
        )

    # ------------------------------------------------------------------
    # Waitlisting
    # ------------------------------------------------------------------

    @retry_on_transient_storage_error
    async def waitlist_job(self, job_id: uuid.UUID, reason: str) -> Job:
        """Record that matching found no eligible worker."""
        job = await self._get_job_or_raise(job_id)
        await self._transition(
            job,
            "waitlist_job",
            AuditAction.WAITLISTED,
            ActorRole.SYSTEM,
            None,
            notes=reason,
            waitlist_reason=reason,
        )
        outbox = self._new_outbox()
        outbox.notify(
            await self._customer_email(job.customer_id),
            NotificationKind.JOB_WAITLISTED,
            job_id=str(job.id),
            job_title=job.title,
            reason=reason,
        )
        self._publish_job_update(outbox, job, "Job waitlisted")
        await self._commit(outbox)
        logger.info("job.waitlisted", job_id=str(job_id), reason=reason)
        return job

    @retry_on_transient_storage_error
    async def requeue_job(self, job_id: uuid.UUID) -> Job:
        job = await self._get_job_or_raise(job_id)
        await self._transition(
            job,
            "requeue_job",
            AuditAction.REQUEUED,
            ActorRole.SYSTEM,
            None,
            waitlist_reason=None,
        )
        outbox = self._new_outbox()
        self._publish_job_update(outbox, job, "Job open for bids again")
        await self._commit(outbox)
        logger.info("job.requeued", job_id=str(job_id))
        return job

    # ------------------------------------------------------------------
    # Admin cleanup
    # ------------------------------------------------------------------

    async def purge_settled_jobs(self, older_than: timedelta, admin_id: str) -> int:
        """Hard-delete settled jobs last touched before now - older_than.

        Ledger entries survive; they reference the job id without a foreign key.
        """
        cutoff = self._clock() - older_than
        job_ids = await self._jobs.ids_settled_before(cutoff)
        deleted = await self._jobs.delete_many(job_ids)
        await self._commit()
        logger.info("job.purged", admin_id=admin_id, cutoff=cutoff.isoformat(), deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _publish_job_update(self, outbox: Outbox, job: Job, message: str) -> None:
        outbox.publish(
            EventTopic.JOB_UPDATE,
            job_id=str(job.id),
            status=job.status,
            payment_status=job.payment_status,
            customer_id=str(job.customer_id),
            worker_id=str(job.assigned_worker_id) if job.assigned_worker_id else None,
            message=message,
        )
