"""Bid Service: submission, pricing and change-request negotiation.

A worker holds at most one active bid per job. Earnings are always derived
from the price by the earnings schedule, never set directly. Price revisions
go through a change request that the job's customer accepts or rejects, and
every revision is appended to the bid's history.

Accepting a bid is part of the job lifecycle (see JobService.accept_bid).
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from job_broker.domain.earnings import calculate_earnings, is_payable_price, to_money
from job_broker.domain.enums import (
    BIDDABLE_STATUSES,
    BidStatus,
    ChangeRequestStatus,
    EventTopic,
    JobStatus,
    NotificationKind,
    RevisionKind,
)
from job_broker.domain.exceptions import (
    BidNotFoundError,
    ChangeRequestStateError,
    DuplicateBidError,
    InvalidBidPriceError,
    InvalidStateTransitionError,
    NotEntitledError,
)
from job_broker.infrastructure.database.orm_models import Bid
from job_broker.infrastructure.database.retry import retry_on_transient_storage_error
from job_broker.logging_config import get_logger
from job_broker.services.base import LifecycleService
from job_broker.services.reliability_service import ReliabilityService

if TYPE_CHECKING:
    import uuid

    from job_broker.infrastructure.database.orm_models import BidRevision, Job

logger = get_logger(__name__)

# Open jobs accept renegotiation on any live bid; an assigned job only on the winning bid.
OPEN_STATUSES = frozenset({JobStatus.PENDING, JobStatus.REOPENED})


def is_negotiable(job: Job, bid: Bid) -> bool:
    if job.status in OPEN_STATUSES:
        return True
    return job.status == JobStatus.ASSIGNED and bool(bid.is_winning_bid)


class BidService(LifecycleService):
    """Manages bids on jobs."""

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    @retry_on_transient_storage_error
    async def submit_bid(
        self,
        job_id: uuid.UUID,
        worker_id: uuid.UUID,
        price: Decimal,
        message: str | None = None,
    ) -> Bid:
        """Place a worker's bid on a biddable job."""
        job = await self._get_job_or_raise(job_id)
        worker = await self._get_worker_or_raise(worker_id)

        if job.status not in BIDDABLE_STATUSES:
            raise InvalidStateTransitionError(job.status, "submit_bid", str(job_id))

        await ReliabilityService(
            self._session, self._collab, self._settings, self._clock
        ).ensure_eligible(worker)

        price = to_money(price)
        if not is_payable_price(price):
            raise InvalidBidPriceError(str(price))
        earnings = calculate_earnings(price)

        existing = await self._bids.get_active_for_worker(job_id, worker_id)
        if existing is not None:
            if job.status != JobStatus.REOPENED:
                raise DuplicateBidError(str(job_id), str(worker_id), current_status=job.status)
            replaced = await self._bids.reject_active_for_worker(job_id, worker_id)
            logger.info("bid.replaced_on_reopened_job", job_id=str(job_id), worker_id=str(worker_id), replaced=replaced)

        job_status = job.status
        bid = Bid(
            job_id=job_id,
            worker_id=worker_id,
            price=price,
            estimated_earnings=earnings,
            message=message,
            status=BidStatus.PENDING.value,
            is_winning_bid=False,
            change_status=ChangeRequestStatus.NONE.value,
        )
        try:
            await self._bids.create(bid)
        except IntegrityError as exc:
            await self._session.rollback()
            raise DuplicateBidError(str(job_id), str(worker_id), current_status=job_status) from exc
        await self._bids.add_revision(bid.id, RevisionKind.ORIGINAL.value, price, earnings, message)

        outbox = self._new_outbox()
        outbox.notify(
            worker.email,
            NotificationKind.BID_SUBMITTED,
            job_id=str(job_id),
            job_title=job.title,
            price=str(price),
            estimated_earnings=str(earnings),
        )
        outbox.notify(
            await self._customer_email(job.customer_id),
            NotificationKind.NEW_BID,
            job_id=str(job_id),
            job_title=job.title,
            worker_name=worker.name,
            price=str(price),
        )
        outbox.publish(
            EventTopic.JOB_BID_RECEIVED,
            job_id=str(job_id),
            bid_id=str(bid.id),
            worker_id=str(worker_id),
            price=str(price),
            customer_id=str(job.customer_id),
        )
        await self._commit(outbox)

        logger.info(
            "bid.submitted",
            bid_id=str(bid.id),
            job_id=str(job_id),
            worker_id=str(worker_id),
            price=str(price),
            earnings=str(earnings),
        )
        return bid

    # ------------------------------------------------------------------
    # Change requests
    # ------------------------------------------------------------------

    @retry_on_transient_storage_error
    async def request_price_change(
        self,
        bid_id: uuid.UUID,
        new_price: Decimal,
        message: str | None = None,
        worker_id: uuid.UUID | None = None,
    ) -> Bid:
        """Propose a new price for a bid; the customer must accept it."""
        bid = await self._get_bid_or_raise(bid_id)
        if worker_id is not None and bid.worker_id != worker_id:
            raise NotEntitledError(str(worker_id), f"bid {bid_id}", current_status=bid.status)
        job = await self._get_job_or_raise(bid.job_id)

        if bid.status == BidStatus.REJECTED:
            raise ChangeRequestStateError(str(bid_id), bid.change_status, "Bid is no longer active")
        if not is_negotiable(job, bid):
            raise InvalidStateTransitionError(job.status, "request_price_change", str(job.id))
        if bid.change_status == ChangeRequestStatus.PENDING:
            raise ChangeRequestStateError(str(bid_id), bid.change_status, "A change request is already pending")

        new_price = to_money(new_price)
        if not is_payable_price(new_price):
            raise InvalidBidPriceError(str(new_price))
        new_earnings = calculate_earnings(new_price)

        now = self._clock()
        won = await self._bids.update_change_request(
            bid,
            bid.change_status,
            change_status=ChangeRequestStatus.PENDING.value,
            change_new_price=new_price,
            change_new_earnings=new_earnings,
            change_message=message,
            change_requested_at=now,
            change_responded_at=None,
            updated_at=now,
        )
        if not won:
            raise ChangeRequestStateError(str(bid_id), bid.change_status, "Change request was modified concurrently")
        await self._bids.add_revision(bid.id, RevisionKind.UPDATED.value, new_price, new_earnings, message)

        outbox = self._new_outbox()
        outbox.notify(
            await self._customer_email(job.customer_id),
            NotificationKind.BID_CHANGE_REQUESTED,
            job_id=str(job.id),
            job_title=job.title,
            bid_id=str(bid_id),
            old_price=str(bid.price),
            new_price=str(new_price),
            message=message,
        )
        outbox.publish(
            EventTopic.BID_CHANGE_UPDATE,
            job_id=str(job.id),
            bid_id=str(bid_id),
            change_status=ChangeRequestStatus.PENDING.value,
            new_price=str(new_price),
        )
        await self._commit(outbox)

        logger.info("bid.change_requested", bid_id=str(bid_id), new_price=str(new_price), earnings=str(new_earnings))
        return bid

    @retry_on_transient_storage_error
    async def cancel_pending_change_request(self, bid_id: uuid.UUID, worker_id: uuid.UUID) -> Bid:
        """Withdraw a pending change request. Only the bid's worker may do this."""
        bid = await self._get_bid_or_raise(bid_id)
        if bid.worker_id != worker_id:
            raise NotEntitledError(str(worker_id), f"bid {bid_id}", current_status=bid.status)
        if bid.change_status != ChangeRequestStatus.PENDING:
            raise ChangeRequestStateError(str(bid_id), bid.change_status, "No pending change request to cancel")

        won = await self._bids.update_change_request(
            bid,
            ChangeRequestStatus.PENDING.value,
            change_status=ChangeRequestStatus.NONE.value,
            change_new_price=None,
            change_new_earnings=None,
            change_message=None,
            change_requested_at=None,
            change_responded_at=None,
            updated_at=self._clock(),
        )
        if not won:
            raise ChangeRequestStateError(str(bid_id), bid.change_status, "No pending change request to cancel")

        job = await self._get_job_or_raise(bid.job_id)
        outbox = self._new_outbox()
        outbox.notify(
            await self._customer_email(job.customer_id),
            NotificationKind.BID_CHANGE_CANCELLED,
            job_id=str(job.id),
            job_title=job.title,
            bid_id=str(bid_id),
        )
        outbox.publish(
            EventTopic.BID_CHANGE_UPDATE,
            job_id=str(job.id),
            bid_id=str(bid_id),
            change_status=ChangeRequestStatus.NONE.value,
        )
        await self._commit(outbox)

        logger.info("bid.change_cancelled", bid_id=str(bid_id), worker_id=str(worker_id))
        return bid

    @retry_on_transient_storage_error
    async def respond_to_change_request(
        self,
        bid_id: uuid.UUID,
        customer_id: uuid.UUID,
        accept: bool,
    ) -> Bid:
        """Customer accepts or rejects a pending change request."""
        bid = await self._get_bid_or_raise(bid_id)
        job = await self._get_job_or_raise(bid.job_id)
        if job.customer_id != customer_id:
            raise NotEntitledError(str(customer_id), f"bid {bid_id}", current_status=job.status)
        if bid.change_status != ChangeRequestStatus.PENDING:
            raise ChangeRequestStateError(str(bid_id), bid.change_status, "No pending change request")
        if accept and not is_negotiable(job, bid):
            raise InvalidStateTransitionError(job.status, "accept_price_change", str(job.id))

        now = self._clock()
        new_price = bid.change_new_price
        new_earnings = bid.change_new_earnings
        if accept:
            values = {
                "change_status": ChangeRequestStatus.ACCEPTED.value,
                "price": new_price,
                "estimated_earnings": new_earnings,
            }
            kind = RevisionKind.ACCEPTED
        else:
            values = {"change_status": ChangeRequestStatus.REJECTED.value}
            kind = RevisionKind.REJECTED

        won = await self._bids.update_change_request(
            bid,
            ChangeRequestStatus.PENDING.value,
            change_responded_at=now,
            updated_at=now,
            **values,
        )
        if not won:
            raise ChangeRequestStateError(str(bid_id), bid.change_status, "No pending change request")
        await self._bids.add_revision(bid.id, kind.value, new_price, new_earnings, bid.change_message)

        if accept and bid.is_winning_bid:
            await self._jobs.update_fields(job, assigned_price=new_price, updated_at=now)

        worker = await self._get_worker_or_raise(bid.worker_id)
        outbox = self._new_outbox()
        outbox.notify(
            worker.email,
            NotificationKind.BID_CHANGE_ACCEPTED if accept else NotificationKind.BID_CHANGE_REJECTED,
            job_id=str(job.id),
            job_title=job.title,
            bid_id=str(bid_id),
            new_price=str(new_price),
            price=str(bid.price),
        )
        outbox.publish(
            EventTopic.BID_CHANGE_UPDATE,
            job_id=str(job.id),
            bid_id=str(bid_id),
            worker_id=str(bid.worker_id),
            change_status=bid.change_status,
            price=str(bid.price),
        )
        await self._commit(outbox)

        logger.info("bid.change_responded", bid_id=str(bid_id), accepted=accept, price=str(bid.price))
        return bid

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_bid(self, bid_id: uuid.UUID) -> Bid:
        return await self._get_bid_or_raise(bid_id)

    async def get_bid_for_worker(self, job_id: uuid.UUID, worker_id: uuid.UUID) -> Bid:
        """The worker's most recent bid on a job."""
        bid = await self._bids.get_latest_for_worker(job_id, worker_id)
        if bid is None:
            raise BidNotFoundError(f"job={job_id} worker={worker_id}")
        return bid

    async def list_bids_for_worker(self, worker_id: uuid.UUID) -> list[Bid]:
        await self._get_worker_or_raise(worker_id)
        return await self._bids.list_by_worker(worker_id)

    async def list_bids_for_job(self, job: Job) -> list[Bid]:
        return await self._bids.list_by_job(job.id)

    async def get_bid_history(self, bid_id: uuid.UUID) -> list[BidRevision]:
        await self._get_bid_or_raise(bid_id)
        return await self._bids.list_revisions(bid_id)
