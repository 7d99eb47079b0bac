"""Tests for bid submission and price change requests."""

from __future__ import annotations

from decimal import Decimal

import pytest

from job_broker.domain.enums import BidStatus, ChangeRequestStatus, JobStatus, NotificationKind, WorkerStatus
from job_broker.domain.exceptions import (
    ChangeRequestStateError,
    DuplicateBidError,
    InvalidBidPriceError,
    InvalidStateTransitionError,
    NotEntitledError,
    WorkerSuspendedError,
)


class TestSubmitBid:
    @pytest.mark.asyncio
    async def test_bid_carries_estimated_earnings(self, services, make_customer, make_worker, make_job, notifier) -> None:
        customer = await make_customer()
        worker = await make_worker()
        job = await make_job(customer)

        bid = await services.bids.submit_bid(job.id, worker.id, Decimal("90"), "Can do Monday")

        assert bid.status == BidStatus.PENDING
        assert bid.price == Decimal("90.00")
        assert bid.estimated_earnings == Decimal("85.51")
        assert notifier.kinds_for(worker.email) == [NotificationKind.BID_SUBMITTED]
        assert notifier.kinds_for(customer.email) == [NotificationKind.NEW_BID]

        history = await services.bids.get_bid_history(bid.id)
        assert [r.kind for r in history] == ["original"]

    @pytest.mark.asyncio
    async def test_duplicate_bid_on_pending_job(self, services, make_customer, make_worker, make_job) -> None:
        customer = await make_customer()
        worker = await make_worker()
        job = await make_job(customer)
        await services.bids.submit_bid(job.id, worker.id, Decimal("90"))

        with pytest.raises(DuplicateBidError) as exc_info:
            await services.bids.submit_bid(job.id, worker.id, Decimal("80"))
        assert exc_info.value.current_status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_price_without_earnings_is_refused(self, services, make_customer, make_worker, make_job) -> None:
        customer = await make_customer()
        worker = await make_worker()
        job = await make_job(customer)

        with pytest.raises(InvalidBidPriceError):
            await services.bids.submit_bid(job.id, worker.id, Decimal("4.49"))

    @pytest.mark.asyncio
    async def test_assigned_job_is_closed_for_bids(self, services, assigned_job, make_worker) -> None:
        assigned = await assigned_job()
        latecomer = await make_worker("Bo")

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await services.bids.submit_bid(assigned.job.id, latecomer.id, Decimal("70"))
        assert exc_info.value.current_status == JobStatus.ASSIGNED

    @pytest.mark.asyncio
    async def test_rebid_on_reopened_job_replaces_active_bid(self, services, assigned_job, make_worker) -> None:
        assigned = await assigned_job()
        other = await make_worker("Bo")
        await services.jobs.cancel_by_worker(assigned.job.id, assigned.worker.id, "Van broke down")

        first = await services.bids.submit_bid(assigned.job.id, other.id, Decimal("100"))
        second = await services.bids.submit_bid(assigned.job.id, other.id, Decimal("95"))

        first = await services.bids.get_bid(first.id)
        assert first.status == BidStatus.REJECTED
        assert second.status == BidStatus.PENDING
        _, live = await services.jobs.get_job_with_bids(assigned.job.id)
        assert [b.id for b in live] == [second.id]

    @pytest.mark.asyncio
    async def test_suspended_worker_cannot_bid_until_suspension_lapses(
        self, services, assigned_job, make_customer, make_job, clock
    ) -> None:
        assigned = await assigned_job()
        job_id, worker_id, customer_id = assigned.job.id, assigned.worker.id, assigned.customer.id

        await services.jobs.cancel_by_worker(job_id, worker_id, "Sick")
        rebid = await services.bids.submit_bid(job_id, worker_id, Decimal("90"))
        await services.jobs.accept_bid(job_id, rebid.id, customer_id=customer_id)
        await services.jobs.cancel_by_worker(job_id, worker_id, "Sick again")

        worker = await services.reliability.get_reliability(worker_id)
        assert worker.status == WorkerStatus.SUSPENDED
        assert worker.cancellation_count == 2

        fresh_job = await make_job(await make_customer("Cy"))
        with pytest.raises(WorkerSuspendedError) as exc_info:
            await services.bids.submit_bid(fresh_job.id, worker_id, Decimal("90"))
        assert exc_info.value.current_status == WorkerStatus.SUSPENDED

        clock.advance(days=7, seconds=1)
        bid = await services.bids.submit_bid(fresh_job.id, worker_id, Decimal("90"))
        assert bid.status == BidStatus.PENDING
        worker = await services.reliability.get_reliability(worker_id)
        assert worker.status == WorkerStatus.APPROVED
        assert worker.cancellation_count == 2


class TestChangeRequests:
    @pytest.mark.asyncio
    async def test_accepted_change_updates_price_and_history(
        self, services, make_customer, make_worker, make_job
    ) -> None:
        customer = await make_customer()
        worker = await make_worker()
        job = await make_job(customer)
        bid = await services.bids.submit_bid(job.id, worker.id, Decimal("90"))

        bid = await services.bids.request_price_change(bid.id, Decimal("120"), "Needs a second anchor", worker_id=worker.id)
        assert bid.change_status == ChangeRequestStatus.PENDING
        assert bid.price == Decimal("90.00")
        assert bid.change_new_earnings == Decimal("110.40")

        bid = await services.bids.respond_to_change_request(bid.id, customer.id, accept=True)
        assert bid.change_status == ChangeRequestStatus.ACCEPTED
        assert bid.price == Decimal("120.00")
        assert bid.estimated_earnings == Decimal("110.40")

        history = await services.bids.get_bid_history(bid.id)
        assert [r.kind for r in history] == ["original", "updated", "accepted"]

    @pytest.mark.asyncio
    async def test_only_one_pending_change(self, services, make_customer, make_worker, make_job) -> None:
        customer = await make_customer()
        worker = await make_worker()
        job = await make_job(customer)
        bid = await services.bids.submit_bid(job.id, worker.id, Decimal("90"))
        await services.bids.request_price_change(bid.id, Decimal("100"), worker_id=worker.id)

        with pytest.raises(ChangeRequestStateError):
            await services.bids.request_price_change(bid.id, Decimal("110"), worker_id=worker.id)

    @pytest.mark.asyncio
    async def test_cancel_and_reject(self, services, make_customer, make_worker, make_job) -> None:
        customer = await make_customer()
        worker = await make_worker()
        job = await make_job(customer)
        bid = await services.bids.submit_bid(job.id, worker.id, Decimal("90"))

        await services.bids.request_price_change(bid.id, Decimal("100"), worker_id=worker.id)
        bid = await services.bids.cancel_pending_change_request(bid.id, worker.id)
        assert bid.change_status == ChangeRequestStatus.NONE

        with pytest.raises(ChangeRequestStateError):
            await services.bids.cancel_pending_change_request(bid.id, worker.id)

        await services.bids.request_price_change(bid.id, Decimal("100"), worker_id=worker.id)
        bid = await services.bids.respond_to_change_request(bid.id, customer.id, accept=False)
        assert bid.change_status == ChangeRequestStatus.REJECTED
        assert bid.price == Decimal("90.00")

    @pytest.mark.asyncio
    async def test_only_the_job_owner_responds(self, services, make_customer, make_worker, make_job) -> None:
        customer = await make_customer()
        stranger = await make_customer("Mallory")
        worker = await make_worker()
        job = await make_job(customer)
        bid = await services.bids.submit_bid(job.id, worker.id, Decimal("90"))
        await services.bids.request_price_change(bid.id, Decimal("100"), worker_id=worker.id)

        with pytest.raises(NotEntitledError):
            await services.bids.respond_to_change_request(bid.id, stranger.id, accept=True)

    @pytest.mark.asyncio
    async def test_accepted_change_on_winning_bid_moves_assigned_price(self, services, assigned_job) -> None:
        assigned = await assigned_job(price="90")

        await services.bids.request_price_change(assigned.bid_id, Decimal("100"), worker_id=assigned.worker.id)
        await services.bids.respond_to_change_request(assigned.bid_id, assigned.customer.id, accept=True)

        job = await services.jobs.get_job(assigned.job.id)
        assert job.assigned_price == Decimal("100.00")
        assert job.held_amount == Decimal("90.00")

    @pytest.mark.asyncio
    async def test_losing_bid_is_frozen_once_job_is_assigned(
        self, services, make_customer, make_worker, make_job
    ) -> None:
        customer = await make_customer()
        winner = await make_worker("Ana")
        loser = await make_worker("Bo")
        job = await make_job(customer)
        winning = await services.bids.submit_bid(job.id, winner.id, Decimal("90"))
        losing = await services.bids.submit_bid(job.id, loser.id, Decimal("95"))
        losing_id = losing.id
        await services.bids.request_price_change(losing_id, Decimal("120"), worker_id=loser.id)
        await services.jobs.accept_bid(job.id, winning.id, customer_id=customer.id)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await services.bids.request_price_change(losing_id, Decimal("150"), worker_id=loser.id)
        assert exc_info.value.current_status == JobStatus.ASSIGNED

        with pytest.raises(InvalidStateTransitionError):
            await services.bids.respond_to_change_request(losing_id, customer.id, accept=True)

        losing = await services.bids.get_bid(losing_id)
        assert losing.price == Decimal("95.00")
        assert losing.estimated_earnings == Decimal("90.51")
        assert losing.change_status == ChangeRequestStatus.PENDING
