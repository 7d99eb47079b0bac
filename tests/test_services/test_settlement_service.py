"""Tests for the settlement sweep: auto-confirmation, expiry and maturation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from job_broker.domain.enums import JobStatus, NotificationKind, PaymentStatus


class TestAutoConfirm:
    @pytest.mark.asyncio
    async def test_hold_window_then_auto_confirm(self, services, assigned_job, clock, notifier) -> None:
        assigned = await assigned_job()
        await services.jobs.mark_worker_complete(assigned.job.id, assigned.worker.id)

        clock.advance(hours=24)
        report = await services.settlement.run_sweep()
        assert report.as_dict() == {"auto_confirmed": 0, "expired": 0, "matured": 0, "failed": []}

        clock.advance(hours=24, seconds=1)
        report = await services.settlement.run_sweep()
        assert report.auto_confirmed == 1
        assert report.failed == []

        job = await services.jobs.get_job(assigned.job.id)
        assert job.status == JobStatus.COMPLETED
        assert job.payment_status == PaymentStatus.RELEASED
        assert job.auto_confirmed_at is not None
        wallet = await services.wallet.get_wallet(assigned.worker.id)
        assert wallet.balance == Decimal("85.51")
        assert NotificationKind.JOB_AUTO_CONFIRMED in notifier.kinds_for(assigned.customer.email)

        history = await services.jobs.get_history(job.id)
        assert history[-1].action == "auto_confirmed"
        assert history[-1].actor_role == "system"

    @pytest.mark.asyncio
    async def test_second_sweep_is_a_no_op(self, services, assigned_job, clock, payments) -> None:
        assigned = await assigned_job()
        await services.jobs.mark_worker_complete(assigned.job.id, assigned.worker.id)
        clock.advance(hours=49)

        await services.settlement.run_sweep()
        report = await services.settlement.run_sweep()

        assert report.as_dict() == {"auto_confirmed": 0, "expired": 0, "matured": 0, "failed": []}
        assert payments.names().count("release_to_worker") == 1
        wallet = await services.wallet.get_wallet(assigned.worker.id)
        assert wallet.balance == Decimal("85.51")

    @pytest.mark.asyncio
    async def test_customer_confirmation_wins_the_race(self, services, assigned_job, clock) -> None:
        assigned = await assigned_job()
        await services.jobs.mark_worker_complete(assigned.job.id, assigned.worker.id)
        await services.jobs.confirm_completion(assigned.job.id, assigned.customer.id)

        clock.advance(hours=49)
        assert await services.jobs.auto_confirm(assigned.job.id) is False
        report = await services.settlement.run_sweep()

        assert report.auto_confirmed == 0
        assert report.matured == 0
        wallet = await services.wallet.get_wallet(assigned.worker.id)
        assert wallet.balance == Decimal("85.51")
        history = await services.jobs.get_history(assigned.job.id)
        assert "auto_confirmed" not in [e.action for e in history]

    @pytest.mark.asyncio
    async def test_customer_confirmation_after_sweep_is_a_no_op(
        self, services, assigned_job, clock, payments
    ) -> None:
        assigned = await assigned_job()
        job_id = assigned.job.id
        await services.jobs.mark_worker_complete(job_id, assigned.worker.id)
        clock.advance(hours=49)
        report = await services.settlement.run_sweep()
        assert report.auto_confirmed == 1

        job = await services.jobs.confirm_completion(job_id, assigned.customer.id)

        assert job.status == JobStatus.COMPLETED
        assert job.customer_confirmed_at is None
        assert payments.names().count("release_to_worker") == 1
        wallet = await services.wallet.get_wallet(assigned.worker.id)
        assert wallet.balance == Decimal("85.51")
        assert len(wallet.entries) == 1
        history = await services.jobs.get_history(job_id)
        assert [e.action for e in history] == [
            "job_posted", "bid_accepted", "worker_completed", "auto_confirmed",
        ]

    @pytest.mark.asyncio
    async def test_failed_release_is_reported_and_retried(self, services, assigned_job, clock, payments) -> None:
        assigned = await assigned_job()
        job_id = assigned.job.id
        await services.jobs.mark_worker_complete(job_id, assigned.worker.id)
        clock.advance(hours=49)
        payments.fail_on.add("release_to_worker")

        report = await services.settlement.run_sweep()

        assert report.auto_confirmed == 0
        assert report.failed == [f"auto_confirm:{job_id}"]
        job = await services.jobs.get_job(job_id)
        assert job.status == JobStatus.WORKER_COMPLETED

        payments.fail_on.clear()
        report = await services.settlement.run_sweep()
        assert report.auto_confirmed == 1
        assert (await services.jobs.get_job(job_id)).status == JobStatus.COMPLETED


class TestExpiry:
    @pytest.mark.asyncio
    async def test_unassigned_job_expires(self, services, make_customer, make_job, clock, notifier, settings) -> None:
        customer = await make_customer()
        job = await make_job(customer)

        clock.advance(hours=25)
        report = await services.settlement.run_sweep()

        assert report.expired == 1
        job = await services.jobs.get_job(job.id)
        assert job.status == JobStatus.CANCELLED
        assert NotificationKind.JOB_AUTO_CANCELLED in notifier.kinds_for(settings.admin_email)

    @pytest.mark.asyncio
    async def test_reopened_job_expiry_refunds_hold(self, services, assigned_job, clock, payments) -> None:
        assigned = await assigned_job()
        await services.jobs.cancel_by_worker(assigned.job.id, assigned.worker.id, "Double booked")

        clock.advance(hours=25)
        report = await services.settlement.run_sweep()

        assert report.expired == 1
        job = await services.jobs.get_job(assigned.job.id)
        assert job.status == JobStatus.CANCELLED
        assert job.payment_status == PaymentStatus.REFUNDED
        assert ("refund", Decimal("90.00")) in payments.calls


class TestMaturation:
    @pytest.mark.asyncio
    async def test_blocked_entry_matures_after_unblock(self, services, assigned_job) -> None:
        assigned = await assigned_job()
        await services.jobs.mark_worker_complete(assigned.job.id, assigned.worker.id)
        assert await services.wallet.block_entries("admin-1", worker_id=assigned.worker.id) == 1

        job = await services.jobs.confirm_completion(assigned.job.id, assigned.customer.id)
        assert job.status == JobStatus.COMPLETED
        assert job.payment_status == PaymentStatus.PENDING_RELEASE
        assert (await services.wallet.get_wallet(assigned.worker.id)).balance == Decimal("0.00")

        report = await services.settlement.run_sweep()
        assert report.matured == 0

        assert await services.wallet.unblock_entries("admin-1", job_id=assigned.job.id) == 1
        report = await services.settlement.run_sweep()
        assert report.matured == 1

        job = await services.jobs.get_job(assigned.job.id)
        assert job.payment_status == PaymentStatus.RELEASED
        assert (await services.wallet.get_wallet(assigned.worker.id)).balance == Decimal("85.51")
