"""Tests for the worker ledger: withdrawals, reconciliation and blocking."""

from __future__ import annotations

from decimal import Decimal

import pytest

from job_broker.domain.enums import LedgerEntryType, NotificationKind
from job_broker.domain.exceptions import InsufficientFundsError, MarketplaceError
from job_broker.infrastructure.database.repositories import WorkerRepository


@pytest.fixture
def paid_worker(services, assigned_job):
    """A worker holding 85.51 of spendable balance."""

    async def _make():
        assigned = await assigned_job()
        await services.jobs.mark_worker_complete(assigned.job.id, assigned.worker.id)
        await services.jobs.confirm_completion(assigned.job.id, assigned.customer.id)
        return assigned.worker

    return _make


class TestWithdrawal:
    @pytest.mark.asyncio
    async def test_withdrawal_debits_balance(self, services, paid_worker, notifier, settings) -> None:
        worker = await paid_worker()

        entry = await services.wallet.request_withdrawal(worker.id, Decimal("50"), "bank_transfer")

        assert entry.entry_type == LedgerEntryType.DEBIT
        assert entry.released
        wallet = await services.wallet.get_wallet(worker.id)
        assert wallet.balance == Decimal("35.51")
        assert len(wallet.entries) == 2
        assert NotificationKind.WITHDRAWAL_ADMIN_ALERT in notifier.kinds_for(settings.admin_email)

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, services, paid_worker) -> None:
        worker = await paid_worker()

        with pytest.raises(InsufficientFundsError) as exc_info:
            await services.wallet.request_withdrawal(worker.id, Decimal("100"), "bank_transfer")
        assert exc_info.value.available == "85.51"

    @pytest.mark.asyncio
    async def test_amount_must_be_positive(self, services, make_worker) -> None:
        worker = await make_worker()
        with pytest.raises(MarketplaceError) as exc_info:
            await services.wallet.request_withdrawal(worker.id, Decimal("0"), "bank_transfer")
        assert exc_info.value.code == "INVALID_AMOUNT"


class TestReconcile:
    @pytest.mark.asyncio
    async def test_consistent_balance(self, services, paid_worker) -> None:
        worker = await paid_worker()
        await services.wallet.request_withdrawal(worker.id, Decimal("10"), "bank_transfer")

        report = await services.wallet.reconcile_balance(worker.id)

        assert report.drift == Decimal("0.00")
        assert report.ledger_balance == Decimal("75.51")
        assert not report.corrected

    @pytest.mark.asyncio
    async def test_drift_is_reported_and_fixed(self, services, paid_worker, session) -> None:
        worker = await paid_worker()
        await WorkerRepository(session).apply_values(worker.id, wallet_balance=Decimal("999.00"))
        await session.commit()

        report = await services.wallet.reconcile_balance(worker.id)
        assert report.drift == Decimal("913.49")
        assert not report.corrected

        report = await services.wallet.reconcile_balance(worker.id, fix=True)
        assert report.corrected
        assert (await services.wallet.get_wallet(worker.id)).balance == Decimal("85.51")


class TestBlocking:
    @pytest.mark.asyncio
    async def test_block_and_unblock_are_idempotent(self, services, assigned_job) -> None:
        assigned = await assigned_job()
        await services.jobs.mark_worker_complete(assigned.job.id, assigned.worker.id)

        assert await services.wallet.block_entries("admin-1", job_id=assigned.job.id) == 1
        assert await services.wallet.block_entries("admin-1", job_id=assigned.job.id) == 0
        assert await services.wallet.unblock_entries("admin-1", job_id=assigned.job.id) == 1
        assert await services.wallet.unblock_entries("admin-1", job_id=assigned.job.id) == 0
