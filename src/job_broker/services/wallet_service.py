"""Wallet Service: the worker ledger.

Ledger entries are append-only. A credit is scheduled when a job's payout is
fixed and matures into spendable balance once its ``available_at`` has passed
and it is not blocked. Withdrawals are released debits. The stored
``wallet_balance`` always equals released credits minus released debits;
``reconcile_balance`` checks that.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from job_broker.domain.earnings import to_money
from job_broker.domain.enums import EventTopic, LedgerEntryType, NotificationKind, PaymentStatus
from job_broker.domain.exceptions import InsufficientFundsError, MarketplaceError
from job_broker.infrastructure.database.orm_models import WalletEntry
from job_broker.infrastructure.database.retry import retry_on_transient_storage_error
from job_broker.logging_config import get_logger
from job_broker.services.base import LifecycleService

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from job_broker.services.fanout import Outbox

logger = get_logger(__name__)


@dataclass
class WalletSummary:
    worker_id: uuid.UUID
    balance: Decimal
    held: Decimal
    entries: list[WalletEntry] = field(default_factory=list)


@dataclass
class BalanceReport:
    worker_id: uuid.UUID
    stored_balance: Decimal
    ledger_balance: Decimal
    drift: Decimal
    corrected: bool


class WalletService(LifecycleService):
    """Ledger writes, maturation and withdrawals."""

    # ------------------------------------------------------------------
    # Ledger writes used inside lifecycle transactions
    # ------------------------------------------------------------------

    async def schedule_job_credit(
        self,
        worker_id: uuid.UUID,
        job_id: uuid.UUID,
        amount: Decimal,
        available_at: datetime,
        note: str,
    ) -> WalletEntry:
        """Append the held credit for a job's payout; one per job."""
        existing = await self._ledger.credit_for_job(job_id)
        if existing is not None:
            return existing
        entry = WalletEntry(
            worker_id=worker_id,
            entry_type=LedgerEntryType.CREDIT.value,
            amount=to_money(amount),
            job_id=job_id,
            available_at=available_at,
            released=False,
            blocked=False,
            note=note,
        )
        await self._ledger.append(entry)
        logger.info(
            "ledger.credit_scheduled",
            worker_id=str(worker_id),
            job_id=str(job_id),
            amount=str(entry.amount),
            available_at=available_at.isoformat(),
        )
        return entry

    async def mature_entry(self, entry_id: uuid.UUID, outbox: Outbox) -> bool:
        """Move one entry into spendable balance. False when it is not eligible.

        Safe to call repeatedly: the released flag is compare-and-set.
        """
        now = self._clock()
        entry = await self._ledger.get_by_id(entry_id)
        if entry is None:
            return False
        if not await self._ledger.mark_released(entry_id, now):
            return False

        delta = entry.amount if entry.entry_type == LedgerEntryType.CREDIT else -entry.amount
        await self._workers.add_to_balance(entry.worker_id, delta)
        if entry.job_id is not None:
            await self._jobs.advance_payment_status(
                entry.job_id, PaymentStatus.PENDING_RELEASE.value, PaymentStatus.RELEASED.value
            )

        worker = await self._get_worker_or_raise(entry.worker_id)
        await self._workers.refresh(worker)
        outbox.notify(
            worker.email,
            NotificationKind.PAYOUT_AVAILABLE,
            amount=str(entry.amount),
            job_id=str(entry.job_id) if entry.job_id else None,
            balance=str(worker.wallet_balance),
        )
        outbox.publish(
            EventTopic.WALLET_UPDATE,
            worker_id=str(worker.id),
            balance=str(worker.wallet_balance),
            entry_id=str(entry_id),
        )
        logger.info(
            "settlement.entry_matured",
            entry_id=str(entry_id),
            worker_id=str(entry.worker_id),
            job_id=str(entry.job_id) if entry.job_id else None,
            amount=str(entry.amount),
        )
        return True

    @retry_on_transient_storage_error
    async def mature_and_commit(self, entry_id: uuid.UUID) -> bool:
        outbox = self._new_outbox()
        matured = await self.mature_entry(entry_id, outbox)
        await self._commit(outbox)
        return matured

    # ------------------------------------------------------------------
    # Worker-facing use cases
    # ------------------------------------------------------------------

    async def get_wallet(self, worker_id: uuid.UUID) -> WalletSummary:
        worker = await self._get_worker_or_raise(worker_id)
        totals = await self._ledger.totals_for_worker(worker_id)
        entries = await self._ledger.list_for_worker(worker_id)
        return WalletSummary(
            worker_id=worker.id,
            balance=to_money(worker.wallet_balance),
            held=totals["held_credit"],
            entries=entries,
        )

    @retry_on_transient_storage_error
    async def request_withdrawal(
        self,
        worker_id: uuid.UUID,
        amount: Decimal,
        method: str,
    ) -> WalletEntry:
        """Debit spendable balance immediately and record a released debit."""
        amount = to_money(amount)
        if amount <= 0:
            raise MarketplaceError(f"Withdrawal amount must be positive: {amount}", code="INVALID_AMOUNT")

        worker = await self._get_worker_or_raise(worker_id)
        if not await self._workers.withdraw_if_sufficient(worker_id, amount):
            await self._workers.refresh(worker)
            raise InsufficientFundsError(str(amount), str(to_money(worker.wallet_balance)))

        now = self._clock()
        entry = WalletEntry(
            worker_id=worker_id,
            entry_type=LedgerEntryType.DEBIT.value,
            amount=amount,
            job_id=None,
            available_at=now,
            released=True,
            released_at=now,
            blocked=False,
            note=f"Withdrawal via {method}",
        )
        await self._ledger.append(entry)
        await self._workers.refresh(worker)

        outbox = self._new_outbox()
        outbox.notify(
            worker.email,
            NotificationKind.WITHDRAWAL_REQUESTED,
            amount=str(amount),
            method=method,
            balance=str(worker.wallet_balance),
        )
        outbox.notify(
            self._settings.admin_email,
            NotificationKind.WITHDRAWAL_ADMIN_ALERT,
            worker_id=str(worker_id),
            worker_name=worker.name,
            amount=str(amount),
            method=method,
        )
        outbox.publish(EventTopic.WALLET_UPDATE, worker_id=str(worker_id), balance=str(worker.wallet_balance))
        await self._commit(outbox)

        logger.info("wallet.withdrawal_recorded", worker_id=str(worker_id), amount=str(amount), method=method)
        return entry

    async def reconcile_balance(self, worker_id: uuid.UUID, fix: bool = False) -> BalanceReport:
        """Recompute the balance from released entries and report drift."""
        worker = await self._get_worker_or_raise(worker_id)
        totals = await self._ledger.totals_for_worker(worker_id)
        ledger_balance = to_money(totals["released_credit"] - totals["released_debit"])
        stored = to_money(worker.wallet_balance)
        drift = to_money(stored - ledger_balance)

        corrected = False
        if drift != 0:
            logger.warning(
                "wallet.balance_drift",
                worker_id=str(worker_id),
                stored=str(stored),
                ledger=str(ledger_balance),
            )
            if fix:
                await self._workers.apply_values(worker_id, wallet_balance=ledger_balance)
                await self._commit()
                corrected = True
        return BalanceReport(
            worker_id=worker_id,
            stored_balance=stored,
            ledger_balance=ledger_balance,
            drift=drift,
            corrected=corrected,
        )

    # ------------------------------------------------------------------
    # Admin block / unblock
    # ------------------------------------------------------------------

    @retry_on_transient_storage_error
    async def block_entries(
        self,
        admin_id: str,
        job_id: uuid.UUID | None = None,
        worker_id: uuid.UUID | None = None,
    ) -> int:
        """Freeze unreleased entries so they never auto-release."""
        count = await self._ledger.set_blocked(True, job_id=job_id, worker_id=worker_id)
        await self._commit()
        logger.info(
            "ledger.entries_blocked",
            admin_id=admin_id,
            job_id=str(job_id) if job_id else None,
            worker_id=str(worker_id) if worker_id else None,
            count=count,
        )
        return count

    @retry_on_transient_storage_error
    async def unblock_entries(
        self,
        admin_id: str,
        job_id: uuid.UUID | None = None,
        worker_id: uuid.UUID | None = None,
    ) -> int:
        count = await self._ledger.set_blocked(False, job_id=job_id, worker_id=worker_id)
        await self._commit()
        logger.info(
            "ledger.entries_unblocked",
            admin_id=admin_id,
            job_id=str(job_id) if job_id else None,
            worker_id=str(worker_id) if worker_id else None,
            count=count,
        )
        return count
