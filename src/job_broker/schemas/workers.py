"""Pydantic schemas for accounts, reliability, the wallet and admin actions."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from job_broker.domain.enums import DisputeResolution

# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class RegisterAccountRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")


class CustomerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    created_at: datetime


class WorkerResponse(BaseModel):
    """A worker with its reliability state."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    status: str
    cancellation_count: int
    last_cancellation_at: datetime | None
    suspended_until: datetime | None
    requires_admin_review: bool
    wallet_balance: Decimal
    created_at: datetime


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------


class WalletEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    worker_id: uuid.UUID
    entry_type: str
    amount: Decimal
    job_id: uuid.UUID | None
    available_at: datetime
    released: bool
    released_at: datetime | None
    blocked: bool
    note: str | None
    created_at: datetime


class WalletResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    worker_id: uuid.UUID
    balance: Decimal = Field(description="Spendable balance")
    held: Decimal = Field(description="Credits scheduled but not yet released")
    entries: list[WalletEntryResponse]


class WithdrawalRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    method: str = Field(default="bank_transfer", max_length=40)


class BalanceReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    worker_id: uuid.UUID
    stored_balance: Decimal
    ledger_balance: Decimal
    drift: Decimal
    corrected: bool


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class AdminActionRequest(BaseModel):
    admin_id: str = Field(..., min_length=1, max_length=64)
    notes: str | None = Field(default=None, max_length=2000)


class ResolveDisputeRequest(BaseModel):
    """Admin decision on a dispute.

    ``favor="customer"`` without ``refund_amount`` (or with one covering the
    whole hold) refunds in full; a smaller amount is a partial refund.
    """

    admin_id: str = Field(..., min_length=1, max_length=64)
    favor: DisputeResolution
    refund_amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    notes: str | None = Field(default=None, max_length=2000)


class LedgerBlockRequest(BaseModel):
    admin_id: str = Field(..., min_length=1, max_length=64)
    job_id: uuid.UUID | None = None
    worker_id: uuid.UUID | None = None


class PurgeRequest(BaseModel):
    admin_id: str = Field(..., min_length=1, max_length=64)
    older_than_days: int = Field(default=90, ge=1)


class CountResponse(BaseModel):
    count: int


class SweepReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    auto_confirmed: int
    expired: int
    matured: int
    failed: list[str]
