"""SQLAlchemy 2.0 ORM models for the job broker.

Seven tables:
    1. customers       - Accounts that post jobs.
    2. workers         - Accounts that bid, with reliability state and wallet balance.
    3. jobs            - Posted tasks; ``status`` is a cached projection of job_events.
    4. job_events      - Append-only audit log of every lifecycle transition.
    5. bids            - A worker's offer on a job, with its change-request sub-record.
    6. bid_revisions   - Append-only price history of each bid.
    7. wallet_entries  - Append-only escrow/payout ledger keyed by worker.

Design decisions:
    - UUIDs as primary keys; job_events and bid_revisions use integer ids so
      that insertion order is the replay order.
    - Decimal for money, two decimal places.
    - CHECK constraints on every status column and on the assignment
      invariant (assigned worker present iff the job is in an assigned state).
    - Partial unique indexes: one winning bid per job, one active bid per
      (job, worker), one credit entry per job.
    - No ORM relationships; repositories query explicitly so nothing lazy-loads
      under an async session.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    Uuid,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from job_broker.domain.enums import (
    ASSIGNED_STATUSES,
    BidStatus,
    ChangeRequestStatus,
    JobStatus,
    PaymentStatus,
    WorkerStatus,
)

JSONVariant = JSON().with_variant(JSONB(), "postgresql")
Money = Numeric(12, 2)


def _in_clause(column: str, values) -> str:  # noqa: ANN001
    quoted = ", ".join(f"'{v.value}'" for v in sorted(values, key=lambda v: v.value))
    return f"{column} IN ({quoted})"


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as UTC.

    SQLite drops tzinfo on storage; values read back are re-tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# Helper: auto-set updated_at on flush
# ---------------------------------------------------------------------------
def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = _utcnow()


# ---------------------------------------------------------------------------
# 1. customers
# ---------------------------------------------------------------------------
class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<Customer id={self.id} email={self.email}>"


# ---------------------------------------------------------------------------
# 2. workers
# ---------------------------------------------------------------------------
class Worker(Base):
    """A worker account with reliability state and spendable wallet balance."""

    __tablename__ = "workers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)

    # --- Reliability ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=WorkerStatus.APPROVED.value,
        comment="Account status; suspended/banned only via escalation or admin",
    )
    cancellation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_cancellation_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    suspended_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    status_before_suspension: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        comment="Status restored when a suspension lapses",
    )
    requires_admin_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # --- Wallet ---
    wallet_balance: Mapped[Decimal] = mapped_column(
        Money,
        nullable=False,
        default=Decimal("0.00"),
        comment="Released credits minus released debits",
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(_in_clause("status", WorkerStatus), name="ck_worker_valid_status"),
        CheckConstraint("cancellation_count >= 0", name="ck_worker_cancellation_count"),
    )

    def __repr__(self) -> str:
        return f"<Worker id={self.id} status={self.status} cancellations={self.cancellation_count}>"


# ---------------------------------------------------------------------------
# 3. jobs
# ---------------------------------------------------------------------------
class Job(Base):
    """A posted task. ``status`` is guarded by JobStateMachine."""

    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id"), nullable=False
    )

    # --- Description ---
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    budget: Mapped[Decimal] = mapped_column(Money, nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # --- Lifecycle ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=JobStatus.PENDING.value,
        comment="Cached projection of the job_events fold",
    )
    assigned_worker_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("workers.id"), nullable=True
    )
    assigned_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    repost_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    waitlist_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Payment ---
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.UNPAID.value
    )
    escrow_ref: Mapped[str | None] = mapped_column(
        String(128), nullable=True, comment="Gateway reference of the escrow hold"
    )
    held_amount: Mapped[Decimal | None] = mapped_column(
        Money, nullable=True, comment="Amount currently captured on the escrow hold"
    )
    refunded_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)

    # --- Completion ---
    worker_marked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    customer_confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    auto_confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    release_date: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="worker_marked_at + completion hold"
    )

    # --- Cancellation ---
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cancelled_by_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(_in_clause("status", JobStatus), name="ck_job_valid_status"),
        CheckConstraint(
            _in_clause("payment_status", PaymentStatus), name="ck_job_valid_payment_status"
        ),
        CheckConstraint(
            f"(assigned_worker_id IS NOT NULL) = ({_in_clause('status', ASSIGNED_STATUSES)})",
            name="ck_job_assignment_matches_status",
        ),
        CheckConstraint("budget > 0", name="ck_job_positive_budget"),
        CheckConstraint("repost_count >= 0", name="ck_job_repost_count"),
        Index("idx_job_status", "status"),
        Index("idx_job_customer", "customer_id"),
        Index("idx_job_assigned_worker", "assigned_worker_id"),
        Index("idx_job_status_release_date", "status", "release_date"),
        Index("idx_job_status_scheduled_at", "status", "scheduled_at"),
    )

    def __repr__(self) -> str:
        return f"<Job id={self.id} status={self.status} payment={self.payment_status}>"


# ---------------------------------------------------------------------------
# 4. job_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class JobEvent(Base):
    """Immutable audit record of one job lifecycle transition.

    This table is APPEND-ONLY. Replaying ``action`` in ``id`` order through
    the JobStateMachine reproduces ``jobs.status``.
    """

    __tablename__ = "job_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(40), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata", JSONVariant, nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint(
            "actor_role IN ('customer', 'worker', 'admin', 'system')",
            name="ck_job_event_actor_role",
        ),
        Index("idx_job_event_job", "job_id", "id"),
    )

    def __repr__(self) -> str:
        return f"<JobEvent id={self.id} action={self.action} {self.old_status}->{self.new_status}>"


# ---------------------------------------------------------------------------
# 5. bids
# ---------------------------------------------------------------------------
class Bid(Base):
    """A worker's offer on a job."""

    __tablename__ = "bids"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False
    )
    worker_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("workers.id"), nullable=False)

    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    estimated_earnings: Mapped[Decimal] = mapped_column(
        Money, nullable=False, comment="Derived from price by the earnings schedule"
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=BidStatus.PENDING.value)
    is_winning_bid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled_by_worker: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # --- Change request ---
    change_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ChangeRequestStatus.NONE.value
    )
    change_new_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    change_new_earnings: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    change_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    change_requested_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    change_responded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(_in_clause("status", BidStatus), name="ck_bid_valid_status"),
        CheckConstraint(
            _in_clause("change_status", ChangeRequestStatus), name="ck_bid_valid_change_status"
        ),
        CheckConstraint("price > 0", name="ck_bid_positive_price"),
        Index(
            "uq_bid_winning_per_job",
            "job_id",
            unique=True,
            postgresql_where=text("is_winning_bid"),
            sqlite_where=text("is_winning_bid"),
        ),
        Index(
            "uq_bid_active_per_worker",
            "job_id",
            "worker_id",
            unique=True,
            postgresql_where=text("status <> 'rejected'"),
            sqlite_where=text("status <> 'rejected'"),
        ),
        Index("idx_bid_worker", "worker_id"),
    )

    def __repr__(self) -> str:
        return f"<Bid id={self.id} job={self.job_id} price={self.price} status={self.status}>"


# ---------------------------------------------------------------------------
# 6. bid_revisions (Append-Only)
# ---------------------------------------------------------------------------
class BidRevision(Base):
    __tablename__ = "bid_revisions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bid_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bids.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    earnings: Mapped[Decimal] = mapped_column(Money, nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (Index("idx_bid_revision_bid", "bid_id", "id"),)


# ---------------------------------------------------------------------------
# 7. wallet_entries (Append-Only Ledger)
# ---------------------------------------------------------------------------
class WalletEntry(Base):
    """One escrow or payout movement on a worker's wallet.

    Rows are never deleted. Only maturation (released) and admin
    block/unblock mutate them.
    """

    __tablename__ = "wallet_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    worker_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("workers.id"), nullable=False)
    entry_type: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    job_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True, comment="Source job; not a foreign key so purged jobs keep their trail"
    )
    available_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    released: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint("entry_type IN ('credit', 'debit')", name="ck_wallet_entry_type"),
        CheckConstraint("amount > 0", name="ck_wallet_entry_positive_amount"),
        Index("idx_wallet_entry_maturity", "released", "blocked", "available_at"),
        Index("idx_wallet_entry_worker", "worker_id"),
        Index(
            "uq_wallet_credit_per_job",
            "job_id",
            unique=True,
            postgresql_where=text("entry_type = 'credit' AND job_id IS NOT NULL"),
            sqlite_where=text("entry_type = 'credit' AND job_id IS NOT NULL"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<WalletEntry id={self.id} {self.entry_type} {self.amount} "
            f"released={self.released} blocked={self.blocked}>"
        )


# ---------------------------------------------------------------------------
# Register the auto-update listener for updated_at
# ---------------------------------------------------------------------------
for _model in (Worker, Job, Bid):
    event.listen(_model, "before_update", _set_updated_at)
