"""Domain enumerations for the job broker.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class JobStatus(enum.StrEnum):
    """Lifecycle states of a posted job.

    State transitions are enforced by the JobStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    PENDING = "pending"
    ASSIGNED = "assigned"
    WORKER_COMPLETED = "worker_completed"
    COMPLETED = "completed"
    DISPUTE = "dispute"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"
    REOPENED = "reopened"
    WAITLISTED = "waitlisted"


# A job in one of these states has a non-null assigned worker, and vice versa.
ASSIGNED_STATUSES = frozenset(
    {
        JobStatus.ASSIGNED,
        JobStatus.WORKER_COMPLETED,
        JobStatus.COMPLETED,
        JobStatus.DISPUTE,
        JobStatus.DISPUTED,
    }
)

# Bidding is open only in these states.
BIDDABLE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.REOPENED})


class PaymentStatus(enum.StrEnum):
    """Escrow state of the customer's payment for a job."""

    UNPAID = "unpaid"
    HOLDING = "holding"
    PENDING_RELEASE = "pending_release"
    RELEASED = "released"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"


class BidStatus(enum.StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ChangeRequestStatus(enum.StrEnum):
    """State of a worker's proposed revision to a bid price."""

    NONE = "none"
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RevisionKind(enum.StrEnum):
    """Kinds of entries in a bid's append-only price history."""

    ORIGINAL = "original"
    UPDATED = "updated"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class WorkerStatus(enum.StrEnum):
    INCOMPLETE = "incomplete"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"
    BANNED = "banned"


class ActorRole(enum.StrEnum):
    """Who triggered an audited lifecycle transition."""

    CUSTOMER = "customer"
    WORKER = "worker"
    ADMIN = "admin"
    SYSTEM = "system"


class AuditAction(enum.StrEnum):
    """Actions recorded in the job_events table.

    Every state transition MUST produce exactly one event. Replaying the
    actions of a job through the state machine reproduces its status.
    """

    JOB_POSTED = "job_posted"
    BID_ACCEPTED = "bid_accepted"
    WORKER_COMPLETED = "worker_completed"
    CUSTOMER_CONFIRMED = "customer_confirmed"
    AUTO_CONFIRMED = "auto_confirmed"
    DISPUTE_FILED = "dispute_filed"
    DISPUTE_TRIAGED = "dispute_triaged"
    DISPUTE_RESOLVED_WORKER = "dispute_resolved_worker"
    DISPUTE_RESOLVED_PARTIAL = "dispute_resolved_partial"
    DISPUTE_REFUNDED = "dispute_refunded"
    WORKER_CANCELLED = "worker_cancelled"
    JOB_CANCELLED = "job_cancelled"
    AUTO_CANCELLED = "auto_cancelled"
    WAITLISTED = "waitlisted"
    REQUEUED = "requeued"


class LedgerEntryType(enum.StrEnum):
    CREDIT = "credit"
    DEBIT = "debit"


class DisputeResolution(enum.StrEnum):
    """Outcome chosen by an admin when closing a dispute."""

    WORKER = "worker"
    CUSTOMER = "customer"


class NotificationKind(enum.StrEnum):
    """Template kinds handed to the notification dispatcher."""

    BID_SUBMITTED = "bid_submitted"
    NEW_BID = "new_bid"
    BID_CHANGE_REQUESTED = "bid_change_requested"
    BID_CHANGE_CANCELLED = "bid_change_cancelled"
    BID_CHANGE_ACCEPTED = "bid_change_accepted"
    BID_CHANGE_REJECTED = "bid_change_rejected"
    JOB_ASSIGNED = "job_assigned"
    BID_NOT_SELECTED = "bid_not_selected"
    COMPLETION_RECORDED = "completion_recorded"
    COMPLETION_ACTION_REQUIRED = "completion_action_required"
    JOB_COMPLETED = "job_completed"
    JOB_AUTO_CONFIRMED = "job_auto_confirmed"
    DISPUTE_FILED = "dispute_filed"
    DISPUTE_ADMIN_ALERT = "dispute_admin_alert"
    DISPUTE_RESOLVED = "dispute_resolved"
    JOB_REOPENED = "job_reopened"
    CANCELLATION_CONFIRMED = "cancellation_confirmed"
    REOPEN_INVITATION = "reopen_invitation"
    WORKER_ESCALATION = "worker_escalation"
    JOB_CANCELLED = "job_cancelled"
    JOB_AUTO_CANCELLED = "job_auto_cancelled"
    JOB_WAITLISTED = "job_waitlisted"
    PAYOUT_AVAILABLE = "payout_available"
    WITHDRAWAL_REQUESTED = "withdrawal_requested"
    WITHDRAWAL_ADMIN_ALERT = "withdrawal_admin_alert"


class EventTopic(enum.StrEnum):
    """Real-time event bus topics."""

    JOB_UPDATE = "job:update"
    JOB_BID_RECEIVED = "job:bidReceived"
    JOB_ASSIGNED = "job:assigned"
    BID_REJECTED = "bid:rejected"
    BID_CHANGE_UPDATE = "bid:changeUpdate"
    WALLET_UPDATE = "wallet:update"
