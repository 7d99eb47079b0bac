"""Domain layer: pure business logic with zero framework dependencies."""

from job_broker.domain.audit import derive_status, verify_projection
from job_broker.domain.earnings import calculate_earnings, to_money
from job_broker.domain.enums import (
    ActorRole,
    AuditAction,
    BidStatus,
    ChangeRequestStatus,
    JobStatus,
    PaymentStatus,
    WorkerStatus,
)
from job_broker.domain.exceptions import (
    ConflictError,
    InvalidStateError,
    MarketplaceError,
    NotFoundError,
    UnauthorizedError,
    UpstreamFailureError,
)
from job_broker.domain.reliability import Escalation, EscalationPolicy, escalate, is_eligible
from job_broker.domain.state_machine import JobStateMachine, validate_transition

__all__ = [
    "ActorRole",
    "AuditAction",
    "BidStatus",
    "ChangeRequestStatus",
    "JobStatus",
    "PaymentStatus",
    "WorkerStatus",
    "ConflictError",
    "InvalidStateError",
    "MarketplaceError",
    "NotFoundError",
    "UnauthorizedError",
    "UpstreamFailureError",
    "Escalation",
    "EscalationPolicy",
    "escalate",
    "is_eligible",
    "JobStateMachine",
    "validate_transition",
    "calculate_earnings",
    "to_money",
    "derive_status",
    "verify_projection",
]
