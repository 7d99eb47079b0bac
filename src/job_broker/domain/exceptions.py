"""Domain exceptions for the job broker.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.

Five kinds are distinguished, each mapped to one HTTP status:
    NotFoundError         -> 404
    ConflictError         -> 409
    UnauthorizedError     -> 403
    InvalidStateError     -> 409
    UpstreamFailureError  -> 502

Errors raised against an existing entity carry its authoritative
``current_status`` so the caller can reconcile without re-reading it.
"""

from __future__ import annotations


class MarketplaceError(Exception):
    """Base exception for all domain errors."""

    def __init__(
        self,
        message: str,
        code: str = "MARKETPLACE_ERROR",
        current_status: str | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.current_status = current_status
        super().__init__(self.message)


# --- Error kinds ---


class NotFoundError(MarketplaceError):
    """A referenced job, bid, worker or customer does not exist."""


class ConflictError(MarketplaceError):
    """The action collides with an existing record (duplicate bid, assigned job)."""


class UnauthorizedError(MarketplaceError):
    """The actor is not entitled to act on the entity."""


class InvalidStateError(MarketplaceError):
    """The entity's current state forbids the action."""


class UpstreamFailureError(MarketplaceError):
    """The payment gateway or another external collaborator failed."""


# --- Not found ---


class JobNotFoundError(NotFoundError):
    def __init__(self, job_id: str) -> None:
        super().__init__(message=f"Job not found: {job_id}", code="JOB_NOT_FOUND")
        self.job_id = job_id


class BidNotFoundError(NotFoundError):
    def __init__(self, bid_id: str) -> None:
        super().__init__(message=f"Bid not found: {bid_id}", code="BID_NOT_FOUND")
        self.bid_id = bid_id


class WorkerNotFoundError(NotFoundError):
    def __init__(self, worker_id: str) -> None:
        super().__init__(message=f"Worker not found: {worker_id}", code="WORKER_NOT_FOUND")
        self.worker_id = worker_id


class CustomerNotFoundError(NotFoundError):
    def __init__(self, customer_id: str) -> None:
        super().__init__(
            message=f"Customer not found: {customer_id}",
            code="CUSTOMER_NOT_FOUND",
        )
        self.customer_id = customer_id


# --- Conflicts ---


class DuplicateBidError(ConflictError):
    """Raised when a worker bids twice on a job that has not been reopened."""

    def __init__(self, job_id: str, worker_id: str, current_status: str | None = None) -> None:
        super().__init__(
            message=f"Worker {worker_id} already has an active bid on job {job_id}",
            code="DUPLICATE_BID",
            current_status=current_status,
        )
        self.job_id = job_id
        self.worker_id = worker_id


class JobAlreadyAssignedError(ConflictError):
    """Raised when a bid is accepted on a job that already has a worker."""

    def __init__(self, job_id: str, current_status: str) -> None:
        super().__init__(
            message=f"Job already assigned: {job_id}",
            code="JOB_ALREADY_ASSIGNED",
            current_status=current_status,
        )
        self.job_id = job_id


class WinningBidExistsError(ConflictError):
    """Raised when a second bid would become the winning bid of a job."""

    def __init__(self, job_id: str, current_status: str | None = None) -> None:
        super().__init__(
            message=f"Job {job_id} already has a winning bid",
            code="WINNING_BID_EXISTS",
            current_status=current_status,
        )
        self.job_id = job_id


# --- Authorization ---


class NotEntitledError(UnauthorizedError):
    """Raised when the acting customer or worker does not own the entity."""

    def __init__(self, actor_id: str, entity: str, current_status: str | None = None) -> None:
        super().__init__(
            message=f"Actor {actor_id} is not entitled to act on {entity}",
            code="NOT_ENTITLED",
            current_status=current_status,
        )
        self.actor_id = actor_id


class WorkerSuspendedError(UnauthorizedError):
    """Raised when a suspended or banned worker tries to bid or be assigned."""

    def __init__(self, worker_id: str, worker_status: str, suspended_until: str | None = None) -> None:
        detail = f" until {suspended_until}" if suspended_until else ""
        super().__init__(
            message=f"Worker {worker_id} is {worker_status}{detail}",
            code="WORKER_NOT_ELIGIBLE",
            current_status=worker_status,
        )
        self.worker_id = worker_id
        self.suspended_until = suspended_until


# --- State ---


class InvalidStateTransitionError(InvalidStateError):
    """Raised when an attempted transition is not allowed from the current state.

    Example: cancelled -> worker_completed (cancelled is terminal).
    """

    def __init__(self, current_state: str, attempted: str, entity_id: str | None = None) -> None:
        target = f" for {entity_id}" if entity_id else ""
        super().__init__(
            message=f"Invalid state transition{target}: {attempted} not allowed from {current_state}",
            code="INVALID_STATE_TRANSITION",
            current_status=current_state,
        )
        self.current_state = current_state
        self.attempted = attempted
        self.entity_id = entity_id


class ChangeRequestStateError(InvalidStateError):
    """Raised when a change request action does not match its current state."""

    def __init__(self, bid_id: str, change_status: str, message: str) -> None:
        super().__init__(
            message=message,
            code="CHANGE_REQUEST_STATE",
            current_status=change_status,
        )
        self.bid_id = bid_id


class CompletionTooEarlyError(InvalidStateError):
    """Raised when a worker marks a job complete before its scheduled date."""

    def __init__(self, job_id: str, scheduled_date: str, current_status: str) -> None:
        super().__init__(
            message=f"Job {job_id} cannot be completed before its scheduled date {scheduled_date}",
            code="COMPLETION_TOO_EARLY",
            current_status=current_status,
        )
        self.job_id = job_id


class InsufficientFundsError(InvalidStateError):
    """Raised when a withdrawal exceeds the worker's spendable balance."""

    def __init__(self, required: str, available: str) -> None:
        super().__init__(
            message=f"Insufficient funds: requested {required}, available {available}",
            code="INSUFFICIENT_FUNDS",
        )
        self.required = required
        self.available = available


# --- Upstream ---


class PaymentError(UpstreamFailureError):
    """Raised when a payment gateway call fails."""

    def __init__(self, message: str, escrow_ref: str | None = None, current_status: str | None = None) -> None:
        super().__init__(message=message, code="PAYMENT_ERROR", current_status=current_status)
        self.escrow_ref = escrow_ref


# --- Input ---


class InvalidBidPriceError(MarketplaceError):
    """Raised when a bid price cannot yield positive worker earnings."""

    def __init__(self, price: str) -> None:
        super().__init__(
            message=f"Bid price {price} is too low to produce worker earnings",
            code="INVALID_BID_PRICE",
        )
        self.price = price
