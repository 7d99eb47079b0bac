"""Job Lifecycle State Machine Guard.

Uses python-statemachine to enforce legal job transitions at the domain level.
No matter what the API, the MCP tools or the settlement sweep ask for, an
illegal transition (e.g. cancelled -> worker_completed) raises
TransitionNotAllowed before any row is written.

The machine is instantiated per job at its stored status and fired once;
services then persist the resulting status with a compare-and-set update.

Transition table:
    pending           -> assigned          (accept_bid)
    reopened          -> assigned          (accept_bid)
    assigned          -> worker_completed  (mark_worker_complete)
    worker_completed  -> completed         (customer_confirm)
    worker_completed  -> completed         (auto_confirm)
    worker_completed  -> dispute           (file_dispute)
    dispute           -> disputed          (triage_dispute)
    dispute/disputed  -> completed         (resolve_for_worker)
    dispute/disputed  -> completed         (resolve_partial_refund)
    dispute/disputed  -> cancelled         (resolve_full_refund)
    assigned          -> reopened          (worker_cancel)
    pending/assigned/reopened/waitlisted -> cancelled  (cancel_job)
    pending/reopened/waitlisted          -> cancelled  (expire_unassigned)
    pending           -> waitlisted        (waitlist_job)
    waitlisted        -> pending           (requeue_job)
"""

from __future__ import annotations

from statemachine import State, StateMachine


class JobStateMachine(StateMachine):
    """State machine that guards job lifecycle transitions.

    Usage:
        sm = JobStateMachine(current_status="pending")
        sm.accept_bid()   # transitions to assigned
        sm.status         # "assigned"
    """

    # --- States ---
    pending = State("Pending", value="pending", initial=True)
    assigned = State("Assigned", value="assigned")
    worker_completed = State("Worker completed", value="worker_completed")
    completed = State("Completed", value="completed", final=True)
    dispute = State("Dispute", value="dispute")
    disputed = State("Disputed", value="disputed")
    cancelled = State("Cancelled", value="cancelled", final=True)
    reopened = State("Reopened", value="reopened")
    waitlisted = State("Waitlisted", value="waitlisted")

    # --- Events / Transitions ---

    # Assignment
    accept_bid = pending.to(assigned) | reopened.to(assigned)

    # Completion
    mark_worker_complete = assigned.to(worker_completed)
    customer_confirm = worker_completed.to(completed)
    auto_confirm = worker_completed.to(completed)

    # Disputes
    file_dispute = worker_completed.to(dispute)
    triage_dispute = dispute.to(disputed)
    resolve_for_worker = dispute.to(completed) | disputed.to(completed)
    resolve_partial_refund = dispute.to(completed) | disputed.to(completed)
    resolve_full_refund = dispute.to(cancelled) | disputed.to(cancelled)

    # Cancellation and reopening
    worker_cancel = assigned.to(reopened)
    cancel_job = (
        pending.to(cancelled)
        | assigned.to(cancelled)
        | reopened.to(cancelled)
        | waitlisted.to(cancelled)
    )
    expire_unassigned = pending.to(cancelled) | reopened.to(cancelled) | waitlisted.to(cancelled)

    # Matching
    waitlist_job = pending.to(waitlisted)
    requeue_job = waitlisted.to(pending)

    def __init__(self, current_status: str = "pending") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current JobStatus value (e.g., "assigned").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(f"Unknown status '{current_status}'. Valid states: {valid}")
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches JobStatus)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return the event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a job transition and return the new status.

    Creates a throwaway machine at ``current_status``, fires ``event_name``
    and returns the resulting status string.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = JobStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status
