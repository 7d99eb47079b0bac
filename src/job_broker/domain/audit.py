"""Audit-log projection.

The job_events rows of a job are its canonical history. ``derive_status``
folds the recorded actions through the JobStateMachine to reproduce the
job's status; services cache that value on the jobs row and
``verify_projection`` detects drift between the two.
"""

from __future__ import annotations

from collections.abc import Iterable

from job_broker.domain.enums import AuditAction, JobStatus
from job_broker.domain.state_machine import JobStateMachine

# Audit action -> state machine event. JOB_POSTED creates the job and has no event.
ACTION_EVENTS: dict[AuditAction, str] = {
    AuditAction.BID_ACCEPTED: "accept_bid",
    AuditAction.WORKER_COMPLETED: "mark_worker_complete",
    AuditAction.CUSTOMER_CONFIRMED: "customer_confirm",
    AuditAction.AUTO_CONFIRMED: "auto_confirm",
    AuditAction.DISPUTE_FILED: "file_dispute",
    AuditAction.DISPUTE_TRIAGED: "triage_dispute",
    AuditAction.DISPUTE_RESOLVED_WORKER: "resolve_for_worker",
    AuditAction.DISPUTE_RESOLVED_PARTIAL: "resolve_partial_refund",
    AuditAction.DISPUTE_REFUNDED: "resolve_full_refund",
    AuditAction.WORKER_CANCELLED: "worker_cancel",
    AuditAction.JOB_CANCELLED: "cancel_job",
    AuditAction.AUTO_CANCELLED: "expire_unassigned",
    AuditAction.WAITLISTED: "waitlist_job",
    AuditAction.REQUEUED: "requeue_job",
}

EVENT_ACTIONS: dict[str, AuditAction] = {event: action for action, event in ACTION_EVENTS.items()}


def derive_status(actions: Iterable[str]) -> JobStatus:
    """Replay audit actions, in order, and return the resulting status.

    Raises:
        ValueError: If the history does not start with job_posted or names
            an unknown action.
        TransitionNotAllowed: If the history contains an illegal transition.
    """
    iterator = iter(actions)
    first = next(iterator, None)
    if first != AuditAction.JOB_POSTED:
        raise ValueError(f"Audit history must start with {AuditAction.JOB_POSTED}, got {first!r}")

    sm = JobStateMachine()
    for action in iterator:
        try:
            event = ACTION_EVENTS[AuditAction(action)]
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown audit action: {action!r}") from exc
        getattr(sm, event)()
    return JobStatus(sm.status)


def verify_projection(stored_status: str, actions: Iterable[str]) -> bool:
    """True when the cached status matches the audit-log fold."""
    return derive_status(actions) == stored_status
