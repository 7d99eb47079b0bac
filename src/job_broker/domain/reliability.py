"""Worker reliability escalation policy.

A worker who cancels an assigned job has their cancellation counter
incremented; the resulting count alone decides the consequence:

    count 1   -> warning only
    count 2   -> suspend 7 days
    count 3   -> suspend 14 days
    count >=4 -> banned, admin review, admin alerted

The counter is monotonic. Only an admin reset clears it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from job_broker.domain.enums import WorkerStatus


@dataclass(frozen=True)
class EscalationPolicy:
    suspension_days_second: int = 7
    suspension_days_third: int = 14
    ban_threshold: int = 4


@dataclass(frozen=True)
class Escalation:
    """Outcome of recording one more worker cancellation."""

    new_status: WorkerStatus | None
    suspension: timedelta | None
    notify_admin: bool
    requires_admin_review: bool
    message: str


DEFAULT_POLICY = EscalationPolicy()


def escalate(count: int, policy: EscalationPolicy = DEFAULT_POLICY) -> Escalation:
    """Map a cumulative cancellation count to its consequence.

    Total over all integers; counts below 1 produce no change.
    """
    if count >= policy.ban_threshold:
        return Escalation(
            new_status=WorkerStatus.BANNED,
            suspension=None,
            notify_admin=True,
            requires_admin_review=True,
            message="Your account has been banned after repeated cancellations and is under admin review.",
        )
    if count == 3:
        days = policy.suspension_days_third
        return Escalation(
            new_status=WorkerStatus.SUSPENDED,
            suspension=timedelta(days=days),
            notify_admin=False,
            requires_admin_review=False,
            message=f"Your account has been suspended for {days} days due to a third cancellation.",
        )
    if count == 2:
        days = policy.suspension_days_second
        return Escalation(
            new_status=WorkerStatus.SUSPENDED,
            suspension=timedelta(days=days),
            notify_admin=False,
            requires_admin_review=False,
            message=f"Your account has been suspended for {days} days due to a second cancellation.",
        )
    if count == 1:
        return Escalation(
            new_status=None,
            suspension=None,
            notify_admin=False,
            requires_admin_review=False,
            message="Warning: further cancellations will lead to suspension.",
        )
    return Escalation(
        new_status=None,
        suspension=None,
        notify_admin=False,
        requires_admin_review=False,
        message="",
    )


def is_eligible(status: str, suspended_until: datetime | None, now: datetime) -> bool:
    """Whether a worker may bid or be assigned at ``now``.

    A suspension lapses on its own once ``suspended_until`` has passed.
    """
    if status == WorkerStatus.BANNED:
        return False
    if suspended_until is not None and now < suspended_until:
        return False
    return True
