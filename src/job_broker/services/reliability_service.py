"""Worker Reliability Service.

Applies the escalation policy when a worker cancels an assigned job, gates
bidding and assignment on eligibility, and lets an admin reset a worker.
``record_cancellation`` and ``ensure_eligible`` run inside the caller's
transaction; ``reset_reliability`` is a use case of its own and commits.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from job_broker.domain.enums import NotificationKind, WorkerStatus
from job_broker.domain.exceptions import WorkerSuspendedError
from job_broker.domain.reliability import Escalation, EscalationPolicy, escalate, is_eligible
from job_broker.logging_config import get_logger
from job_broker.services.base import LifecycleService

if TYPE_CHECKING:
    import uuid

    from job_broker.infrastructure.database.orm_models import Worker
    from job_broker.services.fanout import Outbox

logger = get_logger(__name__)


class ReliabilityService(LifecycleService):
    """Cancellation counting and suspension/ban enforcement."""

    @property
    def policy(self) -> EscalationPolicy:
        return EscalationPolicy(
            suspension_days_second=self._settings.suspension_days_second,
            suspension_days_third=self._settings.suspension_days_third,
            ban_threshold=self._settings.ban_threshold,
        )

    async def ensure_eligible(self, worker: Worker) -> None:
        """Raise WorkerSuspendedError unless the worker may bid or be assigned now."""
        now = self._clock()
        if (
            worker.status == WorkerStatus.SUSPENDED
            and worker.suspended_until is not None
            and worker.suspended_until <= now
        ):
            if await self._workers.lift_expired_suspension(worker.id, now):
                logger.info("worker.suspension_lapsed", worker_id=str(worker.id))
            await self._workers.refresh(worker)

        if not is_eligible(worker.status, worker.suspended_until, now):
            raise WorkerSuspendedError(
                str(worker.id),
                worker.status,
                worker.suspended_until.isoformat() if worker.suspended_until else None,
            )

    async def record_cancellation(
        self,
        worker_id: uuid.UUID,
        job_id: uuid.UUID,
        outbox: Outbox,
    ) -> tuple[Worker, Escalation]:
        """Count one more cancellation and apply its escalation."""
        now = self._clock()
        prior_status = (await self._get_worker_or_raise(worker_id)).status
        count = await self._workers.increment_cancellation_count(worker_id, now)
        escalation = escalate(count, self.policy)

        values: dict = {}
        if escalation.new_status is not None:
            values["status"] = escalation.new_status.value
        if escalation.new_status == WorkerStatus.SUSPENDED and prior_status != WorkerStatus.SUSPENDED:
            values["status_before_suspension"] = prior_status
        if escalation.suspension is not None:
            values["suspended_until"] = now + escalation.suspension
        if escalation.requires_admin_review:
            values["requires_admin_review"] = True
            values["suspended_until"] = None
            values["status_before_suspension"] = None
        if values:
            await self._workers.apply_values(worker_id, updated_at=now, **values)

        worker = await self._get_worker_or_raise(worker_id)
        await self._workers.refresh(worker)

        context = {
            "worker_id": str(worker_id),
            "job_id": str(job_id),
            "cancellation_count": count,
            "worker_status": worker.status,
            "suspended_until": worker.suspended_until.isoformat() if worker.suspended_until else None,
            "message": escalation.message,
        }
        outbox.notify(worker.email, NotificationKind.WORKER_ESCALATION, **context)
        if escalation.notify_admin:
            outbox.notify(
                self._settings.admin_email,
                NotificationKind.WORKER_ESCALATION,
                worker_name=worker.name,
                worker_email=worker.email,
                **context,
            )

        logger.info(
            "worker.cancellation_recorded",
            worker_id=str(worker_id),
            job_id=str(job_id),
            count=count,
            status=worker.status,
            suspended_until=context["suspended_until"],
        )
        return worker, escalation

    async def get_reliability(self, worker_id: uuid.UUID) -> Worker:
        return await self._get_worker_or_raise(worker_id)

    async def reset_reliability(self, worker_id: uuid.UUID, admin_id: str) -> Worker:
        """Admin action: clear the counter, suspension and review flag."""
        worker = await self._get_worker_or_raise(worker_id)
        await self._workers.apply_values(
            worker_id,
            status=WorkerStatus.APPROVED.value,
            cancellation_count=0,
            suspended_until=None,
            status_before_suspension=None,
            requires_admin_review=False,
            updated_at=self._clock(),
        )
        await self._workers.refresh(worker)
        await self._commit()
        logger.info("worker.reliability_reset", worker_id=str(worker_id), admin_id=admin_id)
        return worker
