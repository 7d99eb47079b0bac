"""Tests for cancellation counting, suspension and ban enforcement."""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from job_broker.domain.enums import NotificationKind, WorkerStatus
from job_broker.domain.exceptions import WorkerSuspendedError
from job_broker.infrastructure.database.repositories import WorkerRepository
from job_broker.services import Outbox


async def _cancel(services, session, collaborators, worker_id, times: int):
    outcome = None
    for _ in range(times):
        outbox = Outbox()
        outcome = await services.reliability.record_cancellation(worker_id, uuid.uuid4(), outbox)
        await session.commit()
        await outbox.flush(collaborators)
    return outcome


class TestEscalation:
    @pytest.mark.asyncio
    async def test_second_cancellation_suspends(self, services, session, collaborators, make_worker, clock) -> None:
        worker = await make_worker()

        worker, escalation = await _cancel(services, session, collaborators, worker.id, 2)

        assert worker.status == WorkerStatus.SUSPENDED
        assert worker.cancellation_count == 2
        assert worker.suspended_until == clock.now + timedelta(days=7)
        assert "7 days" in escalation.message

    @pytest.mark.asyncio
    async def test_fourth_cancellation_bans_and_alerts_admin(
        self, services, session, collaborators, make_worker, notifier, settings
    ) -> None:
        worker = await make_worker()

        worker, _ = await _cancel(services, session, collaborators, worker.id, 4)

        assert worker.status == WorkerStatus.BANNED
        assert worker.requires_admin_review
        assert worker.suspended_until is None
        assert notifier.kinds_for(settings.admin_email) == [NotificationKind.WORKER_ESCALATION]

    @pytest.mark.asyncio
    async def test_banned_worker_stays_ineligible(self, services, session, collaborators, make_worker, clock) -> None:
        worker = await make_worker()
        worker, _ = await _cancel(services, session, collaborators, worker.id, 4)

        clock.advance(days=365)
        with pytest.raises(WorkerSuspendedError):
            await services.reliability.ensure_eligible(worker)


class TestSuspensionLapse:
    @pytest.mark.asyncio
    async def test_lapse_restores_prior_status(self, services, session, collaborators, make_worker, clock) -> None:
        worker = await make_worker()
        worker_id = worker.id
        await WorkerRepository(session).apply_values(worker_id, status=WorkerStatus.PENDING.value)
        await session.commit()

        worker, _ = await _cancel(services, session, collaborators, worker_id, 3)
        assert worker.status == WorkerStatus.SUSPENDED
        assert worker.status_before_suspension == WorkerStatus.PENDING

        clock.advance(days=14, seconds=1)
        await services.reliability.ensure_eligible(worker)

        assert worker.status == WorkerStatus.PENDING
        assert worker.status_before_suspension is None
        assert worker.suspended_until is None
        assert worker.cancellation_count == 3

    @pytest.mark.asyncio
    async def test_lapse_defaults_to_approved(self, services, session, collaborators, make_worker, clock) -> None:
        worker = await make_worker()
        worker, _ = await _cancel(services, session, collaborators, worker.id, 2)

        clock.advance(days=7, seconds=1)
        await services.reliability.ensure_eligible(worker)

        assert worker.status == WorkerStatus.APPROVED


class TestReset:
    @pytest.mark.asyncio
    async def test_admin_reset_clears_everything(self, services, session, collaborators, make_worker) -> None:
        worker = await make_worker()
        await _cancel(services, session, collaborators, worker.id, 4)

        worker = await services.reliability.reset_reliability(worker.id, "admin-1")

        assert worker.status == WorkerStatus.APPROVED
        assert worker.cancellation_count == 0
        assert worker.suspended_until is None
        assert not worker.requires_admin_review
        await services.reliability.ensure_eligible(worker)
