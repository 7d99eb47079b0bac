"""Settlement sweep.

One pass runs three phases in order: auto-confirm jobs whose hold window has
lapsed, expire jobs nobody took in time, then mature ledger entries that have
come due. Every entity is handled in its own session and transaction, so a
failure on one job is logged and the sweep moves on. Running the sweep twice
in a row does nothing the second time.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from job_broker.config import Settings, get_settings
from job_broker.infrastructure.database.repositories import JobRepository, LedgerRepository
from job_broker.logging_config import get_logger
from job_broker.services.base import utcnow
from job_broker.services.job_service import JobService
from job_broker.services.wallet_service import WalletService

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from job_broker.services.fanout import Collaborators

logger = get_logger(__name__)


@dataclass
class SweepReport:
    auto_confirmed: int = 0
    expired: int = 0
    matured: int = 0
    failed: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "auto_confirmed": self.auto_confirmed,
            "expired": self.expired,
            "matured": self.matured,
            "failed": list(self.failed),
        }


class SettlementService:
    """Time-driven transitions that no user action triggers."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        collaborators: Collaborators,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._collab = collaborators
        self._settings = settings or get_settings()
        self._clock = clock or utcnow

    async def run_sweep(self) -> SweepReport:
        sweep_id = uuid.uuid4().hex[:12]
        report = SweepReport()
        with structlog.contextvars.bound_contextvars(sweep_id=sweep_id):
            now = self._clock()
            logger.info("settlement.sweep_started", now=now.isoformat())

            async with self._session_factory() as session:
                due = await JobRepository(session).ids_due_for_auto_confirm(now)
            for job_id in due:
                if await self._each(report, f"auto_confirm:{job_id}", self._auto_confirm(job_id)):
                    report.auto_confirmed += 1

            cutoff = now - self._settings.expired_job_grace
            async with self._session_factory() as session:
                stale = await JobRepository(session).ids_expired_unassigned(cutoff)
            for job_id in stale:
                if await self._each(report, f"expire:{job_id}", self._expire(job_id)):
                    report.expired += 1

            async with self._session_factory() as session:
                entries = await LedgerRepository(session).ids_due_for_maturation(now)
            for entry_id in entries:
                if await self._each(report, f"mature:{entry_id}", self._mature(entry_id)):
                    report.matured += 1

            logger.info("settlement.sweep_finished", **report.as_dict())
        return report

    async def run_forever(self, interval_seconds: float | None = None) -> None:
        """Sweep on a fixed interval until cancelled."""
        interval = interval_seconds or self._settings.settlement_sweep_interval_seconds
        while True:
            try:
                await self.run_sweep()
            except Exception:
                logger.exception("settlement.sweep_crashed")
            await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    # One entity, one session
    # ------------------------------------------------------------------

    async def _each(self, report: SweepReport, label: str, work: Awaitable[bool]) -> bool:
        try:
            return await work
        except Exception as exc:
            report.failed.append(label)
            logger.error("settlement.item_failed", item=label, error=str(exc), exc_type=type(exc).__name__)
            return False

    async def _auto_confirm(self, job_id: uuid.UUID) -> bool:
        async with self._session_factory() as session:
            service = JobService(session, self._collab, self._settings, self._clock)
            return await service.auto_confirm(job_id)

    async def _expire(self, job_id: uuid.UUID) -> bool:
        async with self._session_factory() as session:
            service = JobService(session, self._collab, self._settings, self._clock)
            return await service.expire_job(job_id)

    async def _mature(self, entry_id: uuid.UUID) -> bool:
        async with self._session_factory() as session:
            service = WalletService(session, self._collab, self._settings, self._clock)
            return await service.mature_and_commit(entry_id)
