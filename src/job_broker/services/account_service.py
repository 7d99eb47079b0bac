"""Account Service: customer and worker registration."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from job_broker.domain.enums import WorkerStatus
from job_broker.domain.exceptions import ConflictError
from job_broker.infrastructure.database.orm_models import Customer, Worker
from job_broker.logging_config import get_logger
from job_broker.services.base import LifecycleService

logger = get_logger(__name__)


class AccountService(LifecycleService):
    async def register_customer(self, name: str, email: str) -> Customer:
        customer = Customer(name=name, email=email.lower())
        try:
            await self._customers.create(customer)
        except IntegrityError as exc:
            await self._session.rollback()
            raise ConflictError(f"Email already registered: {email}", code="EMAIL_TAKEN") from exc
        await self._commit()
        logger.info("customer.registered", customer_id=str(customer.id))
        return customer

    async def register_worker(
        self,
        name: str,
        email: str,
        status: WorkerStatus = WorkerStatus.APPROVED,
    ) -> Worker:
        worker = Worker(name=name, email=email.lower(), status=status.value)
        try:
            await self._workers.create(worker)
        except IntegrityError as exc:
            await self._session.rollback()
            raise ConflictError(f"Email already registered: {email}", code="EMAIL_TAKEN") from exc
        await self._commit()
        logger.info("worker.registered", worker_id=str(worker.id), status=worker.status)
        return worker
