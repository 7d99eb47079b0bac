"""Shared test fixtures for the job broker test suite.

Provides:
    - A throwaway SQLite database (aiosqlite) per test, schema created up front
    - Recording fakes for notifications, events and the payment gateway
    - A controllable clock
    - Factory fixtures for customers, workers, jobs and services
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from job_broker.config import Settings
from job_broker.domain.exceptions import PaymentError
from job_broker.infrastructure.database.engine import build_session_factory, create_schema
from job_broker.infrastructure.database.orm_models import Customer, Job, Worker
from job_broker.services import (
    AccountService,
    BidService,
    Collaborators,
    JobService,
    ReliabilityService,
    SettlementService,
    SimulatedPaymentGateway,
    WalletService,
)

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


@dataclass
class FrozenClock:
    now: datetime = field(default_factory=lambda: datetime.now(UTC).replace(microsecond=0))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@dataclass
class RecordingNotifier:
    sent: list[tuple[str, str, dict]] = field(default_factory=list)
    fail: bool = False

    async def notify(self, recipient: str, kind: str, context: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("mailer unavailable")
        self.sent.append((recipient, kind, context))

    def kinds_for(self, recipient: str) -> list[str]:
        return [kind for to, kind, _ in self.sent if to == recipient]


@dataclass
class RecordingEventBus:
    published: list[tuple[str, dict]] = field(default_factory=list)
    fail: bool = False

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("event bus unavailable")
        self.published.append((topic, payload))

    def topics(self) -> list[str]:
        return [topic for topic, _ in self.published]


class RecordingPaymentGateway(SimulatedPaymentGateway):
    """Simulated escrow that records calls and can be told to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, Any]] = []
        self.fail_on: set[str] = set()

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail_on:
            raise PaymentError(f"{name} declined")

    async def capture_hold(self, job_id: str, amount: Decimal) -> str:
        self._maybe_fail("capture_hold")
        self.calls.append(("capture_hold", Decimal(amount)))
        return await super().capture_hold(job_id, amount)

    async def capture_additional(self, escrow_ref: str, amount: Decimal) -> None:
        self._maybe_fail("capture_additional")
        self.calls.append(("capture_additional", Decimal(amount)))
        await super().capture_additional(escrow_ref, amount)

    async def release_to_worker(self, escrow_ref: str) -> None:
        self._maybe_fail("release_to_worker")
        self.calls.append(("release_to_worker", escrow_ref))
        await super().release_to_worker(escrow_ref)

    async def refund(self, escrow_ref: str, amount: Decimal) -> None:
        self._maybe_fail("refund")
        self.calls.append(("refund", Decimal(amount)))
        await super().refund(escrow_ref, amount)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


# ---------------------------------------------------------------------------
# Infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="test",
        database_url="sqlite+aiosqlite://",
        payment_simulate=True,
        settlement_sweep_enabled=False,
        admin_email="admin@example.com",
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def events() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def payments() -> RecordingPaymentGateway:
    return RecordingPaymentGateway()


@pytest.fixture
def collaborators(
    notifier: RecordingNotifier,
    events: RecordingEventBus,
    payments: RecordingPaymentGateway,
) -> Collaborators:
    return Collaborators(notifier=notifier, events=events, payments=payments)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@dataclass
class Services:
    jobs: JobService
    bids: BidService
    wallet: WalletService
    reliability: ReliabilityService
    accounts: AccountService
    settlement: SettlementService


@pytest.fixture
def services(session, session_factory, collaborators, settings, clock) -> Services:
    args = (session, collaborators, settings, clock)
    return Services(
        jobs=JobService(*args),
        bids=BidService(*args),
        wallet=WalletService(*args),
        reliability=ReliabilityService(*args),
        accounts=AccountService(*args),
        settlement=SettlementService(session_factory, collaborators, settings, clock),
    )


@pytest.fixture
def reload(session_factory):
    """Read a row through a fresh session, bypassing the test session's identity map."""

    async def _reload(model: type, entity_id: uuid.UUID) -> Any:
        async with session_factory() as fresh:
            return await fresh.get(model, entity_id)

    return _reload


# ---------------------------------------------------------------------------
# Data factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_customer(services: Services):
    async def _make(name: str = "Alice") -> Customer:
        return await services.accounts.register_customer(name, f"{name.lower()}-{uuid.uuid4().hex[:6]}@example.com")

    return _make


@pytest.fixture
def make_worker(services: Services):
    async def _make(name: str = "Ana") -> Worker:
        return await services.accounts.register_worker(name, f"{name.lower()}-{uuid.uuid4().hex[:6]}@example.com")

    return _make


@pytest.fixture
def make_job(services: Services, clock: FrozenClock):
    async def _make(
        customer: Customer,
        budget: str = "120.00",
        scheduled_at: datetime | None = None,
        title: str = "Mount a TV on drywall",
    ) -> Job:
        return await services.jobs.post_job(
            customer_id=customer.id,
            title=title,
            budget=Decimal(budget),
            scheduled_at=scheduled_at or clock.now,
        )

    return _make


@dataclass
class Assigned:
    customer: Customer
    worker: Worker
    job: Job
    bid_id: uuid.UUID


@pytest.fixture
def assigned_job(services: Services, make_customer, make_worker, make_job):
    """A job with an accepted bid at ``price``."""

    async def _make(price: str = "90.00", scheduled_at: datetime | None = None) -> Assigned:
        customer = await make_customer()
        worker = await make_worker()
        job = await make_job(customer, scheduled_at=scheduled_at)
        bid = await services.bids.submit_bid(job.id, worker.id, Decimal(price))
        job = await services.jobs.accept_bid(job.id, bid.id, customer_id=customer.id)
        return Assigned(customer=customer, worker=worker, job=job, bid_id=bid.id)

    return _make


@pytest.fixture
def sample_job_id() -> uuid.UUID:
    """Return a deterministic UUID for testing."""
    return uuid.UUID("12345678-1234-5678-1234-567812345678")
