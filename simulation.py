#!/usr/bin/env python3
"""Job Broker: End-to-End Simulation.

Simulates three scenarios with CustomerBot and WorkerBot actors against the
real service layer, a simulated payment gateway and a controllable clock:

    Scenario 1: Happy Path
        - Customer posts a job, two workers bid
        - Customer accepts the cheaper bid -> payment held in escrow
        - Worker marks complete, customer confirms -> COMPLETED + payout released

    Scenario 2: Silent Customer
        - Worker marks complete, customer never answers
        - 48 hours pass, the settlement sweep auto-confirms and pays out

    Scenario 3: Unreliable Worker
        - Assigned worker cancels twice -> job reopens, worker is suspended
        - Suspended worker's next bid is refused
        - Another worker wins the reopened job

Usage:
    # Option A: Against PostgreSQL (DATABASE_URL from the environment / .env):
    python simulation.py

    # Option B: Without PostgreSQL (SQLite file in a temp directory):
    python simulation.py --sqlite

    # Run a specific scenario:
    python simulation.py --sqlite --scenario 1
"""

from __future__ import annotations

import argparse
import asyncio
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from job_broker.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from job_broker.config import get_settings  # noqa: E402
from job_broker.domain.exceptions import MarketplaceError  # noqa: E402
from job_broker.infrastructure.database.engine import (  # noqa: E402
    build_engine,
    build_session_factory,
    create_schema,
)
from job_broker.services import (  # noqa: E402
    AccountService,
    BidService,
    Collaborators,
    JobService,
    ReliabilityService,
    SettlementService,
    SimulatedPaymentGateway,
    WalletService,
)
from job_broker.infrastructure.event_bus import LoggingEventBus  # noqa: E402
from job_broker.infrastructure.notifications import LoggingNotificationDispatcher  # noqa: E402

# Module-level state
_engine = None
_session_factory = None
_tmpdir: tempfile.TemporaryDirectory | None = None


@dataclass
class SimClock:
    """Wall clock the scenarios can move forward."""

    now: datetime = field(default_factory=lambda: datetime(2026, 3, 2, 9, 0, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta
        logger.info("⏩ CLOCK: advanced", to=self.now.isoformat())


CLOCK = SimClock()
COLLABORATORS = Collaborators(
    notifier=LoggingNotificationDispatcher(),
    events=LoggingEventBus(),
    payments=SimulatedPaymentGateway(),
)


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize database engine and create tables."""
    global _engine, _session_factory, _tmpdir

    if use_sqlite:
        _tmpdir = tempfile.TemporaryDirectory(prefix="job-broker-sim-")
        url = f"sqlite+aiosqlite:///{Path(_tmpdir.name) / 'simulation.db'}"
        logger.info("database.sqlite_initialized", url=url)
    else:
        url = get_settings().database_url
    _engine = build_engine(url)
    _session_factory = build_session_factory(_engine)
    await create_schema(_engine)


async def shutdown_database() -> None:
    """Close database connections."""
    global _engine, _session_factory, _tmpdir

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
    if _tmpdir is not None:
        _tmpdir.cleanup()
        _tmpdir = None


async def call(service_cls: type, method: str, *args: Any, **kwargs: Any) -> Any:
    """Run one use case in its own session, as a request handler would."""
    async with _session_factory() as session:
        svc = service_cls(session, COLLABORATORS, clock=CLOCK)
        return await getattr(svc, method)(*args, **kwargs)


# ---------------------------------------------------------------------------
# Bots
# ---------------------------------------------------------------------------
@dataclass
class CustomerBot:
    """Simulated customer that posts jobs and reacts to completion."""

    name: str
    customer_id: uuid.UUID | None = None

    async def register(self) -> None:
        email = f"{self.name.lower()}-{uuid.uuid4().hex[:6]}@example.com"
        customer = await call(AccountService, "register_customer", self.name, email)
        self.customer_id = customer.id

    async def post_job(self, title: str, budget: str, days_ahead: int = 0) -> uuid.UUID:
        job = await call(
            JobService,
            "post_job",
            self.customer_id,
            title,
            Decimal(budget),
            CLOCK.now + timedelta(days=days_ahead),
        )
        logger.info("🔵 CUSTOMER: Job posted", job_id=str(job.id), title=title, budget=budget)
        return job.id

    async def accept(self, job_id: uuid.UUID, bid_id: uuid.UUID) -> None:
        job = await call(JobService, "accept_bid", job_id, bid_id, customer_id=self.customer_id)
        logger.info("🔵 CUSTOMER: Bid accepted", job_id=str(job_id), price=str(job.assigned_price))

    async def confirm(self, job_id: uuid.UUID) -> None:
        await call(JobService, "confirm_completion", job_id, self.customer_id)
        logger.info("🔵 CUSTOMER: Completion confirmed", job_id=str(job_id))


@dataclass
class WorkerBot:
    """Simulated worker that bids, completes and sometimes cancels."""

    name: str
    worker_id: uuid.UUID | None = None

    async def register(self) -> None:
        email = f"{self.name.lower()}-{uuid.uuid4().hex[:6]}@example.com"
        worker = await call(AccountService, "register_worker", self.name, email)
        self.worker_id = worker.id

    async def bid(self, job_id: uuid.UUID, price: str) -> uuid.UUID | None:
        try:
            bid = await call(BidService, "submit_bid", job_id, self.worker_id, Decimal(price))
        except MarketplaceError as exc:
            logger.info("🟢 WORKER: Bid refused", worker=self.name, code=exc.code, reason=exc.message)
            return None
        logger.info(
            "🟢 WORKER: Bid placed",
            worker=self.name,
            price=price,
            earnings=str(bid.estimated_earnings),
        )
        return bid.id

    async def complete(self, job_id: uuid.UUID) -> None:
        job = await call(JobService, "mark_worker_complete", job_id, self.worker_id)
        logger.info("🟢 WORKER: Marked complete", worker=self.name, release_date=job.release_date.isoformat())

    async def cancel(self, job_id: uuid.UUID, reason: str) -> None:
        await call(JobService, "cancel_by_worker", job_id, self.worker_id, reason)
        logger.info("🟢 WORKER: Cancelled assignment", worker=self.name, reason=reason)

    async def balance(self) -> Decimal:
        wallet = await call(WalletService, "get_wallet", self.worker_id)
        return wallet.balance


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


async def print_job(job_id: uuid.UUID) -> None:
    job = await call(JobService, "get_job", job_id)
    print(f"  Status: {job.status}  Payment: {job.payment_status}  Reposts: {job.repost_count}")


async def print_audit_trail(job_id: uuid.UUID) -> None:
    """Print the full audit trail for a job."""
    events = await call(JobService, "get_history", job_id)
    print("\n  📜 Audit Trail:")
    for i, evt in enumerate(events, 1):
        old = evt.old_status or "-"
        print(f"    {i}. [{evt.action}] {old} → {evt.new_status} (by {evt.actor_role})")
    consistent = await call(JobService, "verify_history", job_id)
    print(f"  Replay matches stored status: {'yes' if consistent else 'NO'}\n")


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    """Customer posts, accepts the cheaper bid, confirms the completion."""
    banner("SCENARIO 1: Happy Path: Bid, Assign, Complete, Confirm")

    customer = CustomerBot("Alice")
    ana, ben = WorkerBot("Ana"), WorkerBot("Ben")
    for actor in (customer, ana, ben):
        await actor.register()

    section("Step 1: Customer posts a job for today")
    job_id = await customer.post_job("Mount a TV on drywall", "120.00")

    section("Step 2: Two workers bid")
    ana_bid = await ana.bid(job_id, "90.00")
    await ben.bid(job_id, "110.00")

    section("Step 3: Customer accepts the cheaper bid")
    await customer.accept(job_id, ana_bid)
    await print_job(job_id)

    section("Step 4: Worker completes, customer confirms")
    CLOCK.advance(timedelta(hours=3))
    await ana.complete(job_id)
    await customer.confirm(job_id)
    await print_job(job_id)

    balance = await ana.balance()
    print(f"  💰 Ana's balance: {balance} (bid 90.00 minus the 4.49 fee)")
    assert balance == Decimal("85.51"), balance
    await print_audit_trail(job_id)


# ===========================================================================
# Scenario 2: Silent Customer
# ===========================================================================
async def scenario_2_silent_customer() -> None:
    """Nobody confirms; the sweep releases payment once the hold window lapses."""
    banner("SCENARIO 2: Silent Customer: Automatic Release After 48h")

    customer = CustomerBot("Carol")
    worker = WorkerBot("Dev")
    await customer.register()
    await worker.register()

    section("Step 1: Setup (Post -> Bid -> Accept -> Complete)")
    job_id = await customer.post_job("Deep clean a two-bedroom flat", "200.00")
    bid_id = await worker.bid(job_id, "200.00")
    await customer.accept(job_id, bid_id)
    await worker.complete(job_id)

    settlement = SettlementService(_session_factory, COLLABORATORS, clock=CLOCK)

    section("Step 2: Sweep one day later does nothing")
    CLOCK.advance(timedelta(hours=24))
    report = await settlement.run_sweep()
    print(f"  Sweep: {report.as_dict()}")
    await print_job(job_id)

    section("Step 3: Sweep after the hold window auto-confirms")
    CLOCK.advance(timedelta(hours=25))
    report = await settlement.run_sweep()
    print(f"  Sweep: {report.as_dict()}")
    await print_job(job_id)

    balance = await worker.balance()
    print(f"  💰 Dev's balance: {balance} (200.00 at the 92% tier)")

    section("Step 4: A second sweep is a no-op")
    report = await settlement.run_sweep()
    print(f"  Sweep: {report.as_dict()}")
    await print_audit_trail(job_id)


# ===========================================================================
# Scenario 3: Unreliable Worker
# ===========================================================================
async def scenario_3_unreliable_worker() -> None:
    """A worker cancels twice, gets suspended, and the job goes to someone else."""
    banner("SCENARIO 3: Unreliable Worker: Cancellations and Suspension")

    customer = CustomerBot("Erin")
    flaky, steady = WorkerBot("Flaky"), WorkerBot("Steady")
    for actor in (customer, flaky, steady):
        await actor.register()

    job_id = await customer.post_job("Assemble a wardrobe", "150.00", days_ahead=2)

    for attempt in (1, 2):
        section(f"Round {attempt}: Flaky wins the job and cancels")
        bid_id = await flaky.bid(job_id, "140.00")
        if bid_id is None:
            break
        await customer.accept(job_id, bid_id)
        await flaky.cancel(job_id, "Double-booked")
        await print_job(job_id)

    worker = await call(ReliabilityService, "get_reliability", flaky.worker_id)
    print(f"  ⚠️  Flaky: status={worker.status} cancellations={worker.cancellation_count}")

    section("Round 3: Flaky tries again and is refused")
    await flaky.bid(job_id, "130.00")

    section("Round 4: Steady takes the job")
    bid_id = await steady.bid(job_id, "145.00")
    await customer.accept(job_id, bid_id)
    await print_job(job_id)
    await print_audit_trail(job_id)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_silent_customer,
    3: scenario_3_unreliable_worker,
}


async def run(scenario: int = 0, use_sqlite: bool = False) -> None:
    """Run one scenario, or all of them when ``scenario`` is 0."""
    await init_database(use_sqlite=use_sqlite)
    try:
        print("\n" + "🚀" * 35)
        print("  JOB BROKER: SIMULATION")
        db_type = "SQLite (temp file)" if use_sqlite else "PostgreSQL"
        print(f"  Database: {db_type}")
        print("🚀" * 35 + "\n")

        if scenario == 0:
            for fn in SCENARIOS.values():
                await fn()
        elif scenario in SCENARIOS:
            await SCENARIOS[scenario]()
        else:
            print(f"Unknown scenario {scenario}. Available: 1, 2, 3")
            return

        print("\n" + "=" * 70)
        print("  ✅ SIMULATION FINISHED")
        print("=" * 70 + "\n")
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Job Broker Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use a temporary SQLite file instead of PostgreSQL (no Docker needed).",
    )
    args = parser.parse_args()
    asyncio.run(run(args.scenario, use_sqlite=args.sqlite))
