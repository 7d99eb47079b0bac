"""Database infrastructure: engine, ORM models, and repositories."""

from job_broker.infrastructure.database.engine import (
    close_db,
    get_async_session,
    get_session_factory,
    init_db,
)
from job_broker.infrastructure.database.orm_models import (
    Base,
    Bid,
    BidRevision,
    Customer,
    Job,
    JobEvent,
    WalletEntry,
    Worker,
)
from job_broker.infrastructure.database.repositories import (
    BidRepository,
    CustomerRepository,
    EventRepository,
    JobRepository,
    LedgerRepository,
    WorkerRepository,
)

__all__ = [
    "Base",
    "Bid",
    "BidRevision",
    "Customer",
    "Job",
    "JobEvent",
    "WalletEntry",
    "Worker",
    "BidRepository",
    "CustomerRepository",
    "EventRepository",
    "JobRepository",
    "LedgerRepository",
    "WorkerRepository",
    "get_async_session",
    "get_session_factory",
    "init_db",
    "close_db",
]
