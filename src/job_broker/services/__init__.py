"""Application services: use case orchestration."""

from job_broker.services.account_service import AccountService
from job_broker.services.bid_service import BidService
from job_broker.services.fanout import Collaborators, Outbox, build_collaborators
from job_broker.services.job_service import JobService
from job_broker.services.payment_service import (
    HttpPaymentGateway,
    PaymentGateway,
    SimulatedPaymentGateway,
    build_payment_gateway,
)
from job_broker.services.reliability_service import ReliabilityService
from job_broker.services.settlement_service import SettlementService, SweepReport
from job_broker.services.wallet_service import WalletService

__all__ = [
    "AccountService",
    "BidService",
    "Collaborators",
    "HttpPaymentGateway",
    "JobService",
    "Outbox",
    "PaymentGateway",
    "ReliabilityService",
    "SettlementService",
    "SimulatedPaymentGateway",
    "SweepReport",
    "WalletService",
    "build_collaborators",
    "build_payment_gateway",
]
