"""Pydantic API schemas."""

from job_broker.schemas.jobs import (
    AcceptBidRequest,
    BidResponse,
    BidRevisionResponse,
    CancelJobRequest,
    ChangeRequestDecision,
    CustomerActionRequest,
    CustomerJobsResponse,
    FileDisputeRequest,
    HealthResponse,
    JobEventResponse,
    JobResponse,
    JobStatusResponse,
    JobWithBidsResponse,
    PostJobRequest,
    PriceChangeRequest,
    SubmitBidRequest,
    WaitlistRequest,
    WorkerActionRequest,
    WorkerCancelRequest,
)
from job_broker.schemas.workers import (
    AdminActionRequest,
    BalanceReportResponse,
    CountResponse,
    CustomerResponse,
    LedgerBlockRequest,
    PurgeRequest,
    RegisterAccountRequest,
    ResolveDisputeRequest,
    SweepReportResponse,
    WalletEntryResponse,
    WalletResponse,
    WithdrawalRequest,
    WorkerResponse,
)

__all__ = [
    "AcceptBidRequest",
    "AdminActionRequest",
    "BalanceReportResponse",
    "BidResponse",
    "BidRevisionResponse",
    "CancelJobRequest",
    "ChangeRequestDecision",
    "CountResponse",
    "CustomerActionRequest",
    "CustomerJobsResponse",
    "CustomerResponse",
    "FileDisputeRequest",
    "HealthResponse",
    "JobEventResponse",
    "JobResponse",
    "JobStatusResponse",
    "JobWithBidsResponse",
    "LedgerBlockRequest",
    "PostJobRequest",
    "PriceChangeRequest",
    "PurgeRequest",
    "RegisterAccountRequest",
    "ResolveDisputeRequest",
    "SubmitBidRequest",
    "SweepReportResponse",
    "WaitlistRequest",
    "WalletEntryResponse",
    "WalletResponse",
    "WithdrawalRequest",
    "WorkerActionRequest",
    "WorkerCancelRequest",
    "WorkerResponse",
]
