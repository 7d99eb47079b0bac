"""Customer and worker REST API routes: registration, job lists, reliability and wallet.

Routes:
    POST   /api/v1/customers                          - Register a customer
    GET    /api/v1/customers/{id}/jobs                - Jobs grouped by bucket
    POST   /api/v1/workers                            - Register a worker
    GET    /api/v1/workers/{id}                       - Worker with reliability state
    GET    /api/v1/workers/{id}/jobs                  - Jobs assigned to the worker
    GET    /api/v1/workers/{id}/bids                  - Bids placed by the worker
    GET    /api/v1/workers/{id}/wallet                - Balance, held amount, entries
    POST   /api/v1/workers/{id}/withdrawals           - Request a withdrawal
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from job_broker.api.deps import (
    get_account_service,
    get_bid_service,
    get_job_service,
    get_reliability_service,
    get_wallet_service,
)
from job_broker.schemas.jobs import BidResponse, CustomerJobsResponse, JobResponse
from job_broker.schemas.workers import (
    CustomerResponse,
    RegisterAccountRequest,
    WalletEntryResponse,
    WalletResponse,
    WithdrawalRequest,
    WorkerResponse,
)
from job_broker.services import (
    AccountService,
    BidService,
    JobService,
    ReliabilityService,
    WalletService,
)

router = APIRouter(prefix="/api/v1", tags=["Accounts"])


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


@router.post("/customers", response_model=CustomerResponse, status_code=201, summary="Register a customer")
async def register_customer(
    request: RegisterAccountRequest,
    svc: AccountService = Depends(get_account_service),
) -> CustomerResponse:
    customer = await svc.register_customer(request.name, request.email)
    return CustomerResponse.model_validate(customer)


@router.get(
    "/customers/{customer_id}/jobs",
    response_model=CustomerJobsResponse,
    summary="A customer's jobs grouped into pending, active and completed",
)
async def list_customer_jobs(
    customer_id: uuid.UUID,
    svc: JobService = Depends(get_job_service),
) -> CustomerJobsResponse:
    buckets = await svc.list_jobs_for_customer(customer_id)
    return CustomerJobsResponse(
        **{name: [JobResponse.model_validate(j) for j in jobs] for name, jobs in buckets.items()}
    )


# ---------------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------------


@router.post("/workers", response_model=WorkerResponse, status_code=201, summary="Register a worker")
async def register_worker(
    request: RegisterAccountRequest,
    svc: AccountService = Depends(get_account_service),
) -> WorkerResponse:
    worker = await svc.register_worker(request.name, request.email)
    return WorkerResponse.model_validate(worker)


@router.get("/workers/{worker_id}", response_model=WorkerResponse, summary="Worker reliability state")
async def get_worker(
    worker_id: uuid.UUID,
    svc: ReliabilityService = Depends(get_reliability_service),
) -> WorkerResponse:
    return WorkerResponse.model_validate(await svc.get_reliability(worker_id))


@router.get("/workers/{worker_id}/jobs", response_model=list[JobResponse], summary="Jobs assigned to a worker")
async def list_assigned_jobs(
    worker_id: uuid.UUID,
    svc: JobService = Depends(get_job_service),
) -> list[JobResponse]:
    return [JobResponse.model_validate(j) for j in await svc.list_assigned_jobs(worker_id)]


@router.get("/workers/{worker_id}/bids", response_model=list[BidResponse], summary="Bids placed by a worker")
async def list_worker_bids(
    worker_id: uuid.UUID,
    svc: BidService = Depends(get_bid_service),
) -> list[BidResponse]:
    return [BidResponse.model_validate(b) for b in await svc.list_bids_for_worker(worker_id)]


@router.get("/workers/{worker_id}/wallet", response_model=WalletResponse, summary="Worker wallet")
async def get_wallet(
    worker_id: uuid.UUID,
    svc: WalletService = Depends(get_wallet_service),
) -> WalletResponse:
    summary = await svc.get_wallet(worker_id)
    return WalletResponse(
        worker_id=summary.worker_id,
        balance=summary.balance,
        held=summary.held,
        entries=[WalletEntryResponse.model_validate(e) for e in summary.entries],
    )


@router.post(
    "/workers/{worker_id}/withdrawals",
    response_model=WalletEntryResponse,
    status_code=201,
    summary="Withdraw from the spendable balance",
)
async def request_withdrawal(
    worker_id: uuid.UUID,
    request: WithdrawalRequest,
    svc: WalletService = Depends(get_wallet_service),
) -> WalletEntryResponse:
    entry = await svc.request_withdrawal(worker_id, request.amount, request.method)
    return WalletEntryResponse.model_validate(entry)
