"""Admin REST API routes.

Routes:
    POST   /api/v1/admin/jobs/{id}/dispute/triage          - Take a dispute under review
    POST   /api/v1/admin/jobs/{id}/dispute/resolve         - Resolve a dispute
    POST   /api/v1/admin/jobs/{id}/waitlist                - Waitlist a pending job
    POST   /api/v1/admin/jobs/{id}/requeue                 - Reopen a waitlisted job
    POST   /api/v1/admin/jobs/purge                        - Delete old settled jobs
    POST   /api/v1/admin/ledger/block                      - Freeze unreleased entries
    POST   /api/v1/admin/ledger/unblock                    - Unfreeze entries
    POST   /api/v1/admin/workers/{id}/reliability/reset    - Clear a worker's record
    GET    /api/v1/admin/workers/{id}/balance-check        - Compare balance to ledger
    POST   /api/v1/admin/settlement/sweep                  - Run one settlement pass now
"""

from __future__ import annotations

import uuid
from datetime import timedelta

from fastapi import APIRouter, Depends

from job_broker.api.deps import (
    get_job_service,
    get_reliability_service,
    get_settlement_service,
    get_wallet_service,
)
from job_broker.logging_config import get_logger
from job_broker.schemas.jobs import JobResponse, WaitlistRequest
from job_broker.schemas.workers import (
    AdminActionRequest,
    BalanceReportResponse,
    CountResponse,
    LedgerBlockRequest,
    PurgeRequest,
    ResolveDisputeRequest,
    SweepReportResponse,
    WorkerResponse,
)
from job_broker.services import JobService, ReliabilityService, SettlementService, WalletService

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Disputes
# ---------------------------------------------------------------------------


@router.post("/jobs/{job_id}/dispute/triage", response_model=JobResponse, summary="Triage a dispute")
async def triage_dispute(
    job_id: uuid.UUID,
    request: AdminActionRequest,
    svc: JobService = Depends(get_job_service),
) -> JobResponse:
    job = await svc.triage_dispute(job_id, request.admin_id, request.notes)
    return JobResponse.model_validate(job)


@router.post("/jobs/{job_id}/dispute/resolve", response_model=JobResponse, summary="Resolve a dispute")
async def resolve_dispute(
    job_id: uuid.UUID,
    request: ResolveDisputeRequest,
    svc: JobService = Depends(get_job_service),
) -> JobResponse:
    job = await svc.resolve_dispute(
        job_id,
        request.admin_id,
        request.favor,
        refund_amount=request.refund_amount,
        notes=request.notes,
    )
    return JobResponse.model_validate(job)


# ---------------------------------------------------------------------------
# Job queue
# ---------------------------------------------------------------------------


@router.post("/jobs/{job_id}/waitlist", response_model=JobResponse, summary="Waitlist a job")
async def waitlist_job(
    job_id: uuid.UUID,
    request: WaitlistRequest,
    svc: JobService = Depends(get_job_service),
) -> JobResponse:
    return JobResponse.model_validate(await svc.waitlist_job(job_id, request.reason))


@router.post("/jobs/{job_id}/requeue", response_model=JobResponse, summary="Requeue a waitlisted job")
async def requeue_job(job_id: uuid.UUID, svc: JobService = Depends(get_job_service)) -> JobResponse:
    return JobResponse.model_validate(await svc.requeue_job(job_id))


@router.post("/jobs/purge", response_model=CountResponse, summary="Delete settled jobs")
async def purge_settled_jobs(
    request: PurgeRequest,
    svc: JobService = Depends(get_job_service),
) -> CountResponse:
    deleted = await svc.purge_settled_jobs(timedelta(days=request.older_than_days), request.admin_id)
    return CountResponse(count=deleted)


# ---------------------------------------------------------------------------
# Ledger and reliability
# ---------------------------------------------------------------------------


@router.post("/ledger/block", response_model=CountResponse, summary="Block ledger entries")
async def block_entries(
    request: LedgerBlockRequest,
    svc: WalletService = Depends(get_wallet_service),
) -> CountResponse:
    count = await svc.block_entries(request.admin_id, job_id=request.job_id, worker_id=request.worker_id)
    return CountResponse(count=count)


@router.post("/ledger/unblock", response_model=CountResponse, summary="Unblock ledger entries")
async def unblock_entries(
    request: LedgerBlockRequest,
    svc: WalletService = Depends(get_wallet_service),
) -> CountResponse:
    count = await svc.unblock_entries(request.admin_id, job_id=request.job_id, worker_id=request.worker_id)
    return CountResponse(count=count)


@router.post(
    "/workers/{worker_id}/reliability/reset",
    response_model=WorkerResponse,
    summary="Reset a worker's reliability record",
)
async def reset_reliability(
    worker_id: uuid.UUID,
    request: AdminActionRequest,
    svc: ReliabilityService = Depends(get_reliability_service),
) -> WorkerResponse:
    return WorkerResponse.model_validate(await svc.reset_reliability(worker_id, request.admin_id))


@router.get(
    "/workers/{worker_id}/balance-check",
    response_model=BalanceReportResponse,
    summary="Compare the stored balance with the ledger",
)
async def balance_check(
    worker_id: uuid.UUID,
    fix: bool = False,
    svc: WalletService = Depends(get_wallet_service),
) -> BalanceReportResponse:
    return BalanceReportResponse.model_validate(await svc.reconcile_balance(worker_id, fix=fix))


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


@router.post("/settlement/sweep", response_model=SweepReportResponse, summary="Run a settlement sweep")
async def run_sweep(svc: SettlementService = Depends(get_settlement_service)) -> SweepReportResponse:
    report = await svc.run_sweep()
    logger.info("admin.sweep_triggered", **report.as_dict())
    return SweepReportResponse.model_validate(report)
