"""Job lifecycle REST API routes.

These endpoints provide the HTTP interface for posting jobs, assigning
them, completing, confirming, disputing and cancelling. The MCP tools in
mcp_server/tools.py call the same service layer, ensuring consistency.

Routes:
    POST   /api/v1/jobs                               - Post a new job
    GET    /api/v1/jobs/{id}                          - Get job details
    GET    /api/v1/jobs/{id}/status                   - Lightweight status check
    GET    /api/v1/jobs/{id}/events                   - Audit trail
    GET    /api/v1/jobs/{id}/bids                     - Job with its active bids
    POST   /api/v1/jobs/{id}/bids/{bid_id}/accept     - Customer accepts a bid
    POST   /api/v1/jobs/{id}/complete                 - Worker marks the job done
    POST   /api/v1/jobs/{id}/confirm                  - Customer confirms completion
    POST   /api/v1/jobs/{id}/dispute                  - Customer disputes completion
    POST   /api/v1/jobs/{id}/worker-cancel            - Assigned worker backs out
    POST   /api/v1/jobs/{id}/cancel                   - Customer or admin cancels
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from job_broker.api.deps import get_job_service
from job_broker.logging_config import get_logger
from job_broker.schemas.jobs import (
    AcceptBidRequest,
    BidResponse,
    CancelJobRequest,
    CustomerActionRequest,
    FileDisputeRequest,
    JobEventResponse,
    JobResponse,
    JobStatusResponse,
    JobWithBidsResponse,
    PostJobRequest,
    WorkerActionRequest,
    WorkerCancelRequest,
)
from job_broker.services.job_service import JobService

router = APIRouter(prefix="/api/v1/jobs", tags=["Jobs"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Post & read
# ---------------------------------------------------------------------------


@router.post("", response_model=JobResponse, status_code=201, summary="Post a new job")
async def post_job(
    request: PostJobRequest,
    svc: JobService = Depends(get_job_service),
) -> JobResponse:
    job = await svc.post_job(
        customer_id=request.customer_id,
        title=request.title,
        budget=request.budget,
        scheduled_at=request.scheduled_at,
        description=request.description,
        location=request.location,
    )
    return JobResponse.model_validate(job)


@router.get("/{job_id}", response_model=JobResponse, summary="Get job details")
async def get_job(job_id: uuid.UUID, svc: JobService = Depends(get_job_service)) -> JobResponse:
    return JobResponse.model_validate(await svc.get_job(job_id))


@router.get("/{job_id}/status", response_model=JobStatusResponse, summary="Lightweight status check")
async def get_job_status(
    job_id: uuid.UUID,
    svc: JobService = Depends(get_job_service),
) -> JobStatusResponse:
    return JobStatusResponse(**await svc.get_status(job_id))


@router.get("/{job_id}/events", response_model=list[JobEventResponse], summary="Get audit trail")
async def get_job_events(
    job_id: uuid.UUID,
    svc: JobService = Depends(get_job_service),
) -> list[JobEventResponse]:
    """Return every state change of the job, oldest first."""
    events = await svc.get_history(job_id)
    return [JobEventResponse.model_validate(e) for e in events]


@router.get("/{job_id}/bids", response_model=JobWithBidsResponse, summary="Job with its active bids")
async def get_job_with_bids(
    job_id: uuid.UUID,
    svc: JobService = Depends(get_job_service),
) -> JobWithBidsResponse:
    job, bids = await svc.get_job_with_bids(job_id)
    return JobWithBidsResponse(
        job=JobResponse.model_validate(job),
        bids=[BidResponse.model_validate(b) for b in bids],
    )


# ---------------------------------------------------------------------------
# Lifecycle actions
# ---------------------------------------------------------------------------


@router.post(
    "/{job_id}/bids/{bid_id}/accept",
    response_model=JobResponse,
    summary="Accept a bid and hold the payment in escrow",
)
async def accept_bid(
    job_id: uuid.UUID,
    bid_id: uuid.UUID,
    request: AcceptBidRequest,
    svc: JobService = Depends(get_job_service),
) -> JobResponse:
    job = await svc.accept_bid(job_id, bid_id, customer_id=request.customer_id)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/complete", response_model=JobResponse, summary="Worker marks the job complete")
async def mark_worker_complete(
    job_id: uuid.UUID,
    request: WorkerActionRequest,
    svc: JobService = Depends(get_job_service),
) -> JobResponse:
    job = await svc.mark_worker_complete(job_id, request.worker_id)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/confirm", response_model=JobResponse, summary="Customer confirms completion")
async def confirm_completion(
    job_id: uuid.UUID,
    request: CustomerActionRequest,
    svc: JobService = Depends(get_job_service),
) -> JobResponse:
    job = await svc.confirm_completion(job_id, request.customer_id)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/dispute", response_model=JobResponse, summary="Customer disputes completion")
async def file_dispute(
    job_id: uuid.UUID,
    request: FileDisputeRequest,
    svc: JobService = Depends(get_job_service),
) -> JobResponse:
    job = await svc.file_dispute(job_id, request.customer_id, request.reason)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/worker-cancel", response_model=JobResponse, summary="Assigned worker cancels")
async def cancel_by_worker(
    job_id: uuid.UUID,
    request: WorkerCancelRequest,
    svc: JobService = Depends(get_job_service),
) -> JobResponse:
    """Reopen the job for bidding and apply the worker's cancellation penalty."""
    job = await svc.cancel_by_worker(job_id, request.worker_id, request.reason)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/cancel", response_model=JobResponse, summary="Cancel a job")
async def cancel_job(
    job_id: uuid.UUID,
    request: CancelJobRequest,
    svc: JobService = Depends(get_job_service),
) -> JobResponse:
    job = await svc.cancel_job(job_id, request.actor_role, request.actor_id, request.reason)
    return JobResponse.model_validate(job)
