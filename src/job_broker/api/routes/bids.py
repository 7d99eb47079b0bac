"""Bid REST API routes.

Routes:
    POST   /api/v1/jobs/{job_id}/bids                    - Submit a bid
    GET    /api/v1/bids?job_id=&worker_id=               - A worker's bid on a job
    GET    /api/v1/bids/{bid_id}                         - Get bid details
    GET    /api/v1/bids/{bid_id}/history                 - Price history
    POST   /api/v1/bids/{bid_id}/change-request          - Worker proposes a new price
    POST   /api/v1/bids/{bid_id}/change-request/cancel   - Worker withdraws the proposal
    POST   /api/v1/bids/{bid_id}/change-request/respond  - Customer accepts or rejects
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from job_broker.api.deps import get_bid_service
from job_broker.schemas.jobs import (
    BidResponse,
    BidRevisionResponse,
    ChangeRequestDecision,
    PriceChangeRequest,
    SubmitBidRequest,
    WorkerActionRequest,
)
from job_broker.services.bid_service import BidService

router = APIRouter(prefix="/api/v1", tags=["Bids"])


@router.post("/jobs/{job_id}/bids", response_model=BidResponse, status_code=201, summary="Submit a bid")
async def submit_bid(
    job_id: uuid.UUID,
    request: SubmitBidRequest,
    svc: BidService = Depends(get_bid_service),
) -> BidResponse:
    bid = await svc.submit_bid(job_id, request.worker_id, request.price, request.message)
    return BidResponse.model_validate(bid)


@router.get("/bids", response_model=BidResponse, summary="A worker's latest bid on a job")
async def get_bid_for_worker(
    job_id: uuid.UUID,
    worker_id: uuid.UUID,
    svc: BidService = Depends(get_bid_service),
) -> BidResponse:
    return BidResponse.model_validate(await svc.get_bid_for_worker(job_id, worker_id))


@router.get("/bids/{bid_id}", response_model=BidResponse, summary="Get bid details")
async def get_bid(bid_id: uuid.UUID, svc: BidService = Depends(get_bid_service)) -> BidResponse:
    return BidResponse.model_validate(await svc.get_bid(bid_id))


@router.get("/bids/{bid_id}/history", response_model=list[BidRevisionResponse], summary="Bid price history")
async def get_bid_history(
    bid_id: uuid.UUID,
    svc: BidService = Depends(get_bid_service),
) -> list[BidRevisionResponse]:
    return [BidRevisionResponse.model_validate(r) for r in await svc.get_bid_history(bid_id)]


@router.post("/bids/{bid_id}/change-request", response_model=BidResponse, summary="Propose a new price")
async def request_price_change(
    bid_id: uuid.UUID,
    request: PriceChangeRequest,
    svc: BidService = Depends(get_bid_service),
) -> BidResponse:
    bid = await svc.request_price_change(
        bid_id, request.new_price, message=request.message, worker_id=request.worker_id
    )
    return BidResponse.model_validate(bid)


@router.post(
    "/bids/{bid_id}/change-request/cancel",
    response_model=BidResponse,
    summary="Withdraw a pending price proposal",
)
async def cancel_change_request(
    bid_id: uuid.UUID,
    request: WorkerActionRequest,
    svc: BidService = Depends(get_bid_service),
) -> BidResponse:
    bid = await svc.cancel_pending_change_request(bid_id, request.worker_id)
    return BidResponse.model_validate(bid)


@router.post(
    "/bids/{bid_id}/change-request/respond",
    response_model=BidResponse,
    summary="Accept or reject a price proposal",
)
async def respond_to_change_request(
    bid_id: uuid.UUID,
    request: ChangeRequestDecision,
    svc: BidService = Depends(get_bid_service),
) -> BidResponse:
    bid = await svc.respond_to_change_request(bid_id, request.customer_id, request.accept)
    return BidResponse.model_validate(bid)
