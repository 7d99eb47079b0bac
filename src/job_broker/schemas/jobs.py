"""Pydantic schemas for jobs and bids.

These schemas define the request/response shapes for the REST API and
MCP tools. They are separate from the ORM models to maintain clean
boundaries between the API and database layers.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from job_broker.domain.enums import ActorRole

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class PostJobRequest(BaseModel):
    """Request body for posting a new job."""

    customer_id: uuid.UUID
    title: str = Field(..., min_length=3, max_length=200, examples=["Assemble two wardrobes"])
    description: str | None = Field(default=None, max_length=5000)
    budget: Decimal = Field(..., gt=0, decimal_places=2, examples=[180.00])
    location: str | None = Field(default=None, max_length=200)
    scheduled_at: datetime = Field(..., description="When the work is due (timezone-aware)")


class AcceptBidRequest(BaseModel):
    customer_id: uuid.UUID


class WorkerActionRequest(BaseModel):
    """Body for actions the assigned worker takes on a job."""

    worker_id: uuid.UUID


class CustomerActionRequest(BaseModel):
    customer_id: uuid.UUID


class FileDisputeRequest(BaseModel):
    customer_id: uuid.UUID
    reason: str = Field(..., min_length=10, max_length=2000, description="What went wrong")


class WorkerCancelRequest(BaseModel):
    worker_id: uuid.UUID
    reason: str = Field(..., min_length=3, max_length=1000)


class CancelJobRequest(BaseModel):
    """Cancellation by the owning customer or an admin."""

    actor_role: ActorRole = Field(..., examples=["customer"])
    actor_id: str = Field(..., min_length=1, max_length=64)
    reason: str = Field(..., min_length=3, max_length=1000)


class WaitlistRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class SubmitBidRequest(BaseModel):
    """Request body for a worker bidding on a job."""

    worker_id: uuid.UUID
    price: Decimal = Field(..., gt=0, decimal_places=2, examples=[90.00])
    message: str | None = Field(default=None, max_length=2000)


class PriceChangeRequest(BaseModel):
    worker_id: uuid.UUID
    new_price: Decimal = Field(..., gt=0, decimal_places=2)
    message: str | None = Field(default=None, max_length=2000)


class ChangeRequestDecision(BaseModel):
    customer_id: uuid.UUID
    accept: bool


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class JobResponse(BaseModel):
    """Response schema for a job."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    customer_id: uuid.UUID
    title: str
    description: str | None
    budget: Decimal
    location: str | None
    scheduled_at: datetime
    status: str
    assigned_worker_id: uuid.UUID | None
    assigned_price: Decimal | None
    repost_count: int
    waitlist_reason: str | None
    payment_status: str
    held_amount: Decimal | None
    refunded_amount: Decimal | None
    worker_marked_at: datetime | None
    customer_confirmed_at: datetime | None
    auto_confirmed_at: datetime | None
    disputed_at: datetime | None
    dispute_reason: str | None
    release_date: datetime | None
    cancellation_reason: str | None
    cancelled_by: str | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime


class CustomerJobsResponse(BaseModel):
    """A customer's jobs grouped by lifecycle bucket."""

    pending: list[JobResponse]
    active: list[JobResponse]
    completed: list[JobResponse]


class JobEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: uuid.UUID
    action: str
    actor_role: str
    actor_id: str | None
    old_status: str | None
    new_status: str
    notes: str | None
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class JobStatusResponse(BaseModel):
    """Lightweight status check response."""

    job_id: uuid.UUID
    status: str
    payment_status: str
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )


class BidResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    worker_id: uuid.UUID
    price: Decimal
    estimated_earnings: Decimal
    message: str | None
    status: str
    is_winning_bid: bool
    cancelled_by_worker: bool
    change_status: str
    change_new_price: Decimal | None
    change_new_earnings: Decimal | None
    change_message: str | None
    change_requested_at: datetime | None
    change_responded_at: datetime | None
    created_at: datetime
    updated_at: datetime


class JobWithBidsResponse(BaseModel):
    job: JobResponse
    bids: list[BidResponse]


class BidRevisionResponse(BaseModel):
    """One entry of a bid's append-only price history."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    bid_id: uuid.UUID
    kind: str
    price: Decimal
    earnings: Decimal
    message: str | None
    created_at: datetime


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
