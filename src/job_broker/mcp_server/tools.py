"""MCP Tool definitions for the job broker.

These tools expose the marketplace via the Model Context Protocol, allowing
AI agents to discover and call them programmatically.

Tools:
    - post_job: Post a new job for workers to bid on
    - submit_bid: Worker bids on a job
    - accept_bid: Customer accepts a bid (captures the escrow hold)
    - mark_complete: Assigned worker marks the job done
    - confirm_completion: Customer confirms the work
    - raise_dispute: Customer disputes the work
    - cancel_assignment: Assigned worker backs out of a job
    - check_status: Current status and allowed events of a job
    - wallet_balance: A worker's spendable and held amounts

The MCP server is mounted into FastAPI at /mcp via app.mount().
Each tool manages its own database session (no FastAPI Depends available).
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from decimal import Decimal
from typing import Any

from mcp.server.fastmcp import FastMCP

from job_broker.config import get_settings
from job_broker.domain.exceptions import MarketplaceError
from job_broker.infrastructure.database.engine import get_session_factory
from job_broker.logging_config import get_logger
from job_broker.services import (
    BidService,
    Collaborators,
    JobService,
    WalletService,
    build_collaborators,
)

logger = get_logger(__name__)

# Initialize the MCP server
# This will be mounted into the FastAPI app in main.py
mcp = FastMCP(
    "Job Broker",
    json_response=True,
)

_collaborators: Collaborators | None = None


def configure(collaborators: Collaborators) -> None:
    """Share the application's collaborators with the tools."""
    global _collaborators
    _collaborators = collaborators


def _get_collaborators() -> Collaborators:
    global _collaborators
    if _collaborators is None:
        _collaborators = build_collaborators(get_settings())
    return _collaborators


async def _run(tool: str, work: Callable[[Any], Awaitable[dict]], service_cls: type) -> dict:
    """Open a session, build the service and turn domain errors into a result dict."""
    factory = get_session_factory()
    try:
        async with factory() as session:
            svc = service_cls(session, _get_collaborators())
            return await work(svc)
    except MarketplaceError as exc:
        logger.warning(f"mcp.{tool}.rejected", code=exc.code, error=exc.message)
        return {"error": exc.code, "message": exc.message, "current_status": exc.current_status}
    except Exception as exc:
        logger.exception(f"mcp.{tool}.error")
        return {"error": "INTERNAL_ERROR", "message": str(exc)}


def _job_dict(job: Any, message: str) -> dict:
    return {
        "job_id": str(job.id),
        "status": job.status,
        "payment_status": job.payment_status,
        "assigned_worker_id": str(job.assigned_worker_id) if job.assigned_worker_id else None,
        "assigned_price": str(job.assigned_price) if job.assigned_price is not None else None,
        "message": message,
    }


@mcp.tool()
async def post_job(
    customer_id: str,
    title: str,
    budget: float,
    scheduled_at: str,
    description: str = "",
    location: str = "",
) -> dict:
    """Post a new job for workers to bid on.

    Args:
        customer_id: UUID of the posting customer.
        title: Short title of the job.
        budget: Budget the customer expects to pay.
        scheduled_at: ISO-8601 timestamp with timezone, e.g. 2026-05-01T09:00:00+00:00.
        description: Optional longer description.
        location: Optional address or area.

    Returns:
        The new job's id and status. Next step: wait for bids.
    """

    async def work(svc: JobService) -> dict:
        job = await svc.post_job(
            customer_id=uuid.UUID(customer_id),
            title=title,
            budget=Decimal(str(budget)),
            scheduled_at=datetime.fromisoformat(scheduled_at),
            description=description or None,
            location=location or None,
        )
        return _job_dict(job, "Job posted. Next step: wait for bids.")

    return await _run("post_job", work, JobService)


@mcp.tool()
async def submit_bid(job_id: str, worker_id: str, price: float, message: str = "") -> dict:
    """Bid on a pending or reopened job.

    Args:
        job_id: UUID of the job.
        worker_id: Your worker UUID.
        price: The price you ask the customer to pay.
        message: Optional note for the customer.

    Returns:
        The bid id and the earnings you would receive at that price.
    """

    async def work(svc: BidService) -> dict:
        bid = await svc.submit_bid(uuid.UUID(job_id), uuid.UUID(worker_id), Decimal(str(price)), message or None)
        return {
            "bid_id": str(bid.id),
            "job_id": str(bid.job_id),
            "price": str(bid.price),
            "estimated_earnings": str(bid.estimated_earnings),
            "status": bid.status,
        }

    return await _run("submit_bid", work, BidService)


@mcp.tool()
async def accept_bid(job_id: str, bid_id: str, customer_id: str) -> dict:
    """Accept a bid. The bid price is held in escrow until the job settles.

    Args:
        job_id: UUID of your job.
        bid_id: UUID of the bid to accept.
        customer_id: Your customer UUID.
    """

    async def work(svc: JobService) -> dict:
        job = await svc.accept_bid(uuid.UUID(job_id), uuid.UUID(bid_id), customer_id=uuid.UUID(customer_id))
        return _job_dict(job, "Bid accepted and payment held.")

    return await _run("accept_bid", work, JobService)


@mcp.tool()
async def mark_complete(job_id: str, worker_id: str) -> dict:
    """Mark an assigned job as done. Payment releases after customer confirmation or 48 hours.

    Args:
        job_id: UUID of the job.
        worker_id: Your worker UUID; you must be the assigned worker.
    """

    async def work(svc: JobService) -> dict:
        job = await svc.mark_worker_complete(uuid.UUID(job_id), uuid.UUID(worker_id))
        result = _job_dict(job, "Completion recorded.")
        result["release_date"] = job.release_date.isoformat() if job.release_date else None
        return result

    return await _run("mark_complete", work, JobService)


@mcp.tool()
async def confirm_completion(job_id: str, customer_id: str) -> dict:
    """Confirm the worker's completion and release payment now."""

    async def work(svc: JobService) -> dict:
        job = await svc.confirm_completion(uuid.UUID(job_id), uuid.UUID(customer_id))
        return _job_dict(job, "Job completed and payment released.")

    return await _run("confirm_completion", work, JobService)


@mcp.tool()
async def raise_dispute(job_id: str, customer_id: str, reason: str) -> dict:
    """Dispute a completion before payment is released.

    Args:
        job_id: UUID of the job.
        customer_id: Your customer UUID.
        reason: What went wrong (at least 10 characters).
    """

    async def work(svc: JobService) -> dict:
        job = await svc.file_dispute(uuid.UUID(job_id), uuid.UUID(customer_id), reason)
        return _job_dict(job, "Dispute filed. An admin will review it.")

    return await _run("raise_dispute", work, JobService)


@mcp.tool()
async def cancel_assignment(job_id: str, worker_id: str, reason: str) -> dict:
    """Back out of a job assigned to you. Repeated cancellations lead to suspension."""

    async def work(svc: JobService) -> dict:
        job = await svc.cancel_by_worker(uuid.UUID(job_id), uuid.UUID(worker_id), reason)
        return _job_dict(job, "Assignment cancelled; the job is open for bids again.")

    return await _run("cancel_assignment", work, JobService)


@mcp.tool()
async def check_status(job_id: str) -> dict:
    """Check the current status of a job and which events can fire next."""

    async def work(svc: JobService) -> dict:
        return await svc.get_status(uuid.UUID(job_id))

    return await _run("check_status", work, JobService)


@mcp.tool()
async def wallet_balance(worker_id: str) -> dict:
    """A worker's spendable balance and the amount still held."""

    async def work(svc: WalletService) -> dict:
        summary = await svc.get_wallet(uuid.UUID(worker_id))
        return {
            "worker_id": str(summary.worker_id),
            "balance": str(summary.balance),
            "held": str(summary.held),
            "entries": len(summary.entries),
        }

    return await _run("wallet_balance", work, WalletService)
