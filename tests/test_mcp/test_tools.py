"""Tests for the MCP tool layer.

Tools open their own sessions, so the module-level session factory is
pointed at the per-test database.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from job_broker.mcp_server import tools


@pytest.fixture
def wired_tools(monkeypatch, session_factory, collaborators, settings):
    monkeypatch.setattr(tools, "get_session_factory", lambda: session_factory)
    monkeypatch.setattr("job_broker.services.base.get_settings", lambda: settings)
    tools.configure(collaborators)
    yield tools
    tools.configure(None)


class TestToolFlow:
    @pytest.mark.asyncio
    async def test_post_bid_accept_complete(self, wired_tools, make_customer, make_worker) -> None:
        customer = await make_customer()
        worker = await make_worker()

        posted = await wired_tools.post_job(
            customer_id=str(customer.id),
            title="Paint the fence",
            budget=200.0,
            scheduled_at=datetime.now(UTC).isoformat(),
        )
        assert posted["status"] == "pending"

        bid = await wired_tools.submit_bid(posted["job_id"], str(worker.id), 200.0)
        assert bid["estimated_earnings"] == "184.00"

        accepted = await wired_tools.accept_bid(posted["job_id"], bid["bid_id"], str(customer.id))
        assert accepted["status"] == "assigned"
        assert accepted["payment_status"] == "holding"

        done = await wired_tools.mark_complete(posted["job_id"], str(worker.id))
        assert done["status"] == "worker_completed"
        assert done["release_date"] is not None

        status = await wired_tools.check_status(posted["job_id"])
        assert status["status"] == "worker_completed"

        wallet = await wired_tools.wallet_balance(str(worker.id))
        assert Decimal(wallet["balance"]) == Decimal("0")
        assert Decimal(wallet["held"]) == Decimal("184.00")


class TestToolErrors:
    @pytest.mark.asyncio
    async def test_domain_error_becomes_result(self, wired_tools) -> None:
        result = await wired_tools.check_status(str(uuid.uuid4()))

        assert result["error"] == "JOB_NOT_FOUND"
        assert "message" in result

    @pytest.mark.asyncio
    async def test_bad_input_is_reported_not_raised(self, wired_tools) -> None:
        result = await wired_tools.check_status("not-a-uuid")

        assert result["error"] == "INTERNAL_ERROR"
