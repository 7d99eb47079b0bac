"""Tests for customer and worker registration."""

from __future__ import annotations

import pytest

from job_broker.domain.enums import WorkerStatus
from job_broker.domain.exceptions import ConflictError


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_worker_defaults_to_approved(self, services) -> None:
        worker = await services.accounts.register_worker("Ana", "Ana@Example.com")
        assert worker.status == WorkerStatus.APPROVED
        assert worker.email == "ana@example.com"
        assert worker.cancellation_count == 0

    @pytest.mark.asyncio
    async def test_duplicate_email(self, services) -> None:
        await services.accounts.register_customer("Alice", "alice@example.com")
        with pytest.raises(ConflictError) as exc_info:
            await services.accounts.register_customer("Alice Again", "ALICE@example.com")
        assert exc_info.value.code == "EMAIL_TAKEN"
