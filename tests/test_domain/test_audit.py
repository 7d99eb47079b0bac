"""Tests for deriving a job's status from its audit history."""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from job_broker.domain.audit import derive_status, verify_projection
from job_broker.domain.enums import AuditAction, JobStatus


class TestDeriveStatus:
    def test_posted_only(self) -> None:
        assert derive_status([AuditAction.JOB_POSTED]) == JobStatus.PENDING

    def test_reassignment_history(self) -> None:
        history = [
            "job_posted",
            "bid_accepted",
            "worker_cancelled",
            "bid_accepted",
            "worker_completed",
            "auto_confirmed",
        ]
        assert derive_status(history) == JobStatus.COMPLETED

    def test_history_must_start_with_posting(self) -> None:
        with pytest.raises(ValueError, match="must start with"):
            derive_status(["bid_accepted"])

    def test_unknown_action(self) -> None:
        with pytest.raises(ValueError, match="Unknown audit action"):
            derive_status(["job_posted", "teleported"])

    def test_illegal_history(self) -> None:
        with pytest.raises(TransitionNotAllowed):
            derive_status(["job_posted", "worker_completed"])


class TestVerifyProjection:
    def test_matching(self) -> None:
        assert verify_projection("assigned", ["job_posted", "bid_accepted"])

    def test_drift(self) -> None:
        assert not verify_projection("completed", ["job_posted", "bid_accepted"])
