"""Tests for the JobStateMachine domain guard.

These tests verify that:
    1. All valid transitions are allowed.
    2. All invalid transitions are blocked.
    3. The convenience function validate_transition works.
    4. Terminal states accept nothing.
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from job_broker.domain.state_machine import JobStateMachine, validate_transition


class TestHappyPath:
    """Test the full happy-path lifecycle: pending -> completed."""

    def test_full_lifecycle(self) -> None:
        sm = JobStateMachine("pending")
        assert sm.status == "pending"

        sm.accept_bid()
        assert sm.status == "assigned"

        sm.mark_worker_complete()
        assert sm.status == "worker_completed"

        sm.customer_confirm()
        assert sm.status == "completed"

    def test_auto_confirm(self) -> None:
        sm = JobStateMachine("worker_completed")
        sm.auto_confirm()
        assert sm.status == "completed"


class TestReopenPath:
    """Test a worker backing out and the job being reassigned."""

    def test_worker_cancel_reopens(self) -> None:
        sm = JobStateMachine("assigned")
        sm.worker_cancel()
        assert sm.status == "reopened"

        sm.accept_bid()
        assert sm.status == "assigned"

    def test_cannot_worker_cancel_after_completion(self) -> None:
        sm = JobStateMachine("worker_completed")
        with pytest.raises(TransitionNotAllowed):
            sm.worker_cancel()


class TestDisputePath:
    """Test dispute transitions."""

    def test_dispute_then_triage(self) -> None:
        sm = JobStateMachine("worker_completed")
        sm.file_dispute()
        assert sm.status == "dispute"
        sm.triage_dispute()
        assert sm.status == "disputed"

    @pytest.mark.parametrize("start", ["dispute", "disputed"])
    def test_resolutions_from_both_dispute_states(self, start: str) -> None:
        assert validate_transition(start, "resolve_for_worker") == "completed"
        assert validate_transition(start, "resolve_partial_refund") == "completed"
        assert validate_transition(start, "resolve_full_refund") == "cancelled"

    def test_cannot_dispute_assigned_job(self) -> None:
        sm = JobStateMachine("assigned")
        with pytest.raises(TransitionNotAllowed):
            sm.file_dispute()


class TestCancellation:
    @pytest.mark.parametrize("start", ["pending", "assigned", "reopened", "waitlisted"])
    def test_cancel_job(self, start: str) -> None:
        assert validate_transition(start, "cancel_job") == "cancelled"

    def test_expire_only_unassigned(self) -> None:
        assert validate_transition("pending", "expire_unassigned") == "cancelled"
        with pytest.raises(TransitionNotAllowed):
            validate_transition("assigned", "expire_unassigned")

    def test_waitlist_roundtrip(self) -> None:
        sm = JobStateMachine("pending")
        sm.waitlist_job()
        assert sm.status == "waitlisted"
        sm.requeue_job()
        assert sm.status == "pending"


class TestTerminalStates:
    @pytest.mark.parametrize("terminal", ["completed", "cancelled"])
    def test_terminal_states_allow_nothing(self, terminal: str) -> None:
        sm = JobStateMachine(terminal)
        assert sm.get_allowed_events() == []

    def test_cancelled_cannot_complete(self) -> None:
        with pytest.raises(TransitionNotAllowed):
            validate_transition("cancelled", "mark_worker_complete")


class TestValidateTransition:
    def test_unknown_event_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            validate_transition("pending", "teleport")

    def test_unknown_status_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            JobStateMachine("archived")

    def test_allowed_events_from_pending(self) -> None:
        sm = JobStateMachine("pending")
        assert set(sm.get_allowed_events()) == {
            "accept_bid", "cancel_job", "expire_unassigned", "waitlist_job",
        }
