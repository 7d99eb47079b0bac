"""Tests for the worker cancellation escalation policy."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from job_broker.domain.enums import WorkerStatus
from job_broker.domain.reliability import EscalationPolicy, escalate, is_eligible

NOW = datetime(2026, 3, 2, tzinfo=UTC)


class TestEscalate:
    def test_first_cancellation_is_a_warning(self) -> None:
        result = escalate(1)
        assert result.new_status is None
        assert result.suspension is None
        assert "Warning" in result.message

    def test_second_cancellation_suspends_seven_days(self) -> None:
        result = escalate(2)
        assert result.new_status == WorkerStatus.SUSPENDED
        assert result.suspension == timedelta(days=7)
        assert not result.notify_admin

    def test_third_cancellation_suspends_fourteen_days(self) -> None:
        result = escalate(3)
        assert result.suspension == timedelta(days=14)

    def test_fourth_and_later_ban(self) -> None:
        for count in (4, 5, 12):
            result = escalate(count)
            assert result.new_status == WorkerStatus.BANNED
            assert result.requires_admin_review
            assert result.notify_admin

    def test_zero_is_a_no_op(self) -> None:
        result = escalate(0)
        assert result.new_status is None
        assert result.message == ""

    def test_custom_policy(self) -> None:
        policy = EscalationPolicy(suspension_days_second=3, suspension_days_third=10, ban_threshold=3)
        assert escalate(2, policy).suspension == timedelta(days=3)
        assert escalate(3, policy).new_status == WorkerStatus.BANNED


class TestIsEligible:
    def test_approved_worker(self) -> None:
        assert is_eligible(WorkerStatus.APPROVED, None, NOW)

    def test_active_suspension(self) -> None:
        assert not is_eligible(WorkerStatus.SUSPENDED, NOW + timedelta(hours=1), NOW)

    def test_lapsed_suspension(self) -> None:
        assert is_eligible(WorkerStatus.SUSPENDED, NOW - timedelta(seconds=1), NOW)

    def test_banned_never_eligible(self) -> None:
        assert not is_eligible(WorkerStatus.BANNED, None, NOW)
