"""Tests for domain enumerations."""

from __future__ import annotations

from job_broker.domain.enums import (
    ASSIGNED_STATUSES,
    BIDDABLE_STATUSES,
    AuditAction,
    EventTopic,
    JobStatus,
    PaymentStatus,
    WorkerStatus,
)


class TestJobStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {
            "pending", "assigned", "worker_completed", "completed", "dispute",
            "disputed", "cancelled", "reopened", "waitlisted",
        }
        actual = {s.value for s in JobStatus}
        assert actual == expected

    def test_status_is_str_enum(self) -> None:
        assert isinstance(JobStatus.PENDING, str)
        assert JobStatus.WORKER_COMPLETED == "worker_completed"

    def test_assigned_statuses_exclude_open_and_terminal_cancel(self) -> None:
        assert JobStatus.PENDING not in ASSIGNED_STATUSES
        assert JobStatus.REOPENED not in ASSIGNED_STATUSES
        assert JobStatus.CANCELLED not in ASSIGNED_STATUSES
        assert JobStatus.DISPUTE in ASSIGNED_STATUSES

    def test_biddable_statuses(self) -> None:
        assert BIDDABLE_STATUSES == {JobStatus.PENDING, JobStatus.REOPENED}


class TestPaymentStatus:
    def test_payment_statuses(self) -> None:
        assert {s.value for s in PaymentStatus} == {
            "unpaid", "holding", "pending_release", "released", "refunded", "partial_refund",
        }


class TestWorkerStatus:
    def test_suspension_states(self) -> None:
        assert WorkerStatus.SUSPENDED == "suspended"
        assert WorkerStatus.BANNED == "banned"


class TestAuditAction:
    def test_every_action_is_snake_case(self) -> None:
        for action in AuditAction:
            assert action.value == action.value.lower()


class TestEventTopic:
    def test_topics_use_colon_namespaces(self) -> None:
        assert EventTopic.JOB_UPDATE == "job:update"
        assert all(":" in topic.value for topic in EventTopic)
