"""Tests for m365provision.provisioning.models."""

import pytest

from m365provision.provisioning.models import (
    AssignmentOutcome,
    AssignmentStatus,
    BatchResult,
    RetryPolicy,
    TargetKind,
)


class TestTargetKind:
    """Tests for TargetKind."""

    @pytest.mark.parametrize("kind", [TargetKind.DISTRIBUTION_LIST, TargetKind.SHARED_MAILBOX])
    def test_exchange_kinds(self, kind):
        assert kind.is_exchange
        assert not kind.is_group

    @pytest.mark.parametrize(
        "kind",
        [
            TargetKind.SECURITY_GROUP,
            TargetKind.M365_GROUP,
            TargetKind.MAIL_ENABLED_SECURITY_GROUP,
        ],
    )
    def test_group_kinds(self, kind):
        assert kind.is_group
        assert not kind.is_exchange


class TestAssignmentStatus:
    """Tests for AssignmentStatus."""

    def test_only_deferred_is_not_terminal(self):
        non_terminal = [s for s in AssignmentStatus if not s.is_terminal]
        assert non_terminal == [AssignmentStatus.DEFERRED_FOR_RETRY]


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_default_timings(self):
        policy = RetryPolicy()
        assert policy.first_pass_attempts == 3
        assert policy.first_pass_delay_seconds == 30
        assert policy.second_pass_attempts == 2
        assert policy.second_pass_delay_seconds == 15

    def test_plan_for_first_pass(self):
        plan = RetryPolicy().plan_for(1)
        assert (plan.pass_number, plan.max_attempts, plan.delay_seconds) == (1, 3, 30)
        assert plan.attempts == 0

    def test_plan_for_second_pass(self):
        plan = RetryPolicy().plan_for(2)
        assert (plan.pass_number, plan.max_attempts, plan.delay_seconds) == (2, 2, 15)

    def test_plans_are_independent(self):
        policy = RetryPolicy()
        first = policy.plan_for(1)
        first.attempts = 3
        assert policy.plan_for(1).attempts == 0

    def test_unknown_pass(self):
        with pytest.raises(ValueError, match="Unknown retry pass"):
            RetryPolicy().plan_for(3)


class TestBatchResult:
    """Tests for BatchResult."""

    def _outcome(self, name, status, detail=None):
        return AssignmentOutcome(
            target_name=name,
            target_kind=TargetKind.SECURITY_GROUP,
            status=status,
            detail=detail,
        )

    def test_counts_and_action_items(self, identity):
        result = BatchResult(
            identity=identity,
            outcomes=[
                self._outcome("A", AssignmentStatus.SUCCEEDED),
                self._outcome("B", AssignmentStatus.FAILED_PERMANENT, "denied"),
                self._outcome("C", AssignmentStatus.MANUAL_TASK_REQUIRED, "not found"),
                self._outcome("D", AssignmentStatus.CANCELLED, "cancelled by operator"),
            ],
        )

        assert result.total_succeeded == 1
        assert result.total_failed == 1
        assert result.total_manual == 1
        assert result.total_cancelled == 1
        assert [o.target_name for o in result.action_items] == ["B", "C", "D"]
        assert not result.all_succeeded

    def test_summary_lines(self, identity):
        result = BatchResult(
            identity=identity,
            outcomes=[
                self._outcome("Finance", AssignmentStatus.SUCCEEDED),
                self._outcome("Legal", AssignmentStatus.FAILED_PERMANENT, "group not found."),
            ],
        )

        lines = result.summary_lines()

        assert lines[0] == (
            "Assignments for jdoe@contoso.com: 1 succeeded, 1 failed, 0 manual task(s)"
        )
        assert lines[1] == "  [FAILED PERMANENT] Legal (security_group): group not found."
        assert len(lines) == 2

    def test_all_succeeded_when_empty(self, identity):
        assert BatchResult(identity=identity).all_succeeded
