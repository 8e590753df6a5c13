"""Tests for challenge, payment and submission state machines."""

import pytest

from challengehub.models import ChallengeStatus, PaymentStatus, SubmissionStatus
from challengehub.services.state_machine import (
    ChallengeStateMachine,
    InvalidTransitionError,
    PaymentStateMachine,
    SubmissionStateMachine,
)


class TestChallengeStateMachine:
    """Test challenge transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # draft → active (funding confirmed)
        assert ChallengeStateMachine.can_transition("DRAFT", "ACTIVE") is True

        # draft → funded
        assert ChallengeStateMachine.can_transition("DRAFT", "FUNDED") is True

        # funded → active
        assert ChallengeStateMachine.can_transition("FUNDED", "ACTIVE") is True

        # active → completed / cancelled
        assert ChallengeStateMachine.can_transition("ACTIVE", "COMPLETED") is True
        assert ChallengeStateMachine.can_transition("ACTIVE", "CANCELLED") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        assert ChallengeStateMachine.can_transition("ACTIVE", "DRAFT") is False
        assert ChallengeStateMachine.can_transition("COMPLETED", "ACTIVE") is False
        assert ChallengeStateMachine.can_transition("CANCELLED", "ACTIVE") is False
        assert ChallengeStateMachine.can_transition("DRAFT", "COMPLETED") is False

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            ChallengeStateMachine.validate_transition("CANCELLED", "ACTIVE")

        assert exc_info.value.from_status == "CANCELLED"
        assert exc_info.value.to_status == "ACTIVE"
        assert exc_info.value.status_code == 409

    def test_terminal_states(self):
        for status in (ChallengeStatus.COMPLETED, ChallengeStatus.CANCELLED):
            for target in ChallengeStatus:
                assert ChallengeStateMachine.can_transition(status, target) is False

    def test_accepts_submissions(self):
        """Only funded, ACTIVE challenges accept submissions."""
        assert ChallengeStateMachine.accepts_submissions("ACTIVE", True) is True
        assert ChallengeStateMachine.accepts_submissions("ACTIVE", False) is False
        assert ChallengeStateMachine.accepts_submissions("DRAFT", False) is False
        assert ChallengeStateMachine.accepts_submissions("COMPLETED", True) is False


class TestPaymentStateMachine:
    """Test payment transitions."""

    def test_pending_resolves(self):
        for target in ("COMPLETED", "FAILED", "CANCELLED"):
            assert PaymentStateMachine.can_transition("PENDING", target) is True

    def test_settled_payments_do_not_move(self):
        """A settled payment never returns to PENDING or flips outcome."""
        assert PaymentStateMachine.can_transition("COMPLETED", "FAILED") is False
        assert PaymentStateMachine.can_transition("FAILED", "COMPLETED") is False
        assert PaymentStateMachine.can_transition("CANCELLED", "COMPLETED") is False
        assert PaymentStateMachine.can_transition("COMPLETED", "PENDING") is False

    def test_refund(self):
        assert PaymentStateMachine.can_transition("COMPLETED", "REFUNDED") is True
        assert PaymentStateMachine.can_transition("REFUNDED", "COMPLETED") is False

    def test_is_settled(self):
        assert PaymentStateMachine.is_settled("PENDING") is False
        for status in PaymentStatus:
            if status != PaymentStatus.PENDING:
                assert PaymentStateMachine.is_settled(status.value) is True


class TestSubmissionStateMachine:
    """Test submission transitions."""

    def test_review_transitions(self):
        assert SubmissionStateMachine.can_transition("PENDING", "APPROVED") is True
        assert SubmissionStateMachine.can_transition("PENDING", "REJECTED") is True
        assert SubmissionStateMachine.can_transition("APPROVED", "PAID") is True

    def test_no_pay_without_approval(self):
        assert SubmissionStateMachine.can_transition("PENDING", "PAID") is False
        assert SubmissionStateMachine.can_transition("REJECTED", "PAID") is False
        assert SubmissionStateMachine.can_transition("PAID", "APPROVED") is False

    def test_helpers(self):
        assert SubmissionStateMachine.is_reviewable(SubmissionStatus.PENDING) is True
        assert SubmissionStateMachine.is_reviewable("APPROVED") is False
        assert SubmissionStateMachine.is_payable("APPROVED") is True
        assert SubmissionStateMachine.is_payable("PAID") is False
