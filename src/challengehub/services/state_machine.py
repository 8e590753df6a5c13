"""Challenge, payment and submission state machines with transition validation."""

from __future__ import annotations

from challengehub.models.enums import ChallengeStatus, PaymentStatus, SubmissionStatus


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        self.message = msg
        super().__init__(msg)


class _StateMachine:
    VALID_TRANSITIONS: dict[str, list[str]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)


class ChallengeStateMachine(_StateMachine):
    """State machine for challenge status.

    Allowed transitions:
    - DRAFT → ACTIVE (funding confirmed)
    - DRAFT → FUNDED (funds settled, not yet open)
    - DRAFT → CANCELLED
    - FUNDED → ACTIVE
    - ACTIVE → COMPLETED
    - ACTIVE → CANCELLED

    A challenge is never ACTIVE while unfunded; only funding completion
    moves it out of DRAFT.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        ChallengeStatus.DRAFT: [ChallengeStatus.FUNDED, ChallengeStatus.ACTIVE, ChallengeStatus.CANCELLED],
        ChallengeStatus.FUNDED: [ChallengeStatus.ACTIVE, ChallengeStatus.CANCELLED],
        ChallengeStatus.ACTIVE: [ChallengeStatus.COMPLETED, ChallengeStatus.CANCELLED],
        ChallengeStatus.COMPLETED: [],  # Terminal state
        ChallengeStatus.CANCELLED: [],  # Terminal state
    }

    ACCEPTS_SUBMISSIONS = {ChallengeStatus.ACTIVE}

    @classmethod
    def accepts_submissions(cls, status: str, is_funded: bool) -> bool:
        """Participants may only enter funded, ACTIVE challenges."""
        return is_funded and status in cls.ACCEPTS_SUBMISSIONS


class PaymentStateMachine(_StateMachine):
    """State machine for payment rows.

    PENDING resolves exactly once. COMPLETED may later be REFUNDED;
    FAILED, CANCELLED and REFUNDED are terminal.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PaymentStatus.PENDING: [
            PaymentStatus.COMPLETED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELLED,
        ],
        PaymentStatus.COMPLETED: [PaymentStatus.REFUNDED],
        PaymentStatus.FAILED: [],
        PaymentStatus.CANCELLED: [],
        PaymentStatus.REFUNDED: [],
    }

    # Statuses a webhook can no longer move
    SETTLED = {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
        PaymentStatus.REFUNDED,
    }

    @classmethod
    def is_settled(cls, status: str) -> bool:
        return status in cls.SETTLED


class SubmissionStateMachine(_StateMachine):
    """State machine for submissions.

    Allowed transitions:
    - PENDING → APPROVED
    - PENDING → REJECTED
    - APPROVED → PAID
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        SubmissionStatus.PENDING: [SubmissionStatus.APPROVED, SubmissionStatus.REJECTED],
        SubmissionStatus.APPROVED: [SubmissionStatus.PAID],
        SubmissionStatus.REJECTED: [],
        SubmissionStatus.PAID: [],
    }

    @classmethod
    def is_reviewable(cls, status: str) -> bool:
        return status == SubmissionStatus.PENDING

    @classmethod
    def is_payable(cls, status: str) -> bool:
        return status == SubmissionStatus.APPROVED
