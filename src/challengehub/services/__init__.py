"""ChallengeHub services."""

from challengehub.services.challenge_service import ChallengeService
from challengehub.services.charge_initiator import ChargeInitiator, FundingResult, FundingStatus
from challengehub.services.payment_store import PaymentStore
from challengehub.services.payout_service import PayoutService
from challengehub.services.reconciliation import (
    ReconciliationService,
    ReconcileResult,
    ReconcileStatus,
    WebhookReconciler,
)
from challengehub.services.state_machine import (
    ChallengeStateMachine,
    InvalidTransitionError,
    PaymentStateMachine,
    SubmissionStateMachine,
)
from challengehub.services.submission_service import SubmissionService

__all__ = [
    "ChallengeService",
    "ChargeInitiator",
    "FundingResult",
    "FundingStatus",
    "PaymentStore",
    "PayoutService",
    "ReconciliationService",
    "ReconcileResult",
    "ReconcileStatus",
    "WebhookReconciler",
    "ChallengeStateMachine",
    "InvalidTransitionError",
    "PaymentStateMachine",
    "SubmissionStateMachine",
    "SubmissionService",
]
