"""Submission review and participant payouts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.models import (
    Challenge,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    RewardType,
    Submission,
    SubmissionStatus,
    User,
    utcnow,
)
from challengehub.processor.base import (
    MembershipGrant,
    PaymentProcessor,
    PayoutRequest,
    PayoutResponse,
    ProcessorError,
)
from challengehub.services.errors import (
    ConflictError,
    NotFoundError,
    PayoutFailedError,
    PermissionDeniedError,
    ValidationError,
)
from challengehub.services.payment_store import PaymentStore
from challengehub.services.state_machine import SubmissionStateMachine

logger = logging.getLogger(__name__)


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class PayoutResult:
    """A completed payout."""

    submission_id: UUID
    payment_id: UUID | None
    transaction_id: str | None
    amount: Decimal
    currency: str
    reward_type: str


@dataclass(frozen=True)
class ReviewResult:
    """Outcome of reviewing a submission."""

    submission: Submission
    payout: PayoutResult | None = None


def payout_idempotency_key(submission_id: UUID) -> str:
    """Stable per submission, so retries and double-clicks collapse at the processor."""
    return f"payout-{submission_id}"


class PayoutService:
    """Reviews submissions and pays approved participants.

    A failed payout leaves the submission APPROVED and records a FAILED
    PAYOUT row; the error is raised to the caller so the creator sees it and
    can retry through ``pay_submission``.
    """

    def __init__(
        self,
        session: AsyncSession,
        processor: PaymentProcessor,
        company_id: str = "",
    ):
        self.session = session
        self.processor = processor
        self.company_id = company_id
        self.store = PaymentStore(session)

    async def review_submission(
        self,
        challenge_id: UUID,
        submission_id: UUID,
        reviewer: User,
        action: str,
        rejection_reason: str | None = None,
    ) -> ReviewResult:
        """Approve or reject a PENDING submission; approval triggers payout.

        Raises:
            ValidationError: Unknown action.
            NotFoundError: Challenge or submission missing, or submission
                belongs to another challenge.
            PermissionDeniedError: Reviewer is not the creator.
            ConflictError: Submission was already reviewed.
            PayoutFailedError: Approved, but the payout failed.
        """
        try:
            review = ReviewAction(action)
        except ValueError as e:
            raise ValidationError(
                f"Invalid action '{action}', expected 'approve' or 'reject'",
                code="INVALID_ACTION",
            ) from e

        async with self.store.transaction():
            challenge = await self.store.get_challenge(challenge_id, for_update=True)
            submission = await self._load_owned_submission(
                challenge, submission_id, reviewer, for_update=True
            )
            if not SubmissionStateMachine.is_reviewable(submission.status):
                raise ConflictError(
                    "Submission has already been reviewed", code="ALREADY_REVIEWED"
                )

            if review == ReviewAction.REJECT:
                SubmissionStateMachine.validate_transition(submission.status, SubmissionStatus.REJECTED)
                submission.status = SubmissionStatus.REJECTED.value
                submission.rejection_reason = rejection_reason
            else:
                SubmissionStateMachine.validate_transition(submission.status, SubmissionStatus.APPROVED)
                submission.status = SubmissionStatus.APPROVED.value
                challenge.approved_submissions += 1
            submission.reviewed_at = utcnow()

        logger.info("Submission %s %sd by %s", submission_id, review.value, reviewer.user_id)
        if review == ReviewAction.REJECT:
            return ReviewResult(submission=submission)

        payout = await self.pay_submission(challenge_id, submission_id, reviewer)
        return ReviewResult(submission=submission, payout=payout)

    async def pay_submission(
        self,
        challenge_id: UUID,
        submission_id: UUID,
        user: User,
    ) -> PayoutResult:
        """Pay an APPROVED submission. Also the manual retry path.

        Raises:
            ConflictError: Submission is not APPROVED (e.g. already PAID).
            PayoutFailedError: The processor rejected the payout.
        """
        async with self.store.transaction():
            challenge = await self.store.get_challenge(challenge_id)
            submission = await self._load_owned_submission(challenge, submission_id, user)
            if not SubmissionStateMachine.is_payable(submission.status):
                raise ConflictError(
                    f"Submission is {submission.status}, only APPROVED submissions can be paid",
                    code="NOT_PAYABLE",
                )
            participant = await self.store.get_user(submission.user_id)
            if participant is None:
                raise NotFoundError("Participant not found")

        amount, currency = self._payout_amount(challenge)
        key = payout_idempotency_key(submission_id)

        try:
            response = await self._send(challenge, participant, submission_id, amount, key)
        except ProcessorError as e:
            logger.warning(
                "Payout for submission %s failed: %s (%s)", submission_id, e.message, e.code
            )
            async with self.store.transaction():
                await self.store.add_payment(
                    challenge_id=challenge_id,
                    user_id=participant.user_id,
                    submission_id=submission_id,
                    type=PaymentType.PAYOUT,
                    method=PaymentMethod.EXTERNAL_PROCESSOR,
                    amount=amount,
                    currency=currency,
                    status=PaymentStatus.FAILED,
                    failure_reason=e.message,
                    metadata={"idempotency_key": key, "processor_code": e.code},
                )
            raise PayoutFailedError(
                f"Payout failed: {e.message}",
                context={
                    "submission_id": str(submission_id),
                    "submission_status": SubmissionStatus.APPROVED.value,
                    "processor_code": e.code,
                },
            ) from e

        async with self.store.transaction():
            submission = await self.store.get_submission(submission_id, for_update=True)
            if submission is None or submission.status != SubmissionStatus.APPROVED.value:
                # A concurrent retry already recorded this payout
                logger.info("Submission %s already settled; not recording payout twice", submission_id)
                return PayoutResult(
                    submission_id=submission_id,
                    payment_id=None,
                    transaction_id=response.transaction_id,
                    amount=amount,
                    currency=currency,
                    reward_type=challenge.reward_type,
                )

            SubmissionStateMachine.validate_transition(submission.status, SubmissionStatus.PAID)
            submission.status = SubmissionStatus.PAID.value
            submission.paid_at = utcnow()
            payment = await self.store.add_payment(
                challenge_id=challenge_id,
                user_id=participant.user_id,
                submission_id=submission_id,
                type=PaymentType.PAYOUT,
                method=PaymentMethod.EXTERNAL_PROCESSOR,
                amount=amount,
                currency=currency,
                status=PaymentStatus.COMPLETED,
                processor_payment_id=response.transaction_id,
                metadata={"idempotency_key": key, "reward_type": challenge.reward_type},
            )

        logger.info(
            "Paid submission %s: %s %s (transaction %s)",
            submission_id,
            amount,
            currency,
            response.transaction_id,
        )
        return PayoutResult(
            submission_id=submission_id,
            payment_id=payment.payment_id,
            transaction_id=response.transaction_id,
            amount=amount,
            currency=currency,
            reward_type=challenge.reward_type,
        )

    async def _send(
        self,
        challenge: Challenge,
        participant: User,
        submission_id: UUID,
        amount: Decimal,
        key: str,
    ) -> PayoutResponse:
        if challenge.reward_type == RewardType.SUBSCRIPTION.value:
            if not challenge.reward_subscription_id:
                raise ProcessorError("Challenge has no subscription plan", code="MISSING_PLAN")
            return await self.processor.grant_membership(
                MembershipGrant(
                    user_id=participant.external_user_id,
                    plan_id=challenge.reward_subscription_id,
                    idempotency_key=key,
                    metadata={
                        "submission_id": str(submission_id),
                        "challenge_id": str(challenge.challenge_id),
                        "reason": "challenge_reward",
                    },
                )
            )

        return await self.processor.pay_user(
            PayoutRequest(
                destination_id=participant.external_user_id,
                amount=amount,
                currency=challenge.reward_type.lower(),
                idempotency_key=key,
                company_id=challenge.company_id or self.company_id,
                notes=f"Challenge reward payout for submission {submission_id}",
            )
        )

    def _payout_amount(self, challenge: Challenge) -> tuple[Decimal, str]:
        if challenge.reward_type == RewardType.SUBSCRIPTION.value:
            return Decimal("0.00"), "MEMBERSHIP"
        return challenge.net_payout, challenge.reward_type

    async def _load_owned_submission(
        self,
        challenge: Challenge | None,
        submission_id: UUID,
        user: User,
        for_update: bool = False,
    ) -> Submission:
        if challenge is None:
            raise NotFoundError("Challenge not found", code="CHALLENGE_NOT_FOUND")
        if challenge.creator_id != user.user_id:
            raise PermissionDeniedError("Only the challenge creator can review submissions")
        submission = await self.store.get_submission(submission_id, for_update=for_update)
        if submission is None or submission.challenge_id != challenge.challenge_id:
            raise NotFoundError("Submission not found", code="SUBMISSION_NOT_FOUND")
        return submission
