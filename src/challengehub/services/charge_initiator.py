"""Challenge funding - charges the creator through the payment processor."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.calculators.fees import compute_fees, to_minor_units
from challengehub.models import (
    Challenge,
    ChallengeStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    RewardType,
    User,
)
from challengehub.processor.base import (
    ChargeRequest,
    ChargeResponse,
    ChargeStatus,
    PaymentProcessor,
    ProcessorError,
)
from challengehub.processor.webhooks import PaymentOutcome
from challengehub.services.errors import (
    ChargeFailedError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from challengehub.services.payment_store import PaymentStore
from challengehub.services.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)

FUNDING_CURRENCY = "USD"
APP_SOURCE = "challengehub"


class FundingStatus(str, Enum):
    """Where a funding attempt stands after a call returns."""

    FUNDED = "funded"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(frozen=True)
class FundingResult:
    """Outcome of a funding call."""

    status: FundingStatus
    challenge_id: UUID
    payment_id: UUID | None
    method: str
    amount: Decimal
    currency: str
    processor_payment_id: str | None = None
    checkout_url: str | None = None
    client_secret: str | None = None
    message: str = ""


_CHARGE_OUTCOMES: dict[ChargeStatus, PaymentOutcome] = {
    ChargeStatus.SUCCEEDED: PaymentOutcome.SUCCEEDED,
    ChargeStatus.FAILED: PaymentOutcome.FAILED,
    ChargeStatus.CANCELED: PaymentOutcome.CANCELED,
}

_OUTCOME_FUNDING_STATUS: dict[PaymentOutcome, FundingStatus] = {
    PaymentOutcome.SUCCEEDED: FundingStatus.FUNDED,
    PaymentOutcome.FAILED: FundingStatus.FAILED,
    PaymentOutcome.CANCELED: FundingStatus.CANCELED,
}


class ChargeInitiator:
    """Funds DRAFT challenges.

    USD/USDC rewards are charged through the processor. The PENDING funding
    group is committed before the processor is called, so a webhook that
    beats the HTTP response still finds it; the processor's correlation id
    is stored once the call returns. SUBSCRIPTION rewards move no money and
    are funded synchronously once the creator's access is confirmed.
    """

    def __init__(
        self,
        session: AsyncSession,
        processor: PaymentProcessor,
        company_id: str = "",
        app_url: str = "",
    ):
        self.session = session
        self.processor = processor
        self.company_id = company_id
        self.app_url = app_url.rstrip("/")
        self.store = PaymentStore(session)
        self.reconciler = ReconciliationService(session)

    async def fund(self, challenge_id: UUID, user: User) -> FundingResult:
        """Fund a challenge by whichever path its reward type requires."""
        async with self.store.transaction():
            challenge = self._check_fundable(
                await self.store.get_challenge(challenge_id), user
            )
            reward_type = challenge.reward_type

        if reward_type == RewardType.SUBSCRIPTION.value:
            return await self.fund_with_subscription(challenge_id, user)
        return await self.initiate_charge(challenge_id, user)

    async def initiate_charge(self, challenge_id: UUID, user: User) -> FundingResult:
        """Charge the creator the challenge's total cost.

        Raises:
            NotFoundError: Challenge does not exist.
            PermissionDeniedError: Caller is not the creator.
            ConflictError: Challenge is already funded.
            ValidationError: Reward type is not chargeable or stored fees are
                inconsistent with the fee policy.
            ChargeFailedError: The charge was not created. A definite
                rejection marks the funding group FAILED; an unknown outcome
                (network error, timeout, 5xx) leaves it PENDING for the
                webhook to settle.
        """
        # Phase 1: persist the PENDING funding group
        async with self.store.transaction():
            challenge = self._check_fundable(
                await self.store.get_challenge(challenge_id, for_update=True), user
            )
            if challenge.reward_type not in (RewardType.USD.value, RewardType.USDC.value):
                raise ValidationError(
                    f"Reward type {challenge.reward_type} is not funded by charge",
                    code="INVALID_REWARD_TYPE",
                )

            breakdown = compute_fees(challenge.reward_amount, challenge.buyout_fee_paid)
            if (
                breakdown.platform_fee != challenge.platform_fee
                or breakdown.net_payout != challenge.net_payout
            ):
                logger.error(
                    "Stored fees for challenge %s disagree with fee policy "
                    "(stored fee=%s payout=%s, computed fee=%s payout=%s)",
                    challenge_id,
                    challenge.platform_fee,
                    challenge.net_payout,
                    breakdown.platform_fee,
                    breakdown.net_payout,
                )
                raise ValidationError(
                    "Challenge fees are inconsistent with the fee policy",
                    code="FEE_INCONSISTENT",
                )

            metadata = self._charge_metadata(challenge, user, breakdown.total_cost)
            funding, _fee = await self.store.create_funding_group(
                challenge, user, breakdown, metadata, currency=FUNDING_CURRENCY
            )
            funding_id = funding.payment_id
            title = challenge.title

        # Phase 2: external call, outside any transaction
        request = ChargeRequest(
            user_id=user.external_user_id,
            amount_minor=to_minor_units(breakdown.total_cost),
            currency=FUNDING_CURRENCY,
            description=f"Fund Challenge: {title}",
            idempotency_key=f"funding-{funding_id}",
            metadata={**metadata, "funding_payment_id": str(funding_id)},
            return_url=f"{self.app_url}/challenges/{challenge_id}/fund/success" if self.app_url else None,
            cancel_url=f"{self.app_url}/challenges/{challenge_id}/fund/cancel" if self.app_url else None,
        )
        try:
            response = await self.processor.create_charge(request)
        except ProcessorError as e:
            if e.is_rejection:
                logger.warning(
                    "Charge rejected for challenge %s: %s (%s)", challenge_id, e.message, e.code
                )
                await self.reconciler.apply_outcome(
                    funding_id, PaymentOutcome.FAILED, failure_reason=e.message
                )
                payment_status = PaymentStatus.FAILED
            else:
                # The charge may exist; its webhook settles the PENDING group
                logger.warning(
                    "Charge outcome unknown for challenge %s, funding %s left PENDING: %s (%s)",
                    challenge_id,
                    funding_id,
                    e.message,
                    e.code,
                )
                payment_status = PaymentStatus.PENDING
            raise ChargeFailedError(
                e.message,
                context={
                    "processor_code": e.code,
                    "processor_status": e.status_code,
                    "payment_id": str(funding_id),
                    "payment_status": payment_status.value,
                },
            ) from e

        # Phase 3: record the correlation id, settle synchronous outcomes
        async with self.store.transaction():
            payment = await self.store.get_payment(funding_id, for_update=True)
            if payment is not None and payment.processor_payment_id is None:
                payment.processor_payment_id = response.processor_payment_id

        logger.info(
            "Charge %s created for challenge %s: %s",
            response.processor_payment_id,
            challenge_id,
            response.status.value,
        )
        return await self._settle(challenge_id, funding_id, breakdown.total_cost, response)

    async def fund_with_subscription(self, challenge_id: UUID, user: User) -> FundingResult:
        """Fund a SUBSCRIPTION challenge with subscription credits.

        Raises:
            PermissionDeniedError: The creator may not assign this company's
                subscription passes.
            ChargeFailedError: The access check could not be completed.
        """
        async with self.store.transaction():
            challenge = self._check_fundable(await self.store.get_challenge(challenge_id), user)
            if challenge.reward_type != RewardType.SUBSCRIPTION.value:
                raise ValidationError(
                    "Only subscription rewards can be funded with subscription credits",
                    code="INVALID_REWARD_TYPE",
                )
            company_id = challenge.company_id or self.company_id

        try:
            allowed = await self.processor.check_access(user.external_user_id, company_id)
        except ProcessorError as e:
            raise ChargeFailedError(
                e.message,
                code="SUBSCRIPTION_FUNDING_FAILED",
                context={"processor_code": e.code},
            ) from e

        if not allowed:
            raise PermissionDeniedError(
                "You do not have access to assign subscription passes for this challenge",
                code="INSUFFICIENT_SUBSCRIPTION_ACCESS",
            )

        async with self.store.transaction():
            challenge = self._check_fundable(
                await self.store.get_challenge(challenge_id, for_update=True), user
            )
            payment = await self.store.add_payment(
                challenge_id=challenge.challenge_id,
                user_id=user.user_id,
                type=PaymentType.FUNDING,
                method=PaymentMethod.SUBSCRIPTION_CREDIT,
                amount=Decimal("0"),
                currency="CREDITS",
                status=PaymentStatus.COMPLETED,
            )
            self.store.mark_challenge_funded(challenge)

        logger.info("Challenge %s funded with subscription credits", challenge_id)
        return FundingResult(
            status=FundingStatus.FUNDED,
            challenge_id=challenge_id,
            payment_id=payment.payment_id,
            method=PaymentMethod.SUBSCRIPTION_CREDIT.value,
            amount=Decimal("0"),
            currency="CREDITS",
            message="Challenge funded successfully with subscription credits",
        )

    async def confirm_charge(self, challenge_id: UUID, user: User) -> FundingResult:
        """Ask the processor about the pending charge and apply its answer.

        Used when the creator returns from checkout before the webhook lands.
        """
        async with self.store.transaction():
            challenge = await self.store.get_challenge(challenge_id)
            if challenge is None:
                raise NotFoundError("Challenge not found", code="CHALLENGE_NOT_FOUND")
            if challenge.creator_id != user.user_id:
                raise PermissionDeniedError("Only the challenge creator can confirm funding")
            funding = await self.store.latest_pending_charge(challenge_id)
            is_funded = challenge.is_funded

        if funding is None:
            if is_funded:
                return FundingResult(
                    status=FundingStatus.FUNDED,
                    challenge_id=challenge_id,
                    payment_id=None,
                    method=PaymentMethod.EXTERNAL_PROCESSOR.value,
                    amount=Decimal("0"),
                    currency=FUNDING_CURRENCY,
                    message="Challenge is already funded",
                )
            raise NotFoundError("No pending charge for this challenge", code="PAYMENT_NOT_FOUND")

        try:
            response = await self.processor.get_charge(funding.processor_payment_id)
        except ProcessorError as e:
            raise ChargeFailedError(
                e.message, code="PAYMENT_STATUS_FAILED", context={"processor_code": e.code}
            ) from e

        return await self._settle(challenge_id, funding.payment_id, funding.amount, response)

    async def _settle(
        self,
        challenge_id: UUID,
        funding_id: UUID,
        amount: Decimal,
        response: ChargeResponse,
    ) -> FundingResult:
        outcome = _CHARGE_OUTCOMES.get(response.status)
        if outcome is None:
            return FundingResult(
                status=FundingStatus.REQUIRES_CONFIRMATION,
                challenge_id=challenge_id,
                payment_id=funding_id,
                method=PaymentMethod.EXTERNAL_PROCESSOR.value,
                amount=amount,
                currency=FUNDING_CURRENCY,
                processor_payment_id=response.processor_payment_id,
                checkout_url=response.checkout_url,
                client_secret=response.client_secret,
                message="Complete checkout to fund the challenge",
            )

        result = await self.reconciler.apply_outcome(
            funding_id,
            outcome,
            processor_payment_id=response.processor_payment_id,
            failure_reason=response.failure_reason,
        )
        if outcome != PaymentOutcome.SUCCEEDED:
            raise ChargeFailedError(
                response.failure_reason or f"Payment {outcome.value}",
                code=f"PAYMENT_{outcome.value.upper()}",
                context={"payment_id": str(funding_id), "reconcile_status": result.status.value},
            )

        return FundingResult(
            status=_OUTCOME_FUNDING_STATUS[outcome],
            challenge_id=challenge_id,
            payment_id=funding_id,
            method=PaymentMethod.EXTERNAL_PROCESSOR.value,
            amount=amount,
            currency=FUNDING_CURRENCY,
            processor_payment_id=response.processor_payment_id,
            message="Challenge funded",
        )

    def _check_fundable(self, challenge: Challenge | None, user: User) -> Challenge:
        if challenge is None:
            raise NotFoundError("Challenge not found", code="CHALLENGE_NOT_FOUND")
        if challenge.creator_id != user.user_id:
            raise PermissionDeniedError("Only the challenge creator can fund this challenge")
        if challenge.is_funded:
            raise ConflictError("Challenge is already funded", code="ALREADY_FUNDED")
        if challenge.status != ChallengeStatus.DRAFT.value:
            raise ConflictError(
                f"Challenge in status {challenge.status} cannot be funded", code="INVALID_STATUS"
            )
        return challenge

    def _charge_metadata(self, challenge: Challenge, user: User, total: Decimal) -> dict[str, object]:
        return {
            "challenge_id": str(challenge.challenge_id),
            "challenge_title": challenge.title,
            "reward_amount": str(challenge.reward_amount),
            "platform_fee": str(challenge.platform_fee),
            "total_amount": str(total),
            "type": "challenge_funding",
            "user_id": str(user.user_id),
            "buyout_fee_paid": challenge.buyout_fee_paid,
            "reward_type": challenge.reward_type,
            "app_source": APP_SOURCE,
        }
