"""Challenge creation, listing and funding status."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.calculators.fees import (
    MAX_AMOUNT,
    FeeBreakdown,
    compute_fees,
    fees_match,
    validate_minimum_reward,
)
from challengehub.models import (
    FUNDING_GROUP_TYPES,
    Challenge,
    ChallengeStatus,
    Payment,
    RewardType,
    User,
    Visibility,
    as_utc,
    utcnow,
)
from challengehub.services.errors import (
    ConflictError,
    FeeMismatchError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from challengehub.services.payment_store import PaymentStore

logger = logging.getLogger(__name__)

SORT_ORDERS = {
    "newest": Challenge.created_at.desc(),
    "deadline": Challenge.deadline.asc(),
    "reward": Challenge.reward_amount.desc(),
    "popular": Challenge.total_submissions.desc(),
}


# Subscription rewards move no money
NO_FEES = FeeBreakdown(
    reward_amount=Decimal("0.00"),
    platform_fee=Decimal("0.00"),
    net_payout=Decimal("0.00"),
    total_cost=Decimal("0.00"),
    buyout_fee_paid=False,
)


def challenge_breakdown(challenge: Challenge) -> FeeBreakdown:
    """Fee breakdown implied by a stored challenge."""
    if challenge.reward_type == RewardType.SUBSCRIPTION.value:
        return NO_FEES
    return compute_fees(challenge.reward_amount, challenge.buyout_fee_paid)


@dataclass(frozen=True)
class FundingSnapshot:
    """A creator's view of where funding stands."""

    challenge: Challenge
    breakdown: FeeBreakdown
    payments: list[Payment]


class ChallengeService:
    """Service for challenge lifecycle outside of funding and payout."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.store = PaymentStore(session)

    async def create_challenge(
        self,
        creator: User,
        *,
        title: str,
        description: str,
        reward_type: str,
        reward_amount: Decimal | None = None,
        buyout_fee_paid: bool = False,
        platform_fee: Decimal | None = None,
        net_payout: Decimal | None = None,
        reward_subscription_id: str | None = None,
        deadline: datetime | None = None,
        visibility: str = Visibility.PUBLIC.value,
        company_id: str | None = None,
        required_tags: list[str] | None = None,
    ) -> Challenge:
        """Create a DRAFT challenge.

        ``platform_fee`` / ``net_payout`` are the breakdown the creator was
        shown; for USD/USDC rewards they must agree with the server
        recomputation within a cent. The stored fees are always the server's.

        Raises:
            PermissionDeniedError: Caller is not a creator.
            ValidationError: Missing fields or reward below minimum.
            FeeMismatchError: Client breakdown disagrees with the fee policy.
        """
        if not creator.is_creator:
            raise PermissionDeniedError("Only creators can create challenges")

        for name, value in (("title", title), ("description", description), ("reward_type", reward_type)):
            if not value or not str(value).strip():
                raise ValidationError(f"Missing required field: {name}", code="MISSING_FIELD")

        try:
            reward = RewardType(reward_type)
        except ValueError as e:
            raise ValidationError(f"Unknown reward type: {reward_type}", code="INVALID_REWARD_TYPE") from e

        try:
            vis = Visibility(visibility)
        except ValueError as e:
            raise ValidationError(f"Unknown visibility: {visibility}") from e
        if vis == Visibility.PRIVATE and not company_id:
            raise ValidationError("Private challenges require a company id")

        if deadline is not None and as_utc(deadline) <= utcnow():
            raise ValidationError("Deadline must be in the future", code="INVALID_DEADLINE")

        if reward in (RewardType.USD, RewardType.USDC):
            if reward_amount is None:
                raise ValidationError(
                    "Reward amount is required for USD/USDC challenges", code="MISSING_FIELD"
                )
            try:
                amount = Decimal(str(reward_amount))
            except InvalidOperation as e:
                raise ValidationError(f"Invalid reward amount: {reward_amount}") from e
            if not amount.is_finite() or amount > MAX_AMOUNT:
                raise ValidationError(
                    f"Reward amount must be a number no greater than {MAX_AMOUNT}",
                    code="INVALID_AMOUNT",
                )

            error = validate_minimum_reward(amount, buyout_fee_paid)
            if error:
                raise ValidationError(error, code="REWARD_TOO_LOW")

            breakdown = compute_fees(amount, buyout_fee_paid)
            if breakdown.total_cost > MAX_AMOUNT:
                raise ValidationError(
                    f"Reward plus fees must not exceed {MAX_AMOUNT}",
                    code="INVALID_AMOUNT",
                    context={"total_cost": str(breakdown.total_cost)},
                )
            if (
                platform_fee is None
                or net_payout is None
                or not fees_match(platform_fee, net_payout, breakdown)
            ):
                raise FeeMismatchError(
                    "Fee calculation mismatch",
                    context={
                        "platform_fee": str(breakdown.platform_fee),
                        "net_payout": str(breakdown.net_payout),
                        "total_cost": str(breakdown.total_cost),
                    },
                )
        else:
            if not reward_subscription_id:
                raise ValidationError(
                    "Subscription ID is required for subscription challenges",
                    code="MISSING_FIELD",
                )
            breakdown = NO_FEES

        challenge = Challenge(
            creator_id=creator.user_id,
            title=title.strip(),
            description=description.strip(),
            required_tags=list(required_tags or []),
            reward_type=reward.value,
            reward_amount=breakdown.reward_amount,
            reward_subscription_id=reward_subscription_id,
            platform_fee=breakdown.platform_fee,
            net_payout=breakdown.net_payout,
            buyout_fee_paid=breakdown.buyout_fee_paid,
            status=ChallengeStatus.DRAFT.value,
            is_funded=False,
            deadline=deadline,
            visibility=vis.value,
            company_id=company_id,
        )
        async with self.store.transaction():
            self.session.add(challenge)
            await self.session.flush()
        return challenge

    async def list_active_challenges(
        self,
        page: int = 1,
        page_size: int = 12,
        reward_type: str | None = None,
        search: str | None = None,
        sort: str = "newest",
    ) -> tuple[list[Challenge], int]:
        """Public, funded, ACTIVE challenges with a total count."""
        conditions = [
            Challenge.status == ChallengeStatus.ACTIVE.value,
            Challenge.is_funded.is_(True),
            Challenge.visibility == Visibility.PUBLIC.value,
        ]
        if reward_type:
            conditions.append(Challenge.reward_type == reward_type)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(Challenge.title.ilike(pattern), Challenge.description.ilike(pattern))
            )

        total = (
            await self.session.execute(select(func.count()).select_from(Challenge).where(*conditions))
        ).scalar_one()

        order = SORT_ORDERS.get(sort, SORT_ORDERS["newest"])
        page = max(page, 1)
        result = await self.session.execute(
            select(Challenge)
            .where(*conditions)
            .order_by(order, Challenge.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def get_challenge(self, challenge_id: UUID, viewer: User | None = None) -> Challenge:
        """Load a challenge; unfunded or private ones are visible to their creator only."""
        challenge = await self.store.get_challenge(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge not found", code="CHALLENGE_NOT_FOUND")

        is_owner = viewer is not None and viewer.user_id == challenge.creator_id
        listed = challenge.is_funded and challenge.visibility == Visibility.PUBLIC.value
        if not listed and not is_owner:
            raise NotFoundError("Challenge not found", code="CHALLENGE_NOT_FOUND")
        return challenge

    async def list_creator_challenges(self, user: User) -> list[Challenge]:
        """Every challenge the caller created, in any status, newest first."""
        return await self.store.list_creator_challenges(user.user_id)

    async def delete_challenge(self, challenge_id: UUID, user: User) -> None:
        """Delete a DRAFT challenge that never reached the processor.

        Payment rows are never deleted, so a draft with any funding attempt
        on record is kept.

        Raises:
            NotFoundError: Challenge does not exist.
            PermissionDeniedError: Caller is not the creator.
            ConflictError: Challenge is not a DRAFT or has payment rows.
        """
        async with self.store.transaction():
            challenge = await self.store.get_challenge(challenge_id, for_update=True)
            if challenge is None:
                raise NotFoundError("Challenge not found", code="CHALLENGE_NOT_FOUND")
            if challenge.creator_id != user.user_id:
                raise PermissionDeniedError("Only the challenge creator can delete challenges")
            if challenge.status != ChallengeStatus.DRAFT.value or challenge.is_funded:
                raise ConflictError(
                    "Only draft challenges can be deleted", code="INVALID_STATUS"
                )
            if await self.store.has_payments(challenge_id):
                raise ConflictError(
                    "Challenge has funding attempts on record and cannot be deleted",
                    code="HAS_PAYMENTS",
                )
            await self.session.delete(challenge)

        logger.info("Deleted draft challenge %s", challenge_id)

    async def get_funding_status(self, challenge_id: UUID, user: User) -> FundingSnapshot:
        """Owner-only view of funding rows for a challenge."""
        challenge = await self.store.get_challenge(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge not found", code="CHALLENGE_NOT_FOUND")
        if challenge.creator_id != user.user_id:
            raise PermissionDeniedError("Only the challenge creator can view funding")

        payments = await self.store.list_challenge_payments(challenge_id, FUNDING_GROUP_TYPES)
        return FundingSnapshot(
            challenge=challenge,
            breakdown=challenge_breakdown(challenge),
            payments=payments,
        )
