"""Persistence for challenges, payments and submissions."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.calculators.fees import FeeBreakdown
from challengehub.models import (
    Challenge,
    ChallengeStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    Submission,
    User,
    utcnow,
)
from challengehub.services.state_machine import ChallengeStateMachine, PaymentStateMachine


class PaymentStore:
    """Row-level access to challenge, payment and submission records.

    Methods never commit on their own; multi-row changes run inside
    ``transaction()`` so they commit or roll back together. Payment rows are
    never deleted.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Commit on success, roll back on any exception and re-raise."""
        try:
            yield self.session
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user(self, user_id: UUID) -> User | None:
        return await self.session.get(User, user_id)

    async def upsert_user(
        self,
        external_user_id: str,
        username: str | None = None,
        is_creator: bool | None = None,
    ) -> User:
        """Return the local user for an identity-provider id, creating it if needed."""
        result = await self.session.execute(
            select(User).where(User.external_user_id == external_user_id)
        )
        user = result.scalar_one_or_none()
        if user is None:
            user = User(
                external_user_id=external_user_id,
                username=username or external_user_id,
                is_creator=bool(is_creator),
            )
            self.session.add(user)
        else:
            if username and user.username != username:
                user.username = username
            if is_creator is not None and user.is_creator != is_creator:
                user.is_creator = is_creator
        await self.session.flush()
        return user

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_challenge(self, challenge_id: UUID, for_update: bool = False) -> Challenge | None:
        """Load a challenge; ``for_update`` locks the row and re-reads it."""
        stmt = select(Challenge).where(Challenge.challenge_id == challenge_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_submission(self, submission_id: UUID, for_update: bool = False) -> Submission | None:
        stmt = select(Submission).where(Submission.submission_id == submission_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_payment(self, payment_id: UUID, for_update: bool = False) -> Payment | None:
        stmt = select(Payment).where(Payment.payment_id == payment_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_submission(self, challenge_id: UUID, user_id: UUID) -> Submission | None:
        result = await self.session.execute(
            select(Submission).where(
                Submission.challenge_id == challenge_id,
                Submission.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_submissions(self, challenge_id: UUID) -> list[Submission]:
        result = await self.session.execute(
            select(Submission)
            .where(Submission.challenge_id == challenge_id)
            .order_by(Submission.submitted_at.desc())
        )
        return list(result.scalars().all())

    async def list_user_submissions(self, user_id: UUID) -> list[tuple[Submission, Challenge]]:
        """A participant's submissions with their challenges, newest first."""
        result = await self.session.execute(
            select(Submission, Challenge)
            .join(Challenge, Challenge.challenge_id == Submission.challenge_id)
            .where(Submission.user_id == user_id)
            .order_by(Submission.submitted_at.desc())
        )
        return [(submission, challenge) for submission, challenge in result.all()]

    async def list_creator_challenges(self, creator_id: UUID) -> list[Challenge]:
        result = await self.session.execute(
            select(Challenge)
            .where(Challenge.creator_id == creator_id)
            .order_by(Challenge.created_at.desc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Funding groups
    # ------------------------------------------------------------------

    async def create_funding_group(
        self,
        challenge: Challenge,
        user: User,
        breakdown: FeeBreakdown,
        metadata: dict[str, Any],
        method: PaymentMethod = PaymentMethod.EXTERNAL_PROCESSOR,
        currency: str = "USD",
    ) -> tuple[Payment, Payment]:
        """Insert a PENDING FUNDING row and its PENDING fee sibling."""
        funding = Payment(
            challenge_id=challenge.challenge_id,
            user_id=user.user_id,
            type=PaymentType.FUNDING.value,
            method=method.value,
            amount=breakdown.total_cost,
            currency=currency,
            status=PaymentStatus.PENDING.value,
            metadata_json=dict(metadata),
        )
        self.session.add(funding)
        await self.session.flush()

        fee = Payment(
            challenge_id=challenge.challenge_id,
            user_id=user.user_id,
            parent_payment_id=funding.payment_id,
            type=breakdown.fee_payment_type.value,
            method=method.value,
            amount=breakdown.fee_payment_amount,
            currency=currency,
            status=PaymentStatus.PENDING.value,
        )
        self.session.add(fee)
        await self.session.flush()
        return funding, fee

    async def find_funding_payment(
        self,
        challenge_id: UUID | None,
        processor_payment_id: str | None,
    ) -> Payment | None:
        """Correlate a processor event with a local FUNDING row.

        The challenge id carried in event metadata is the primary key: within
        that challenge, a row already holding the event's correlation id wins,
        then the newest PENDING row not bound to a different charge. Without a
        usable challenge id, fall back to the correlation id alone.
        """
        if challenge_id is not None:
            result = await self.session.execute(
                select(Payment)
                .where(
                    Payment.challenge_id == challenge_id,
                    Payment.type == PaymentType.FUNDING.value,
                )
                .order_by(Payment.created_at.desc())
            )
            candidates = list(result.scalars().all())

            if processor_payment_id:
                for payment in candidates:
                    if payment.processor_payment_id == processor_payment_id:
                        return payment

            for payment in candidates:
                if payment.status != PaymentStatus.PENDING.value:
                    continue
                if (
                    processor_payment_id
                    and payment.processor_payment_id
                    and payment.processor_payment_id != processor_payment_id
                ):
                    continue
                return payment

        if processor_payment_id:
            result = await self.session.execute(
                select(Payment)
                .where(
                    Payment.processor_payment_id == processor_payment_id,
                    Payment.type == PaymentType.FUNDING.value,
                )
                .order_by(Payment.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

        return None

    async def latest_pending_charge(self, challenge_id: UUID) -> Payment | None:
        """Newest PENDING FUNDING row that already holds a processor charge id."""
        result = await self.session.execute(
            select(Payment)
            .where(
                Payment.challenge_id == challenge_id,
                Payment.type == PaymentType.FUNDING.value,
                Payment.status == PaymentStatus.PENDING.value,
                Payment.processor_payment_id.is_not(None),
            )
            .order_by(Payment.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def pending_siblings(self, funding: Payment) -> list[Payment]:
        """PENDING fee rows belonging to a FUNDING row's group."""
        result = await self.session.execute(
            select(Payment)
            .where(
                Payment.parent_payment_id == funding.payment_id,
                Payment.status == PaymentStatus.PENDING.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_payment_status(
        self,
        payment: Payment,
        status: PaymentStatus,
        failure_reason: str | None = None,
    ) -> None:
        """Move a payment to a new status, validating the transition."""
        PaymentStateMachine.validate_transition(payment.status, status)
        payment.status = status.value
        if failure_reason is not None:
            payment.failure_reason = failure_reason

    def mark_challenge_funded(self, challenge: Challenge) -> None:
        """Set a challenge funded and open for submissions."""
        ChallengeStateMachine.validate_transition(challenge.status, ChallengeStatus.ACTIVE)
        challenge.is_funded = True
        challenge.status = ChallengeStatus.ACTIVE.value

    async def add_payment(
        self,
        *,
        challenge_id: UUID,
        user_id: UUID,
        type: PaymentType,
        method: PaymentMethod,
        amount: Decimal,
        currency: str,
        status: PaymentStatus,
        submission_id: UUID | None = None,
        processor_payment_id: str | None = None,
        failure_reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Payment:
        payment = Payment(
            challenge_id=challenge_id,
            user_id=user_id,
            submission_id=submission_id,
            type=type.value,
            method=method.value,
            amount=amount,
            currency=currency,
            status=status.value,
            processor_payment_id=processor_payment_id,
            failure_reason=failure_reason,
            metadata_json=metadata or {},
        )
        self.session.add(payment)
        await self.session.flush()
        return payment

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def list_challenge_payments(
        self,
        challenge_id: UUID,
        types: Iterable[PaymentType] | None = None,
    ) -> list[Payment]:
        stmt = select(Payment).where(Payment.challenge_id == challenge_id)
        if types is not None:
            stmt = stmt.where(Payment.type.in_([t.value for t in types]))
        result = await self.session.execute(stmt.order_by(Payment.created_at))
        return list(result.scalars().all())

    async def list_payouts(self, submission_ids: Iterable[UUID]) -> list[Payment]:
        """PAYOUT rows, oldest first, for the given submissions."""
        ids = list(submission_ids)
        if not ids:
            return []
        result = await self.session.execute(
            select(Payment)
            .where(
                Payment.submission_id.in_(ids),
                Payment.type == PaymentType.PAYOUT.value,
            )
            .order_by(Payment.created_at)
        )
        return list(result.scalars().all())

    async def has_payments(self, challenge_id: UUID) -> bool:
        result = await self.session.execute(
            select(Payment.payment_id).where(Payment.challenge_id == challenge_id).limit(1)
        )
        return result.first() is not None

    async def find_stale_pending_funding(
        self,
        older_than: timedelta,
        now: datetime | None = None,
    ) -> list[Payment]:
        """PENDING FUNDING rows created before ``now - older_than``."""
        cutoff = (now or utcnow()) - older_than
        result = await self.session.execute(
            select(Payment)
            .where(
                Payment.type == PaymentType.FUNDING.value,
                Payment.status == PaymentStatus.PENDING.value,
                Payment.created_at < cutoff,
            )
            .order_by(Payment.created_at)
        )
        return list(result.scalars().all())
