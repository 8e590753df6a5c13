"""Participant submissions."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.models import (
    Challenge,
    ContentType,
    Payment,
    Submission,
    SubmissionStatus,
    User,
    as_utc,
    utcnow,
)
from challengehub.services.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from challengehub.services.payment_store import PaymentStore
from challengehub.services.state_machine import ChallengeStateMachine


@dataclass(frozen=True)
class ParticipantEntry:
    """A participant's submission, the challenge it entered and its payout rows."""

    submission: Submission
    challenge: Challenge
    payouts: list[Payment] = field(default_factory=list)

    @property
    def payout_status(self) -> str | None:
        """Status of the latest payout attempt, if any."""
        return self.payouts[-1].status if self.payouts else None


class SubmissionService:
    """Service for entering and listing submissions.

    Constraints:
    - Only funded, ACTIVE challenges accept submissions
    - One submission per participant per challenge
    - Creators cannot enter their own challenge
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.store = PaymentStore(session)

    async def create_submission(
        self,
        challenge_id: UUID,
        participant: User,
        content_url: str,
        content_type: str = ContentType.OTHER.value,
    ) -> Submission:
        if not content_url or not content_url.strip():
            raise ValidationError("Missing required field: content_url", code="MISSING_FIELD")
        try:
            kind = ContentType(content_type)
        except ValueError as e:
            raise ValidationError(f"Unknown content type: {content_type}") from e

        async with self.store.transaction():
            challenge = await self.store.get_challenge(challenge_id, for_update=True)
            if challenge is None:
                raise NotFoundError("Challenge not found", code="CHALLENGE_NOT_FOUND")
            if not ChallengeStateMachine.accepts_submissions(challenge.status, challenge.is_funded):
                raise ValidationError(
                    "Challenge is not accepting submissions", code="CHALLENGE_NOT_ACTIVE"
                )
            if challenge.deadline is not None and as_utc(challenge.deadline) <= utcnow():
                raise ValidationError("Challenge deadline has passed", code="DEADLINE_PASSED")
            if challenge.creator_id == participant.user_id:
                raise PermissionDeniedError("Creators cannot submit to their own challenge")

            if await self.store.find_submission(challenge_id, participant.user_id) is not None:
                raise ConflictError(
                    "You have already submitted to this challenge", code="ALREADY_SUBMITTED"
                )

            submission = Submission(
                challenge_id=challenge_id,
                user_id=participant.user_id,
                content_url=content_url.strip(),
                content_type=kind.value,
                status=SubmissionStatus.PENDING.value,
            )
            self.session.add(submission)
            challenge.total_submissions += 1
            try:
                await self.session.flush()
            except IntegrityError as e:
                raise ConflictError(
                    "You have already submitted to this challenge", code="ALREADY_SUBMITTED"
                ) from e

        return submission

    async def list_submissions(self, challenge_id: UUID, user: User) -> list[Submission]:
        """All submissions for a challenge, newest first. Creator only."""
        challenge = await self.store.get_challenge(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge not found", code="CHALLENGE_NOT_FOUND")
        if challenge.creator_id != user.user_id:
            raise PermissionDeniedError("Only the challenge creator can view submissions")
        return await self.store.list_submissions(challenge_id)

    async def list_user_submissions(self, user: User) -> list[ParticipantEntry]:
        """The caller's own submissions with their payout attempts, newest first.

        An APPROVED submission whose latest payout row is FAILED is waiting
        on a creator retry; one with no payout row yet is still in flight.
        """
        rows = await self.store.list_user_submissions(user.user_id)
        payouts: dict[UUID, list[Payment]] = defaultdict(list)
        for payment in await self.store.list_payouts(s.submission_id for s, _ in rows):
            payouts[payment.submission_id].append(payment)
        return [
            ParticipantEntry(
                submission=submission,
                challenge=challenge,
                payouts=payouts.get(submission.submission_id, []),
            )
            for submission, challenge in rows
        ]
