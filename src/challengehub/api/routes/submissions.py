"""Submission, review and payout API endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from challengehub.api.dependencies import AppSettings, CurrentUser, DbSession, Processor
from challengehub.api.schemas import (
    ErrorResponse,
    ParticipantSubmissionResponse,
    PaymentResponse,
    PayoutResponse,
    ReviewRequest,
    ReviewResponse,
    SubmissionCreate,
    SubmissionResponse,
)
from challengehub.services.payout_service import PayoutResult, PayoutService
from challengehub.services.submission_service import SubmissionService

router = APIRouter(prefix="/challenges/{challenge_id}/submissions", tags=["submissions"])
participant_router = APIRouter(prefix="/submissions", tags=["submissions"])


def _payout_response(result: PayoutResult) -> PayoutResponse:
    return PayoutResponse(
        submission_id=result.submission_id,
        payment_id=result.payment_id,
        transaction_id=result.transaction_id,
        amount=result.amount,
        currency=result.currency,
        reward_type=result.reward_type,
    )


@router.post(
    "",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def create_submission(
    db: DbSession,
    user: CurrentUser,
    challenge_id: UUID,
    payload: SubmissionCreate,
) -> SubmissionResponse:
    """Enter a funded, active challenge."""
    submission = await SubmissionService(db).create_submission(
        challenge_id,
        user,
        content_url=payload.content_url,
        content_type=payload.content_type,
    )
    return SubmissionResponse.model_validate(submission)


@router.get(
    "",
    response_model=list[SubmissionResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def list_submissions(
    db: DbSession,
    user: CurrentUser,
    challenge_id: UUID,
) -> list[SubmissionResponse]:
    """List submissions for a challenge (creator only)."""
    submissions = await SubmissionService(db).list_submissions(challenge_id, user)
    return [SubmissionResponse.model_validate(s) for s in submissions]


@participant_router.get(
    "",
    response_model=list[ParticipantSubmissionResponse],
    responses={401: {"model": ErrorResponse}},
)
async def list_my_submissions(
    db: DbSession,
    user: CurrentUser,
) -> list[ParticipantSubmissionResponse]:
    """The caller's submissions across all challenges, with payout status."""
    entries = await SubmissionService(db).list_user_submissions(user)
    return [
        ParticipantSubmissionResponse(
            submission=SubmissionResponse.model_validate(entry.submission),
            challenge_id=entry.challenge.challenge_id,
            challenge_title=entry.challenge.title,
            challenge_status=entry.challenge.status,
            reward_type=entry.challenge.reward_type,
            reward_amount=entry.challenge.net_payout,
            payout_status=entry.payout_status,
            payouts=[PaymentResponse.model_validate(p) for p in entry.payouts],
        )
        for entry in entries
    ]


@router.patch(
    "/{submission_id}/review",
    response_model=ReviewResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def review_submission(
    db: DbSession,
    user: CurrentUser,
    processor: Processor,
    settings: AppSettings,
    challenge_id: UUID,
    submission_id: UUID,
    payload: ReviewRequest,
) -> ReviewResponse:
    """Approve or reject a submission. Approval pays the participant.

    If the payout fails the approval stands and a 502 is returned; retry
    through the payout endpoint.
    """
    service = PayoutService(db, processor, company_id=settings.company_id)
    result = await service.review_submission(
        challenge_id,
        submission_id,
        user,
        action=payload.action,
        rejection_reason=payload.rejection_reason,
    )
    return ReviewResponse(
        submission=SubmissionResponse.model_validate(result.submission),
        payout=_payout_response(result.payout) if result.payout else None,
    )


@router.post(
    "/{submission_id}/payout",
    response_model=PayoutResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def retry_payout(
    db: DbSession,
    user: CurrentUser,
    processor: Processor,
    settings: AppSettings,
    challenge_id: UUID,
    submission_id: UUID,
) -> PayoutResponse:
    """Pay an approved submission whose earlier payout failed."""
    service = PayoutService(db, processor, company_id=settings.company_id)
    result = await service.pay_submission(challenge_id, submission_id, user)
    return _payout_response(result)
