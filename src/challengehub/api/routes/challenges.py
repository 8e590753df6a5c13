"""Challenge and funding API endpoints."""

import math
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from challengehub.api.dependencies import AppSettings, CurrentUser, DbSession, Processor
from challengehub.api.schemas import (
    ChallengeCreate,
    ChallengeListResponse,
    ChallengeResponse,
    ErrorResponse,
    FeeBreakdownResponse,
    FundingResponse,
    FundingStatusResponse,
    PaymentResponse,
)
from challengehub.calculators.fees import FeeBreakdown, fee_breakdown_text
from challengehub.services.challenge_service import ChallengeService
from challengehub.services.charge_initiator import ChargeInitiator, FundingResult, FundingStatus

router = APIRouter(prefix="/challenges", tags=["challenges"])


def _fees_response(breakdown: FeeBreakdown) -> FeeBreakdownResponse:
    return FeeBreakdownResponse(
        reward_amount=breakdown.reward_amount,
        platform_fee=breakdown.platform_fee,
        net_payout=breakdown.net_payout,
        total_cost=breakdown.total_cost,
        buyout_fee_paid=breakdown.buyout_fee_paid,
        summary=fee_breakdown_text(breakdown),
    )


def _funding_response(result: FundingResult) -> FundingResponse:
    return FundingResponse(
        status=result.status.value,
        challenge_id=result.challenge_id,
        payment_id=result.payment_id,
        method=result.method,
        amount=result.amount,
        currency=result.currency,
        processor_payment_id=result.processor_payment_id,
        checkout_url=result.checkout_url,
        client_secret=result.client_secret,
        redirect_required=result.status == FundingStatus.REQUIRES_CONFIRMATION,
        message=result.message,
    )


# ============================================================================
# Challenge CRUD
# ============================================================================


@router.post(
    "",
    response_model=ChallengeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def create_challenge(
    db: DbSession,
    user: CurrentUser,
    payload: ChallengeCreate,
) -> ChallengeResponse:
    """Create a new challenge in draft status."""
    fees = payload.fee_calculation
    challenge = await ChallengeService(db).create_challenge(
        user,
        title=payload.title,
        description=payload.description,
        reward_type=payload.reward_type,
        reward_amount=payload.reward_amount,
        buyout_fee_paid=payload.buyout_fee_paid,
        platform_fee=fees.platform_fee if fees else None,
        net_payout=fees.net_payout if fees else None,
        reward_subscription_id=payload.reward_subscription_id,
        deadline=payload.deadline,
        visibility=payload.visibility,
        company_id=payload.company_id,
        required_tags=payload.required_tags,
    )
    return ChallengeResponse.model_validate(challenge)


@router.get("", response_model=ChallengeListResponse)
async def list_challenges(
    db: DbSession,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 12,
    reward_type: str | None = None,
    search: str | None = None,
    sort: str = "newest",
) -> ChallengeListResponse:
    """List public, funded, active challenges."""
    challenges, total = await ChallengeService(db).list_active_challenges(
        page=page,
        page_size=page_size,
        reward_type=reward_type,
        search=search,
        sort=sort,
    )
    return ChallengeListResponse(
        items=[ChallengeResponse.model_validate(c) for c in challenges],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )


@router.get(
    "/{challenge_id}",
    response_model=ChallengeResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_challenge(
    db: DbSession,
    user: CurrentUser,
    challenge_id: UUID,
) -> ChallengeResponse:
    """Get a challenge."""
    challenge = await ChallengeService(db).get_challenge(challenge_id, user)
    return ChallengeResponse.model_validate(challenge)


@router.delete(
    "/{challenge_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def delete_challenge(
    db: DbSession,
    user: CurrentUser,
    challenge_id: UUID,
) -> None:
    """Delete a draft challenge with no funding attempts."""
    await ChallengeService(db).delete_challenge(challenge_id, user)


# ============================================================================
# Funding
# ============================================================================


@router.post(
    "/{challenge_id}/fund",
    response_model=FundingResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def fund_challenge(
    db: DbSession,
    user: CurrentUser,
    processor: Processor,
    settings: AppSettings,
    challenge_id: UUID,
) -> FundingResponse:
    """Start funding a draft challenge.

    USD/USDC rewards return a checkout URL / client secret unless the charge
    settled immediately; subscription rewards are funded synchronously.
    """
    initiator = ChargeInitiator(
        db, processor, company_id=settings.company_id, app_url=settings.app_url
    )
    result = await initiator.fund(challenge_id, user)
    return _funding_response(result)


@router.get(
    "/{challenge_id}/funding",
    response_model=FundingStatusResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_funding_status(
    db: DbSession,
    user: CurrentUser,
    challenge_id: UUID,
) -> FundingStatusResponse:
    """Funding state and funding-related payments for a challenge."""
    snapshot = await ChallengeService(db).get_funding_status(challenge_id, user)
    return FundingStatusResponse(
        challenge_id=snapshot.challenge.challenge_id,
        status=snapshot.challenge.status,
        is_funded=snapshot.challenge.is_funded,
        fees=_fees_response(snapshot.breakdown),
        payments=[PaymentResponse.model_validate(p) for p in snapshot.payments],
    )


@router.post(
    "/{challenge_id}/funding/confirm",
    response_model=FundingResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def confirm_funding(
    db: DbSession,
    user: CurrentUser,
    processor: Processor,
    settings: AppSettings,
    challenge_id: UUID,
) -> FundingResponse:
    """Check the pending charge with the processor and apply its status."""
    initiator = ChargeInitiator(
        db, processor, company_id=settings.company_id, app_url=settings.app_url
    )
    result = await initiator.confirm_charge(challenge_id, user)
    return _funding_response(result)
