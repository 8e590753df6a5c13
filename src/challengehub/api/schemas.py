"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Fee schemas
# ============================================================================


class FeeCalculation(BaseModel):
    """Fee breakdown the creator was shown when building the challenge."""

    platform_fee: Decimal
    net_payout: Decimal
    total_cost: Decimal | None = None


class FeeBreakdownResponse(BaseModel):
    """Server-computed fee breakdown."""

    reward_amount: Decimal
    platform_fee: Decimal
    net_payout: Decimal
    total_cost: Decimal
    buyout_fee_paid: bool
    summary: str


# ============================================================================
# Challenge schemas
# ============================================================================


class ChallengeCreate(BaseModel):
    """Schema for creating a new challenge in draft status."""

    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    reward_type: str
    reward_amount: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    buyout_fee_paid: bool = False
    fee_calculation: FeeCalculation | None = None
    reward_subscription_id: str | None = None
    deadline: datetime | None = None
    visibility: str = "PUBLIC"
    company_id: str | None = None
    required_tags: list[str] = Field(default_factory=list)


class ChallengeResponse(BaseModel):
    """Schema for challenge response."""

    model_config = ConfigDict(from_attributes=True)

    challenge_id: UUID
    creator_id: UUID
    title: str
    description: str
    required_tags: list[str]
    reward_type: str
    reward_amount: Decimal
    reward_subscription_id: str | None = None
    platform_fee: Decimal
    net_payout: Decimal
    buyout_fee_paid: bool
    status: str
    is_funded: bool
    deadline: datetime | None = None
    visibility: str
    total_submissions: int
    approved_submissions: int
    created_at: datetime
    updated_at: datetime


class ChallengeListResponse(BaseModel):
    """Schema for listing challenges."""

    items: list[ChallengeResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# ============================================================================
# Funding schemas
# ============================================================================


class PaymentResponse(BaseModel):
    """Schema for a payment row."""

    model_config = ConfigDict(from_attributes=True)

    payment_id: UUID
    parent_payment_id: UUID | None = None
    submission_id: UUID | None = None
    type: str
    method: str
    amount: Decimal
    currency: str
    status: str
    processor_payment_id: str | None = None
    failure_reason: str | None = None
    created_at: datetime


class FundingResponse(BaseModel):
    """Result of a funding or confirmation request."""

    status: str
    challenge_id: UUID
    payment_id: UUID | None = None
    method: str
    amount: Decimal
    currency: str
    processor_payment_id: str | None = None
    checkout_url: str | None = None
    client_secret: str | None = None
    redirect_required: bool = False
    message: str = ""


class FundingStatusResponse(BaseModel):
    """Creator's view of a challenge's funding."""

    challenge_id: UUID
    status: str
    is_funded: bool
    fees: FeeBreakdownResponse
    payments: list[PaymentResponse]


# ============================================================================
# Submission schemas
# ============================================================================


class SubmissionCreate(BaseModel):
    """Schema for entering a challenge."""

    content_url: str = Field(min_length=1)
    content_type: str = "OTHER"


class SubmissionResponse(BaseModel):
    """Schema for submission response."""

    model_config = ConfigDict(from_attributes=True)

    submission_id: UUID
    challenge_id: UUID
    user_id: UUID
    content_url: str
    content_type: str
    status: str
    rejection_reason: str | None = None
    submitted_at: datetime
    reviewed_at: datetime | None = None
    paid_at: datetime | None = None


class ParticipantSubmissionResponse(BaseModel):
    """A participant's own submission with its payout attempts."""

    submission: SubmissionResponse
    challenge_id: UUID
    challenge_title: str
    challenge_status: str
    reward_type: str
    reward_amount: Decimal
    payout_status: str | None = None
    payouts: list[PaymentResponse]


class ReviewRequest(BaseModel):
    """Schema for reviewing a submission."""

    action: str
    rejection_reason: str | None = None


class PayoutResponse(BaseModel):
    """Schema for a completed payout."""

    submission_id: UUID
    payment_id: UUID | None = None
    transaction_id: str | None = None
    amount: Decimal
    currency: str
    reward_type: str


class ReviewResponse(BaseModel):
    """Schema for review response."""

    submission: SubmissionResponse
    payout: PayoutResponse | None = None


# ============================================================================
# Webhook and error schemas
# ============================================================================


class WebhookAck(BaseModel):
    """Acknowledgment returned to the processor."""

    received: bool = True
    status: str


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
