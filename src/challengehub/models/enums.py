"""Status and discriminator values stored on ORM rows."""

from __future__ import annotations

from enum import Enum


class RewardType(str, Enum):
    """What a challenge pays its winners."""

    USD = "USD"
    USDC = "USDC"
    SUBSCRIPTION = "SUBSCRIPTION"


class ChallengeStatus(str, Enum):
    """Challenge lifecycle status values."""

    DRAFT = "DRAFT"
    FUNDED = "FUNDED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Visibility(str, Enum):
    """Challenge listing visibility."""

    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


class PaymentType(str, Enum):
    """Payment row discriminator."""

    FUNDING = "FUNDING"
    PLATFORM_FEE = "PLATFORM_FEE"
    BUYOUT_FEE = "BUYOUT_FEE"
    PAYOUT = "PAYOUT"


class PaymentMethod(str, Enum):
    """How money (or credit) moved."""

    EXTERNAL_PROCESSOR = "external_processor"
    CARD_PROCESSOR = "card_processor"
    SUBSCRIPTION_CREDIT = "subscription_credit"


class PaymentStatus(str, Enum):
    """Payment status values."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


class SubmissionStatus(str, Enum):
    """Submission moderation and payout status values."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"


class ContentType(str, Enum):
    """Where a submission's content lives."""

    TIKTOK = "TIKTOK"
    TWITTER = "TWITTER"
    INSTAGRAM = "INSTAGRAM"
    YOUTUBE = "YOUTUBE"
    OTHER = "OTHER"


FUNDING_GROUP_TYPES = frozenset(
    {PaymentType.FUNDING, PaymentType.PLATFORM_FEE, PaymentType.BUYOUT_FEE}
)
