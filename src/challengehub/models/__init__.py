"""ORM models."""

from challengehub.models.base import Base, TimestampMixin, as_utc, utcnow
from challengehub.models.challenge import Challenge, Submission
from challengehub.models.enums import (
    FUNDING_GROUP_TYPES,
    ChallengeStatus,
    ContentType,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    RewardType,
    SubmissionStatus,
    Visibility,
)
from challengehub.models.payments import Payment
from challengehub.models.user import User

__all__ = [
    "Base",
    "TimestampMixin",
    "as_utc",
    "utcnow",
    "User",
    "Challenge",
    "Submission",
    "Payment",
    "FUNDING_GROUP_TYPES",
    "ChallengeStatus",
    "ContentType",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentType",
    "RewardType",
    "SubmissionStatus",
    "Visibility",
]
