"""Challenge and submission models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from challengehub.models.base import Base, TimestampMixin, utcnow


class Challenge(Base, TimestampMixin):
    """A creator-funded content contest.

    ``platform_fee`` and ``net_payout`` are always recomputable from
    ``reward_amount`` and ``buyout_fee_paid`` via the fee policy.
    """

    __tablename__ = "challenge"

    challenge_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    creator_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    required_tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    reward_type: Mapped[str] = mapped_column(String(20), nullable=False)
    reward_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    reward_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    platform_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    net_payout: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    buyout_fee_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    is_funded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    visibility: Mapped[str] = mapped_column(String(20), nullable=False, default="PUBLIC")
    company_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total_submissions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    approved_submissions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint(
            "reward_type IN ('USD', 'USDC', 'SUBSCRIPTION')",
            name="challenge_reward_type_check",
        ),
        CheckConstraint(
            "status IN ('DRAFT', 'FUNDED', 'ACTIVE', 'COMPLETED', 'CANCELLED')",
            name="challenge_status_check",
        ),
        CheckConstraint("reward_amount >= 0", name="challenge_reward_amount_check"),
        CheckConstraint(
            "NOT (status = 'ACTIVE' AND NOT is_funded) AND NOT (status = 'DRAFT' AND is_funded)",
            name="challenge_funded_active_check",
        ),
        CheckConstraint(
            "visibility = 'PUBLIC' OR company_id IS NOT NULL",
            name="challenge_private_company_check",
        ),
        Index("challenge_status_idx", "status", "is_funded"),
    )


class Submission(Base):
    """A participant's entry into a challenge."""

    __tablename__ = "submission"

    submission_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    challenge_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("challenge.challenge_id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    content_url: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(String(20), nullable=False, default="OTHER")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="submission_one_per_participant"),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', 'PAID')",
            name="submission_status_check",
        ),
        Index("submission_challenge_idx", "challenge_id", "status"),
    )
