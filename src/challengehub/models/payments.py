"""Payment records.

A Payment row is this system's durable record of what it believes happened;
the processor remains the system of record for whether money moved.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from challengehub.models.base import Base, TimestampMixin


class Payment(Base, TimestampMixin):
    """Funding, fee or payout record for a challenge.

    Fee rows created alongside a FUNDING row point at it through
    ``parent_payment_id``; together they form one funding group that
    transitions atomically.
    """

    __tablename__ = "payment"

    payment_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
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
    submission_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("submission.submission_id", ondelete="SET NULL"),
        nullable=True,
    )
    parent_payment_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payment.payment_id"),
        nullable=True,
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    method: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="USD")
    processor_payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        CheckConstraint(
            "type IN ('FUNDING', 'PLATFORM_FEE', 'BUYOUT_FEE', 'PAYOUT')",
            name="payment_type_check",
        ),
        CheckConstraint(
            "method IN ('external_processor', 'card_processor', 'subscription_credit')",
            name="payment_method_check",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'COMPLETED', 'FAILED', 'REFUNDED', 'CANCELLED')",
            name="payment_status_check",
        ),
        CheckConstraint("amount >= 0", name="payment_amount_check"),
        Index("payment_challenge_status_idx", "challenge_id", "type", "status"),
        Index("payment_processor_id_idx", "processor_payment_id"),
    )
