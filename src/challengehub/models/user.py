"""Local user records mirrored from the identity provider."""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from challengehub.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """A creator or participant.

    ``external_user_id`` is the identity provider's id, which is also the
    processor account that receives payouts.
    """

    __tablename__ = "app_user"

    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    external_user_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    is_creator: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
