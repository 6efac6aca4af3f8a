"""User ORM model."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from hostelpal.db.base import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    Application user.

    Referenced by tickets and notifications; contact fields are only used
    as delivery targets for notification channels.
    """

    __tablename__ = "users"
    __table_args__ = (Index("idx_users_role_active", "role", "is_active"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Delivery targets
    phone_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    fcm_token: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Default ticket location
    room_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    hostel_block: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_now_utc, onupdate=_now_utc, nullable=False
    )
