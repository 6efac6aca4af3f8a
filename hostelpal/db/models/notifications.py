"""Notification ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hostelpal.db.base import Base
from hostelpal.db.enums import DeliveryStatus


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Notification(Base):
    """
    In-app notification for a user.

    The row is authoritative even when every delivery channel fails.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notif_user_unread", "user_id", "is_read", "created_at"),
        Index("idx_notif_type_priority", "type", "priority"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    ticket_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True
    )

    # Notification type (enum)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)

    # Content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Read status
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)

    deliveries: Mapped[list["NotificationDelivery"]] = relationship(
        back_populates="notification",
        order_by="NotificationDelivery.attempted_at",
        lazy="selectin",
    )

    @property
    def sent_via(self) -> list[str]:
        """Channels with a successful delivery attempt."""
        return [
            d.channel for d in self.deliveries if d.status == DeliveryStatus.SENT.value
        ]


class NotificationDelivery(Base):
    """One channel attempt for a notification."""

    __tablename__ = "notification_deliveries"
    __table_args__ = (Index("idx_notif_delivery_notif", "notification_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    notification_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False
    )
    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempted_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)

    notification: Mapped[Notification] = relationship(back_populates="deliveries")
