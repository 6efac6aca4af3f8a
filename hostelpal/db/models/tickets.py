"""Ticket ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hostelpal.db.base import Base
from hostelpal.db.enums import (
    ClassificationSource,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from hostelpal.db.models.users import User


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _enum_type(enum_cls, *, name: str) -> Enum:
    """Store str-enums by value in a portable VARCHAR column."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda members: [member.value for member in members],
    )


class Ticket(Base):
    """
    Hostel complaint ticket.

    Category and priority are derived by the classifier before the first
    insert and are never null. The submitting student is immutable.
    """

    __tablename__ = "tickets"
    __table_args__ = (
        Index("idx_tickets_status_priority_created", "status", "priority", "created_at"),
        Index("idx_tickets_student_created", "student_id", "created_at"),
        Index("idx_tickets_assignee_status", "assigned_to_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Content
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Classification
    category: Mapped[TicketCategory] = mapped_column(
        _enum_type(TicketCategory, name="ticket_category"), nullable=False
    )
    priority: Mapped[TicketPriority] = mapped_column(
        _enum_type(TicketPriority, name="ticket_priority"), nullable=False
    )
    category_confidence: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)
    priority_confidence: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)
    category_source: Mapped[ClassificationSource] = mapped_column(
        _enum_type(ClassificationSource, name="classification_source"), nullable=False
    )
    priority_source: Mapped[ClassificationSource] = mapped_column(
        _enum_type(ClassificationSource, name="classification_source"), nullable=False
    )
    keywords: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    suggested_actions: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    ai_reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[TicketStatus] = mapped_column(
        _enum_type(TicketStatus, name="ticket_status"),
        default=TicketStatus.OPEN,
        nullable=False,
    )

    # Ownership
    student_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    assigned_to_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Location
    room_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    block: Mapped[str | None] = mapped_column(String(50), nullable=True)
    specific_location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # [{"url": ..., "storage_id": ...}], at most 5
    images: Mapped[list[dict]] = mapped_column(JSON, default=list, nullable=False)

    # Resolution record (populated on resolve with a description)
    resolution_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_by_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolution_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Escalation (advanced by the scheduled sweep)
    escalation_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_escalated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_now_utc, onupdate=_now_utc, nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    student: Mapped[User] = relationship(foreign_keys=[student_id], lazy="joined")
    assigned_to: Mapped[User | None] = relationship(foreign_keys=[assigned_to_id])
    resolved_by: Mapped[User | None] = relationship(foreign_keys=[resolved_by_id])
    comments: Mapped[list["TicketComment"]] = relationship(
        back_populates="ticket",
        order_by="TicketComment.created_at",
        lazy="selectin",
    )


class TicketComment(Base):
    """Append-only ticket comment."""

    __tablename__ = "ticket_comments"
    __table_args__ = (Index("idx_ticket_comments_ticket", "ticket_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)

    ticket: Mapped[Ticket] = relationship(back_populates="comments")
    author: Mapped[User] = relationship(lazy="joined")
