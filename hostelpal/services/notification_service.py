"""
Notification Service - persisted notifications plus out-of-band delivery.

The notification row is written and committed before any channel is tried;
each channel attempt then runs as its own background task and records a
delivery row. Channel failures are logged and never reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hostelpal.core.structured_logging import build_log_context
from hostelpal.db.enums import (
    DeliveryChannel,
    DeliveryStatus,
    NotificationType,
    ROLES_CAN_TRIAGE,
    Role,
    TicketPriority,
    TicketStatus,
)
from hostelpal.db.models import Notification, NotificationDelivery, Ticket, User
from hostelpal.db.session import SessionLocal
from hostelpal.services import delivery_channels, ticket_events

logger = logging.getLogger(__name__)

# Delivery tasks write their outcome through their own session
_delivery_session_factory = SessionLocal
_pending: set[asyncio.Task] = set()

ESCALATION_TITLE = "High Priority Ticket"
ESCALATION_EMAIL_SUBJECT = "High Priority Ticket Alert"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _value(enum_or_str) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": str(notification.id),
        "ticket_id": str(notification.ticket_id) if notification.ticket_id else None,
        "type": notification.type,
        "priority": notification.priority,
        "title": notification.title,
        "message": notification.message,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat(),
    }


# =============================================================================
# Delivery
# =============================================================================


def _schedule(coro) -> None:
    task = asyncio.get_running_loop().create_task(coro)
    _pending.add(task)
    task.add_done_callback(_pending.discard)


async def wait_for_deliveries() -> None:
    """Wait until every scheduled channel attempt has finished."""
    while _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)


async def _deliver(
    notification_id: UUID,
    recipient_id: UUID,
    channel: delivery_channels.Channel,
    target: str,
    title: str,
    message: str,
    subject: str | None,
) -> None:
    status = DeliveryStatus.SENT
    error = None
    try:
        await channel.send(target, title, message, subject=subject)
    except Exception as exc:
        # Any channel fault is contained to this attempt
        status = DeliveryStatus.FAILED
        error = str(exc)[:500] or exc.__class__.__name__
        logger.warning(
            "Notification delivery failed on %s: %s",
            channel.name.value,
            exc.__class__.__name__,
            extra=build_log_context(
                user_id=str(recipient_id), notification_id=str(notification_id)
            ),
        )

    db = _delivery_session_factory()
    try:
        db.add(
            NotificationDelivery(
                notification_id=notification_id,
                channel=channel.name.value,
                status=status.value,
                error=error,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Failed to record delivery attempt",
            extra=build_log_context(notification_id=str(notification_id)),
        )
    finally:
        db.close()


# =============================================================================
# Dispatch
# =============================================================================


async def notify(
    db: Session,
    recipient: User,
    *,
    title: str,
    message: str,
    type: NotificationType,
    priority: TicketPriority | str = TicketPriority.MEDIUM,
    ticket_id: UUID | None = None,
    channels: Iterable[DeliveryChannel] = (),
    email_subject: str | None = None,
) -> Notification:
    """
    Persist a notification, then fan out to the requested channels.

    A channel is attempted only when it is configured and the recipient has
    a target on it. The caller never waits for delivery.
    """
    notification = Notification(
        user_id=recipient.id,
        ticket_id=ticket_id,
        type=_value(type),
        priority=_value(priority),
        title=title,
        message=message,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)

    available = delivery_channels.get_channels()
    for name in dict.fromkeys(channels):
        channel = available.get(name)
        if channel is None:
            continue
        target = channel.target_for(recipient)
        if not target:
            continue
        _schedule(
            _deliver(
                notification.id,
                recipient.id,
                channel,
                target,
                title,
                message,
                email_subject,
            )
        )

    await ticket_events.push_notification(recipient.id, serialize_notification(notification))
    return notification


async def escalate(db: Session, ticket: Ticket) -> list[Notification]:
    """Notify every active staff/admin user about a ticket needing attention."""
    recipients = (
        db.query(User)
        .filter(
            User.role.in_([r.value for r in ROLES_CAN_TRIAGE]),
            User.is_active.is_(True),
        )
        .order_by(User.created_at)
        .all()
    )

    channels = [DeliveryChannel.PUSH, DeliveryChannel.EMAIL]
    if ticket.priority == TicketPriority.URGENT:
        channels.append(DeliveryChannel.SMS)

    message = f"URGENT: High priority ticket #{ticket.id} - {ticket.title}"
    sent: list[Notification] = []
    for user in recipients:
        try:
            sent.append(
                await notify(
                    db,
                    user,
                    title=ESCALATION_TITLE,
                    message=message,
                    type=NotificationType.ESCALATION,
                    priority=TicketPriority.URGENT,
                    ticket_id=ticket.id,
                    channels=channels,
                    email_subject=ESCALATION_EMAIL_SUBJECT,
                )
            )
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "Escalation notification failed",
                extra=build_log_context(user_id=str(user.id), ticket_id=str(ticket.id)),
            )
    return sent


# =============================================================================
# Ticket triggers (called from ticket_service)
# =============================================================================


async def notify_ticket_created(db: Session, ticket: Ticket) -> Notification:
    return await notify(
        db,
        ticket.student,
        title="Ticket Created",
        message=f"Your {_value(ticket.category)} request has been submitted successfully.",
        type=NotificationType.TICKET_CREATED,
        priority=ticket.priority,
        ticket_id=ticket.id,
        channels=[DeliveryChannel.PUSH],
    )


async def notify_status_changed(db: Session, ticket: Ticket) -> Notification:
    status = TicketStatus(ticket.status)
    channels = [DeliveryChannel.PUSH]
    if status in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
        channels.append(DeliveryChannel.EMAIL)

    return await notify(
        db,
        ticket.student,
        title="Ticket Status Updated",
        message=f"Your ticket status has been changed to {status.value}",
        type=(
            NotificationType.TICKET_RESOLVED
            if status == TicketStatus.RESOLVED
            else NotificationType.TICKET_UPDATED
        ),
        priority=ticket.priority,
        ticket_id=ticket.id,
        channels=channels,
        email_subject=f"Ticket {status.value.replace('_', ' ')}: {ticket.title}",
    )


async def notify_ticket_assigned(db: Session, ticket: Ticket, assignee: User) -> Notification:
    return await notify(
        db,
        assignee,
        title="Ticket Assigned",
        message=f"Ticket #{ticket.id} - {ticket.title} has been assigned to you",
        type=NotificationType.TICKET_ASSIGNED,
        priority=ticket.priority,
        ticket_id=ticket.id,
        channels=[DeliveryChannel.PUSH],
    )


async def notify_comment_added(
    db: Session, ticket: Ticket, author: User
) -> Notification | None:
    """Staff comments notify the submitter; submitter comments notify the assignee."""
    if author.role in {r.value for r in ROLES_CAN_TRIAGE}:
        recipient = ticket.student
        title = "Staff Response"
    elif author.role == Role.STUDENT.value and ticket.assigned_to is not None:
        recipient = ticket.assigned_to
        title = "Student Comment"
    else:
        return None

    if recipient.id == author.id:
        return None

    return await notify(
        db,
        recipient,
        title=title,
        message=f"New comment on ticket: {ticket.title}",
        type=NotificationType.TICKET_UPDATED,
        priority=ticket.priority,
        ticket_id=ticket.id,
        channels=[DeliveryChannel.PUSH],
    )


# =============================================================================
# Read side
# =============================================================================


def list_notifications(
    db: Session,
    user: User,
    unread_only: bool = False,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Notification], int, int]:
    """Return (notifications, total, total_pages), newest first."""
    query = db.query(Notification).filter(Notification.user_id == user.id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))

    total = query.count()
    items = (
        query.order_by(Notification.created_at.desc(), Notification.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total, math.ceil(total / limit) if total else 0


def get_unread_count(db: Session, user: User) -> int:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
        .count()
    )


def mark_read(db: Session, notification_id: UUID, user: User) -> Notification:
    """Mark one notification read. Only its recipient may do so."""
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    if notification.user_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = _now()
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user: User) -> int:
    """Mark all of the user's unread notifications read. Returns count updated."""
    count = (
        db.query(Notification)
        .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
        .update({"is_read": True, "read_at": _now()}, synchronize_session=False)
    )
    db.commit()
    return count
