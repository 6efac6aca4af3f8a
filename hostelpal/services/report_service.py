"""Admin reports: group-by counts over stored tickets and users."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from hostelpal.db.enums import Role, TicketCategory, TicketPriority, TicketStatus
from hostelpal.db.models import Ticket, User
from hostelpal.services.ticket_service import is_overdue

PERIODS = ("daily", "weekly", "monthly")


def period_bounds(period: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    """
    Return [start, end) for a report period in UTC.

    daily: today; weekly: the 7 days up to now; monthly: the current month.
    """
    now = now or datetime.now(timezone.utc)
    if period == "daily":
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elif period == "weekly":
        start = now - timedelta(days=7)
    elif period == "monthly":
        start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    else:
        raise ValueError(f"Unknown report period: {period}")
    return start, now


def _counts(db: Session, column, start: datetime, end: datetime) -> dict:
    rows = (
        db.query(column, func.count(Ticket.id))
        .filter(Ticket.created_at >= start, Ticket.created_at < end)
        .group_by(column)
        .all()
    )
    return {getattr(key, "value", key): count for key, count in rows}


def ticket_report(db: Session, period: str, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    start, end = period_bounds(period, now)

    by_category = {c.value: 0 for c in TicketCategory}
    by_category.update(_counts(db, Ticket.category, start, end))
    by_status = {s.value: 0 for s in TicketStatus}
    by_status.update(_counts(db, Ticket.status, start, end))
    by_priority = {p.value: 0 for p in TicketPriority}
    by_priority.update(_counts(db, Ticket.priority, start, end))

    tickets = (
        db.query(Ticket)
        .filter(Ticket.created_at >= start, Ticket.created_at < end)
        .all()
    )
    latencies = [t.resolution_seconds for t in tickets if t.resolution_seconds is not None]

    return {
        "period": period,
        "start": start,
        "end": end,
        "total": len(tickets),
        "by_category": by_category,
        "by_status": by_status,
        "by_priority": by_priority,
        "overdue": sum(1 for t in tickets if is_overdue(t, now)),
        "resolved": by_status[TicketStatus.RESOLVED.value] + by_status[TicketStatus.CLOSED.value],
        "avg_resolution_hours": (
            round(sum(latencies) / len(latencies) / 3600, 2) if latencies else None
        ),
    }


def user_report(db: Session) -> dict:
    by_role = {r.value: 0 for r in Role}
    for role, count in db.query(User.role, func.count(User.id)).group_by(User.role).all():
        by_role[role] = count
    return {
        "total": sum(by_role.values()),
        "active": db.query(User).filter(User.is_active.is_(True)).count(),
        "by_role": by_role,
    }
